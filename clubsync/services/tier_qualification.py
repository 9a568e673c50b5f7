"""
Tier qualification.

A customer qualifies for a tier when EITHER
    purchase_amount >= tier.min_purchase_amount   (single order, if supplied)
    customer_ltv    >= tier.min_ltv_amount        (lifetime value, if supplied)

The highest-ranked satisfied tier wins. A missing threshold counts as 0, so
it is satisfied by any supplied value for that dimension.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence

from ..models import ClubProgram, ClubStage, Customer

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


@dataclass
class TierQualificationResult:
    qualifying_tier: Optional[Dict[str, Any]] = None
    qualified_by_purchase: bool = False
    qualified_by_ltv: bool = False

    @property
    def qualified(self) -> bool:
        return self.qualifying_tier is not None

    @property
    def tier_id(self) -> Optional[int]:
        return self.qualifying_tier['id'] if self.qualifying_tier else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'qualifying_tier': self.qualifying_tier,
            'qualified_by_purchase': self.qualified_by_purchase,
            'qualified_by_ltv': self.qualified_by_ltv,
        }


def _amount(value) -> Optional[Decimal]:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _meets(amount: Optional[Decimal], threshold) -> bool:
    if amount is None:
        return False
    return amount >= (_amount(threshold) or ZERO)


def find_qualifying_tier(
    tiers: Sequence[ClubStage],
    purchase_amount=None,
    customer_ltv=None,
) -> TierQualificationResult:
    """
    Pick the highest tier satisfied by the supplied signals.

    Args:
        tiers: Active tiers sorted ascending by stage_order
        purchase_amount: Single order total (major currency unit)
        customer_ltv: Lifetime value (major currency unit)

    Returns:
        TierQualificationResult; an empty result when nothing qualifies
    """
    purchase = _amount(purchase_amount)
    ltv = _amount(customer_ltv)

    for tier in reversed(list(tiers)):
        by_purchase = _meets(purchase, tier.min_purchase_amount)
        by_ltv = _meets(ltv, tier.min_ltv_amount)
        if by_purchase or by_ltv:
            return TierQualificationResult(
                qualifying_tier={
                    'id': tier.id,
                    'name': tier.name,
                    'stage_order': tier.stage_order or 0,
                },
                qualified_by_purchase=by_purchase,
                qualified_by_ltv=by_ltv,
            )

    return TierQualificationResult()


class TierQualificationService:
    """Qualification against a client's stored tiers."""

    def __init__(self, client_id: int):
        self.client_id = client_id

    def get_active_tiers(self):
        program = ClubProgram.query.filter_by(client_id=self.client_id).first()
        if not program:
            return []
        return (
            ClubStage.query
            .filter(ClubStage.club_program_id == program.id)
            .filter(ClubStage.is_active.is_(True))
            .filter(ClubStage.stage_order.isnot(None))
            .order_by(ClubStage.stage_order.asc())
            .all()
        )

    def find_qualifying_tier(self, purchase_amount=None, customer_ltv=None) -> TierQualificationResult:
        tiers = self.get_active_tiers()
        if not tiers:
            logger.debug(f'No active tiers for client {self.client_id}')
            return TierQualificationResult()
        return find_qualifying_tier(tiers, purchase_amount, customer_ltv)


def customer_qualifies_for_tier(customer_id: int, target_tier_id: int, purchase_amount=None) -> bool:
    """
    Check one tier using the customer's stored lifetime value.

    False when the customer or tier is missing, the tier is inactive, or the
    tier belongs to another client's program.
    """
    customer = Customer.query.get(customer_id)
    if not customer:
        return False

    tier = ClubStage.query.get(target_tier_id)
    if not tier or not tier.is_active:
        return False
    if tier.club_program.client_id != customer.client_id:
        return False

    return (
        _meets(_amount(purchase_amount), tier.min_purchase_amount)
        or _meets(_amount(customer.lifetime_value) or ZERO, tier.min_ltv_amount)
    )
