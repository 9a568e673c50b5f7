"""
Tier Management API.

Tiers are the ranked stages of a client's club program. Rank is
stage_order (1 = entry level); deleting a tier deactivates it so
existing enrollments keep their reference.
"""
from decimal import Decimal, InvalidOperation
from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import func

from ..crm import get_provider_for_session
from ..extensions import db
from ..middleware import require_app_session
from ..models import ClubProgram, ClubStage
from ..services.enrollment_service import EnrollmentService
from ..utils.errors import ErrorCode, bad_request, conflict
from ..utils.exceptions import TierNotFoundError, ValidationError

tiers_bp = Blueprint('tiers', __name__, url_prefix='/api/tiers')

AMOUNT_FIELDS = ('discount_percentage', 'min_purchase_amount', 'min_ltv_amount')


def get_program() -> ClubProgram:
    client = g.client
    if client.club_program is None:
        client.club_program = ClubProgram(name=f'{client.org_name} Wine Club')
        db.session.flush()
    return client.club_program


def get_tier_or_404(tier_id: int) -> ClubStage:
    tier = get_program().stages.filter_by(id=tier_id).first()
    if tier is None:
        raise TierNotFoundError(tier_id)
    return tier


def parse_amount(data: dict, field: str):
    value = data.get(field)
    if value is None or value == '':
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f'{field} must be a number', field)
    if not amount.is_finite():
        raise ValidationError(f'{field} must be a number', field)
    if amount < 0:
        raise ValidationError(f'{field} cannot be negative', field)
    if field == 'discount_percentage' and amount > 100:
        raise ValidationError('discount_percentage cannot exceed 100', field)
    return amount


def apply_tier_fields(tier: ClubStage, data: dict):
    if 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            raise ValidationError('name is required', 'name')
        tier.name = name
    for field in AMOUNT_FIELDS:
        if field in data:
            setattr(tier, field, parse_amount(data, field))
    if 'duration_months' in data:
        try:
            months = int(data['duration_months'])
        except (TypeError, ValueError):
            raise ValidationError('duration_months must be an integer', 'duration_months')
        if months < 1:
            raise ValidationError('duration_months must be at least 1', 'duration_months')
        tier.duration_months = months
    if 'upgradable' in data:
        if not isinstance(data['upgradable'], bool):
            raise ValidationError('upgradable must be true or false', 'upgradable')
        tier.upgradable = data['upgradable']


@tiers_bp.route('', methods=['GET'])
@require_app_session()
def list_tiers():
    """
    List the club's tiers, lowest rank first.

    Query params:
        include_inactive: 'true' to include deactivated tiers (listed last)
    """
    query = get_program().stages
    if request.args.get('include_inactive', '').lower() != 'true':
        query = query.filter(ClubStage.is_active.is_(True))
    tiers = query.order_by(ClubStage.stage_order.is_(None), ClubStage.stage_order, ClubStage.id).all()
    return jsonify({'tiers': [tier.to_dict() for tier in tiers]})


@tiers_bp.route('', methods=['POST'])
@require_app_session()
def create_tier():
    """
    Create a tier ranked above every existing one.

    Request body:
    {
        "name": "Gold",
        "discount_percentage": 15,
        "duration_months": 12,
        "min_purchase_amount": 250,   # optional
        "min_ltv_amount": 1000,       # optional
        "upgradable": true            # optional, false for invite-only tiers
    }
    """
    data = request.get_json(silent=True) or {}
    if not (data.get('name') or '').strip():
        return bad_request('name is required', ErrorCode.MISSING_FIELD)

    program = get_program()
    name = data['name'].strip()
    if program.stages.filter(func.lower(ClubStage.name) == name.lower(), ClubStage.is_active.is_(True)).first():
        return conflict(f'A tier named {name} already exists', ErrorCode.ALREADY_EXISTS)

    top = db.session.query(func.max(ClubStage.stage_order)).filter(
        ClubStage.club_program_id == program.id
    ).scalar()

    tier = ClubStage(club_program_id=program.id, stage_order=(top or 0) + 1)
    apply_tier_fields(tier, data)
    db.session.add(tier)
    db.session.commit()

    current_app.logger.info(f'Client {g.client.id} created tier {tier.name} at rank {tier.stage_order}')
    return jsonify({'tier': tier.to_dict()}), 201


@tiers_bp.route('/<int:tier_id>', methods=['GET'])
@require_app_session()
def get_tier(tier_id):
    return jsonify({'tier': get_tier_or_404(tier_id).to_dict()})


@tiers_bp.route('/<int:tier_id>', methods=['PUT'])
@require_app_session()
def update_tier(tier_id):
    tier = get_tier_or_404(tier_id)
    if not tier.is_active:
        return conflict('Deactivated tiers cannot be edited')

    apply_tier_fields(tier, request.get_json(silent=True) or {})
    tier.sync_status = ClubStage.SYNC_PENDING
    db.session.commit()
    return jsonify({'tier': tier.to_dict()})


@tiers_bp.route('/<int:tier_id>', methods=['DELETE'])
@require_app_session()
def deactivate_tier(tier_id):
    tier = get_tier_or_404(tier_id)
    tier.deactivate()
    db.session.commit()
    current_app.logger.info(f'Client {g.client.id} deactivated tier {tier.id}')
    return jsonify({'success': True, 'tier': tier.to_dict()})


@tiers_bp.route('/<int:tier_id>/sync', methods=['POST'])
@require_app_session()
def sync_tier(tier_id):
    """Push the tier to the platform as a club."""
    tier = get_tier_or_404(tier_id)
    if not tier.is_active:
        return conflict('Deactivated tiers cannot be synced')

    service = EnrollmentService(g.client, get_provider_for_session(g.app_session))
    club_id = service.sync_tier(tier)
    return jsonify({'success': True, 'crm_club_id': club_id, 'tier': tier.to_dict()})
