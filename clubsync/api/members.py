"""
Members API.

Club members are local Customer rows with at least one enrollment.
Enrollment and upgrades go through EnrollmentService, which writes to the
platform first and the local store second.
"""
from flask import Blueprint, g, jsonify, request

from ..crm import CrmAddress, get_provider_for_session
from ..middleware import require_app_session
from ..models import ClubEnrollment, Customer, EnrollmentHistory
from ..services.enrollment_service import EnrollmentService
from ..services.tier_qualification import TierQualificationService
from ..utils.errors import ErrorCode, bad_request
from ..utils.exceptions import CustomerNotFoundError, ValidationError
from .tiers import parse_amount

members_bp = Blueprint('members', __name__)


def get_service() -> EnrollmentService:
    return EnrollmentService(g.client, get_provider_for_session(g.app_session))


def get_customer_or_404(customer_id: int) -> Customer:
    customer = Customer.query.filter_by(id=customer_id, client_id=g.client.id).first()
    if customer is None:
        raise CustomerNotFoundError(customer_id)
    return customer


def parse_tier_id(data: dict) -> int:
    try:
        return int(data['tier_id'])
    except KeyError:
        raise ValidationError('tier_id is required', 'tier_id')
    except (TypeError, ValueError):
        raise ValidationError('tier_id must be an integer', 'tier_id')


@members_bp.route('', methods=['GET'])
@require_app_session()
def list_members():
    """
    List club members.

    Query params:
        status: enrollment status filter (default: active)
        page, per_page: pagination
    """
    status = request.args.get('status', ClubEnrollment.STATUS_ACTIVE)
    page = request.args.get('page', 1, type=int)
    per_page = min(request.args.get('per_page', 50, type=int), 100)

    query = (
        Customer.query
        .join(ClubEnrollment, ClubEnrollment.customer_id == Customer.id)
        .filter(Customer.client_id == g.client.id, ClubEnrollment.status == status)
        .distinct()
        .order_by(Customer.id)
    )
    pagination = query.paginate(page=page, per_page=per_page, error_out=False)

    members = []
    for customer in pagination.items:
        data = customer.to_dict()
        active = customer.active_enrollment
        data['enrollment'] = active.to_dict() if active else None
        members.append(data)

    return jsonify({
        'members': members,
        'total': pagination.total,
        'page': page,
        'per_page': per_page,
    })


@members_bp.route('/<int:customer_id>', methods=['GET'])
@require_app_session()
def get_member(customer_id):
    customer = get_customer_or_404(customer_id)
    enrollments = customer.enrollments.order_by(ClubEnrollment.enrolled_at.desc()).all()
    history = (
        EnrollmentHistory.query
        .filter_by(customer_id=customer.id)
        .order_by(EnrollmentHistory.changed_at.desc(), EnrollmentHistory.id.desc())
        .all()
    )
    return jsonify({
        'customer': customer.to_dict(),
        'enrollments': [e.to_dict() for e in enrollments],
        'history': [h.to_dict() for h in history],
    })


@members_bp.route('/qualify', methods=['POST'])
@require_app_session()
def qualify():
    """
    Find the highest tier the supplied signals satisfy.

    Request body:
    {
        "purchase_amount": 120.00,   # optional
        "customer_ltv": 800.00,      # optional
        "customer_id": 12            # optional, uses the stored lifetime value
    }
    """
    data = request.get_json(silent=True) or {}
    purchase_amount = parse_amount(data, 'purchase_amount')
    customer_ltv = parse_amount(data, 'customer_ltv')
    if data.get('customer_id') is not None:
        customer_ltv = get_customer_or_404(data['customer_id']).lifetime_value

    result = TierQualificationService(g.client.id).find_qualifying_tier(
        purchase_amount=purchase_amount,
        customer_ltv=customer_ltv,
    )
    return jsonify(result.to_dict())


@members_bp.route('/enroll', methods=['POST'])
@require_app_session()
def enroll():
    """
    Enroll a customer in a tier.

    Request body:
    {
        "customer": {"crm_id": "..."} or {"email": "...", "first_name": "...", "last_name": "..."},
        "tier_id": 1,
        "address": {"address1": "...", "city": "...", "state": "...", "zip": "..."},  # optional
        "payment_method_id": "...",     # optional, defaults to the card on file
        "shipping_address_id": "...",   # optional
        "purchase_amount": 150.00,      # optional
        "override": false               # staff override of the thresholds
    }
    """
    data = request.get_json(silent=True) or {}
    customer_data = data.get('customer')
    if not isinstance(customer_data, dict):
        return bad_request('customer is required', ErrorCode.MISSING_FIELD)

    address = CrmAddress.from_dict(data['address']) if isinstance(data.get('address'), dict) else None

    result = get_service().enroll_member(
        customer_data,
        parse_tier_id(data),
        address=address,
        payment_method_id=data.get('payment_method_id'),
        shipping_address_id=data.get('shipping_address_id'),
        purchase_amount=parse_amount(data, 'purchase_amount'),
        override=bool(data.get('override')),
    )
    return jsonify(result), 201


@members_bp.route('/<int:customer_id>/upgrade', methods=['POST'])
@require_app_session()
def upgrade(customer_id):
    """
    Move a member to a higher tier.

    Request body:
    {
        "tier_id": 2,
        "purchase_amount": 300.00,   # optional
        "override": false
    }
    """
    data = request.get_json(silent=True) or {}
    result = get_service().upgrade_member(
        customer_id,
        parse_tier_id(data),
        purchase_amount=parse_amount(data, 'purchase_amount'),
        override=bool(data.get('override')),
    )
    return jsonify(result)
