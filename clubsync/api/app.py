"""
Embedded app entry points.

Pages take the session from ?session= and redirect to the landing page
when it is missing or expired; /api/session answers 401 instead.
"""
from flask import Blueprint, g, jsonify, redirect, request

from ..extensions import db
from ..middleware import require_app_session, require_setup_complete
from ..models import ClubEnrollment, ClubStage, Customer
from ..services.session_store import add_session_to_url, load_session, update_session
from ..utils.errors import ErrorCode, bad_request

app_bp = Blueprint('app', __name__)

THEMES = ('light', 'dark')


def _active_tiers(client):
    program = client.club_program
    if program is None:
        return []
    return (
        program.stages
        .filter(ClubStage.is_active.is_(True), ClubStage.stage_order.isnot(None))
        .order_by(ClubStage.stage_order)
        .all()
    )


@app_bp.route('/app', methods=['GET'])
@require_app_session(api=False)
@require_setup_complete
def dashboard():
    """Club overview for a client that has finished setup."""
    client = g.client
    active_members = (
        ClubEnrollment.query
        .join(Customer, ClubEnrollment.customer_id == Customer.id)
        .filter(Customer.client_id == client.id, ClubEnrollment.status == ClubEnrollment.STATUS_ACTIVE)
        .count()
    )
    return jsonify({
        'client': client.to_dict(),
        'session': g.app_session.to_dict(),
        'club_program': client.club_program.to_dict() if client.club_program else None,
        'tiers': [tier.to_dict() for tier in _active_tiers(client)],
        'active_members': active_members,
    })


@app_bp.route('/app/setup', methods=['GET'])
@require_app_session(api=False)
def setup():
    client = g.client
    if client.setup_complete:
        return redirect(add_session_to_url('/app', g.app_session.id))

    tiers = _active_tiers(client)
    return jsonify({
        'client': client.to_dict(),
        'club_program': client.club_program.to_dict() if client.club_program else None,
        'tiers': [tier.to_dict() for tier in tiers],
        'can_complete': bool(tiers),
    })


@app_bp.route('/app/setup/complete', methods=['POST'])
@require_app_session()
def complete_setup():
    """Finish setup. Requires at least one active tier."""
    client = g.client
    if not _active_tiers(client):
        return bad_request('Create at least one tier before finishing setup', ErrorCode.STATE_CONFLICT)

    client.setup_complete = True
    db.session.commit()
    return jsonify({
        'success': True,
        'redirectUrl': add_session_to_url('/app', g.app_session.id),
    })


@app_bp.route('/api/session', methods=['GET'])
@require_app_session()
def get_session():
    return jsonify({
        'session': g.app_session.to_dict(),
        'client': g.client.to_dict(),
    })


@app_bp.route('/api/session', methods=['PATCH'])
@require_app_session()
def update_current_session():
    """
    Update the user-facing session fields.

    Request body:
    {
        "theme": "dark",     # optional
        "user_name": "..."   # optional
    }
    """
    data = request.get_json(silent=True) or {}
    changes = {key: data[key] for key in ('theme', 'user_name') if key in data}
    if not changes:
        return bad_request('Nothing to update')
    if 'theme' in changes and changes['theme'] not in THEMES:
        return bad_request(f'theme must be one of: {", ".join(THEMES)}', ErrorCode.VALIDATION_ERROR)

    update_session(g.app_session.id, changes)
    return jsonify({'session': load_session(g.app_session.id).to_dict()})
