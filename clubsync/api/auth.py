"""
Install, launch and logout endpoints.

Commerce7:
    POST /install      install callback (Basic auth with the app credentials)
    POST /uninstall    uninstall callback, removes the client and its data
    GET  /c7/auth      embedded launch with ?tenantId=&account=

Shopify:
    GET  /shp/auth     OAuth callback with ?shop=&code=&hmac=
    POST /uninstall    app/uninstalled webhook (HMAC signed)

Both:
    GET|POST /logout   destroy the session and return to the landing page
"""
from flask import Blueprint, current_app, jsonify, redirect, request
from sqlalchemy.exc import SQLAlchemyError

from ..crm import get_provider
from ..crm.shopify import ShopifyProvider, verify_hmac
from ..extensions import db
from ..models import Client, ClubProgram
from ..services.session_store import (
    add_session_to_url,
    create_session,
    delete_session,
    delete_sessions_for_client,
    resolve_session_from_request,
)
from ..utils.errors import ErrorCode, bad_request, error_response, not_found, unauthorized
from ..utils.exceptions import AuthenticationFailedError
from ..utils.logging_config import mask_session_id
from ..utils.subdomain import COMMERCE7, SHOPIFY

auth_bp = Blueprint('auth', __name__)


def _ensure_club_program(client: Client) -> ClubProgram:
    if client.club_program is None:
        client.club_program = ClubProgram(name=f'{client.org_name} Wine Club')
    return client.club_program


def _full_name(user: dict) -> str:
    return f"{user.get('firstName') or ''} {user.get('lastName') or ''}".strip()


# ==================== Commerce7 ====================

@auth_bp.route('/install', methods=['POST'])
def install():
    """
    Commerce7 install callback.

    Request body:
    {
        "tenantId": "my-winery",
        "organization-name": "My Winery",
        "organization-website": "https://mywinery.com",
        "user": {"id": "...", "email": "...", "firstName": "...", "lastName": "..."}
    }
    """
    payload = request.get_json(silent=True) or {}
    tenant_id = payload.get('tenantId')

    provider = get_provider(COMMERCE7, tenant_id or '')
    if not provider.authorize_install(request):
        current_app.logger.warning(f'Rejected Commerce7 install for tenant {tenant_id}')
        return unauthorized('Invalid install credentials')

    user = payload.get('user')
    if not tenant_id or not isinstance(user, dict):
        return bad_request('Missing required fields: tenantId and user', ErrorCode.MISSING_FIELD)

    if Client.find_by_tenant(COMMERCE7, tenant_id):
        current_app.logger.info(f'Client already exists for tenant: {tenant_id}')
        return jsonify({'success': True, 'message': 'Client already exists'})

    client = Client(
        tenant_shop=tenant_id,
        crm_type=COMMERCE7,
        org_name=payload.get('organization-name') or tenant_id,
        org_contact=_full_name(user),
        user_email=user.get('email'),
        website_url=payload.get('organization-website'),
    )
    _ensure_club_program(client)

    try:
        db.session.add(client)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'Failed to create client for tenant {tenant_id}: {e}')
        return error_response('Failed to create client', ErrorCode.DATABASE_ERROR, 500)

    session_id = create_session({
        'client_id': client.id,
        'tenant_shop': tenant_id,
        'crm_type': COMMERCE7,
        'user_name': _full_name(user) or user.get('email'),
        'user_email': user.get('email'),
        'theme': 'light',
    })

    current_app.logger.info(f'Installed Commerce7 client {client.id} for tenant {tenant_id}')
    return jsonify({
        'success': True,
        'message': 'Client created successfully',
        'clientId': client.id,
        'sessionId': session_id,
        'redirectUrl': add_session_to_url('/app', session_id),
    }), 201


@auth_bp.route('/c7/auth', methods=['GET'])
def commerce7_auth():
    """Embedded launch from the Commerce7 admin."""
    tenant_id = request.args.get('tenantId')
    account = request.args.get('account')
    if not tenant_id or not account:
        return bad_request('Missing tenantId or account', ErrorCode.MISSING_FIELD)

    client = Client.find_by_tenant(COMMERCE7, tenant_id)
    if client is None or not client.is_active:
        return not_found(f'No client installed for tenant {tenant_id}', ErrorCode.UNKNOWN_TENANT)

    provider = get_provider(COMMERCE7, tenant_id)
    try:
        user = provider.authenticate(request)
    except AuthenticationFailedError as e:
        current_app.logger.warning(f'Commerce7 launch rejected for tenant {tenant_id}: {e.message}')
        return unauthorized(e.message)

    session_id = create_session({
        'client_id': client.id,
        'tenant_shop': tenant_id,
        'crm_type': COMMERCE7,
        'user_name': user.get('firstName') or user.get('email'),
        'user_email': user.get('email'),
        'access_token': account,
        'theme': 'dark' if request.args.get('adminUITheme') == 'dark' else 'light',
    })
    return redirect(add_session_to_url('/app', session_id))


# ==================== Shopify ====================

@auth_bp.route('/shp/auth', methods=['GET'])
def shopify_auth():
    """Shopify OAuth callback: exchange the code, upsert the client, open a session."""
    shop = request.args.get('shop')
    code = request.args.get('code')
    if not shop or not code:
        return bad_request('Missing shop or code', ErrorCode.MISSING_FIELD)

    if not verify_hmac(request.args.to_dict()):
        return error_response('Invalid HMAC signature', ErrorCode.INVALID_SIGNATURE, 401, log_error=False)

    token = ShopifyProvider.exchange_code_for_token(shop, code)

    client = Client.find_by_tenant(SHOPIFY, shop)
    if client is None:
        client = Client(
            tenant_shop=shop,
            crm_type=SHOPIFY,
            org_name=shop.replace('.myshopify.com', '').replace('-', ' ').title(),
        )
        db.session.add(client)
        current_app.logger.info(f'Installing Shopify client for {shop}')
    client.access_token = token['access_token']
    client.is_active = True
    _ensure_club_program(client)

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'Failed to save Shopify client {shop}: {e}')
        return error_response('Failed to save client', ErrorCode.DATABASE_ERROR, 500)

    associated_user = token.get('associated_user') or {}
    session_id = create_session({
        'client_id': client.id,
        'tenant_shop': shop,
        'crm_type': SHOPIFY,
        'access_token': token['access_token'],
        'scope': token.get('scope'),
        'user_name': _full_name({
            'firstName': associated_user.get('first_name'),
            'lastName': associated_user.get('last_name'),
        }) or None,
        'user_email': associated_user.get('email'),
    })
    return redirect(add_session_to_url('/app', session_id))


# ==================== Uninstall / Logout ====================

def _remove_client(client: Client):
    delete_sessions_for_client(client.id)
    db.session.delete(client)
    db.session.commit()


@auth_bp.route('/uninstall', methods=['POST'])
def uninstall():
    """
    Remove a client and everything it owns.

    Idempotent: an unknown tenant is reported as already removed.
    """
    if request.headers.get('X-Shopify-Hmac-SHA256'):
        if not ShopifyProvider.validate_webhook(request):
            return error_response('Invalid signature', ErrorCode.INVALID_SIGNATURE, 401, log_error=False)
        crm_type = SHOPIFY
        tenant = request.headers.get('X-Shopify-Shop-Domain')
    else:
        if not get_provider(COMMERCE7, '').authorize_install(request):
            return unauthorized('Invalid uninstall credentials')
        crm_type = COMMERCE7
        tenant = (request.get_json(silent=True) or {}).get('tenantId')

    if not tenant:
        return bad_request('Missing tenant identifier', ErrorCode.MISSING_FIELD)

    client = Client.find_by_tenant(crm_type, tenant)
    if client is None:
        current_app.logger.warning(f'Uninstall for unknown {crm_type} tenant {tenant}')
        return jsonify({'success': True, 'message': 'Client not found or already deleted'})

    client_id = client.id
    try:
        _remove_client(client)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'Failed to uninstall client {client_id}: {e}')
        return error_response('Failed to delete client data', ErrorCode.DATABASE_ERROR, 500)

    current_app.logger.info(f'Uninstalled {crm_type} client {client_id} ({tenant})')
    return jsonify({
        'success': True,
        'message': 'Client and all related data deleted successfully',
        'clientId': client_id,
    })


@auth_bp.route('/logout', methods=['GET', 'POST'])
def logout():
    session_id = resolve_session_from_request(request)
    if session_id:
        delete_session(session_id)
        current_app.logger.info(f'Logged out session {mask_session_id(session_id)}')
    return redirect('/')
