"""
Session store.

Persists tenant-scoped browser sessions keyed by an opaque ID. The ID
travels in the `session` query parameter of every authenticated URL (the
embedding platform iframe blocks third-party cookies), so it is treated as a
bearer credential: never logged in full, never derived from secrets.

Usage:
    session_id = create_session({
        'client_id': client.id,
        'tenant_shop': client.tenant_shop,
        'crm_type': 'commerce7',
        'user_email': 'owner@winery.com',
    })
    session = load_session(session_id)      # SessionData or None
    update_session(session_id, {'theme': 'dark'})
    delete_session(session_id)               # idempotent
"""
import logging
import secrets
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AppSession
from ..utils.exceptions import PersistenceError, SessionNotFoundError, ValidationError
from ..utils.logging_config import mask_session_id
from ..utils.subdomain import CRM_TYPES, SHOPIFY, crm_type_from_host

logger = logging.getLogger(__name__)

SESSION_PARAM = 'session'
DEFAULT_TTL_HOURS = 8

IMMUTABLE_FIELDS = frozenset({'id', 'client_id', 'tenant_shop', 'crm_type'})
MUTABLE_FIELDS = frozenset({
    'user_name', 'user_email', 'access_token', 'scope',
    'theme', 'expires_at', 'extra',
})


@dataclass
class SessionData:
    id: str
    client_id: int
    tenant_shop: str
    crm_type: str
    expires_at: datetime
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    access_token: Optional[str] = None
    scope: Optional[str] = None
    theme: str = 'light'
    extra: Dict[str, Any] = field(default_factory=dict)
    last_activity_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, row: AppSession) -> 'SessionData':
        return cls(
            id=row.id,
            client_id=row.client_id,
            tenant_shop=row.tenant_shop,
            crm_type=row.crm_type,
            expires_at=row.expires_at,
            user_name=row.user_name,
            user_email=row.user_email,
            access_token=row.access_token,
            scope=row.scope,
            theme=row.theme or 'light',
            extra=dict(row.extra or {}),
            last_activity_at=row.last_activity_at,
        )

    def to_dict(self, include_token: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        if not include_token:
            data.pop('access_token', None)
        for key in ('expires_at', 'last_activity_at'):
            if data.get(key):
                data[key] = data[key].isoformat()
        return data


def _ttl() -> timedelta:
    try:
        hours = current_app.config.get('SESSION_TTL_HOURS', DEFAULT_TTL_HOURS)
    except RuntimeError:
        hours = DEFAULT_TTL_HOURS
    return timedelta(hours=hours)


def generate_session_id(crm_type: str, tenant_shop: str) -> str:
    """`{crm_type}_{tenant_shop}_{128 random bits as hex}`."""
    return f'{crm_type}_{tenant_shop}_{secrets.token_hex(16)}'


def _commit(action: str):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f'Session store {action} failed: {e}')
        raise PersistenceError(f'Failed to {action} session', original_error=e)


def create_session(data: Dict[str, Any]) -> str:
    """
    Persist a new session and return its ID.

    Raises:
        ValidationError: Unknown crm_type, missing identity fields, or a
            Shopify session without an access token
        PersistenceError: The store rejected the write
    """
    crm_type = data.get('crm_type')
    if crm_type not in CRM_TYPES:
        raise ValidationError(f'Unsupported crm_type: {crm_type}', 'crm_type')
    for required in ('client_id', 'tenant_shop'):
        if not data.get(required):
            raise ValidationError(f'{required} is required', required)
    if crm_type == SHOPIFY and not data.get('access_token'):
        raise ValidationError('Shopify sessions require an access token', 'access_token')

    unknown = set(data) - MUTABLE_FIELDS - IMMUTABLE_FIELDS
    if unknown:
        raise ValidationError(f'Unknown session fields: {", ".join(sorted(unknown))}')

    now = datetime.utcnow()
    session_id = generate_session_id(crm_type, data['tenant_shop'])
    row = AppSession(
        id=session_id,
        client_id=data['client_id'],
        tenant_shop=data['tenant_shop'],
        crm_type=crm_type,
        user_name=data.get('user_name'),
        user_email=data.get('user_email'),
        access_token=data.get('access_token'),
        scope=data.get('scope'),
        theme=data.get('theme') or 'light',
        extra=data.get('extra') or {},
        expires_at=data.get('expires_at') or now + _ttl(),
        last_activity_at=now,
    )
    db.session.add(row)
    _commit('create')

    logger.info(f'Created {crm_type} session {mask_session_id(session_id)} for client {data["client_id"]}')
    return session_id


def load_session(session_id: str) -> Optional[SessionData]:
    """
    Look up a session. A miss (unknown or expired) returns None.

    Expired rows are deleted on the way out; live rows get their
    last_activity_at touched.
    """
    if not session_id:
        return None

    try:
        row = AppSession.query.get(session_id)
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError('Failed to load session', original_error=e)

    if row is None:
        return None

    now = datetime.utcnow()
    if row.is_expired(now):
        logger.info(f'Session {mask_session_id(session_id)} expired, removing')
        db.session.delete(row)
        _commit('expire')
        return None

    row.last_activity_at = now
    _commit('touch')
    return SessionData.from_model(row)


def update_session(session_id: str, partial: Dict[str, Any]) -> None:
    """
    Merge the supplied fields into an existing session.

    Only the named columns are written (last write wins per field), so two
    requests refreshing different fields do not clobber each other.

    Raises:
        ValidationError: partial touches an identity field or an unknown field
        SessionNotFoundError: No session with this ID
        PersistenceError: The store rejected the write
    """
    blocked = IMMUTABLE_FIELDS.intersection(partial)
    if blocked:
        raise ValidationError(
            f'Cannot modify immutable session fields: {", ".join(sorted(blocked))}'
        )
    unknown = set(partial) - MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f'Unknown session fields: {", ".join(sorted(unknown))}')

    crm_type = db.session.query(AppSession.crm_type).filter_by(id=session_id).scalar()
    if crm_type is None:
        raise SessionNotFoundError(session_id)

    if crm_type == SHOPIFY and 'access_token' in partial and not partial['access_token']:
        raise ValidationError('Shopify sessions require an access token', 'access_token')

    if not partial:
        return

    values = dict(partial)
    values['updated_at'] = datetime.utcnow()
    try:
        AppSession.query.filter_by(id=session_id).update(values, synchronize_session='fetch')
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError('Failed to update session', original_error=e)
    _commit('update')


def delete_session(session_id: str) -> None:
    """Remove a session. Deleting a missing session succeeds."""
    if not session_id:
        return
    try:
        deleted = AppSession.query.filter_by(id=session_id).delete(synchronize_session='fetch')
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError('Failed to delete session', original_error=e)
    _commit('delete')
    if deleted:
        logger.info(f'Deleted session {mask_session_id(session_id)}')


def delete_sessions_for_client(client_id: int) -> int:
    """Drop every session of a tenant (uninstall, credential rotation)."""
    try:
        deleted = AppSession.query.filter_by(client_id=client_id).delete(synchronize_session='fetch')
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError('Failed to delete sessions', original_error=e)
    _commit('delete')
    logger.info(f'Deleted {deleted} sessions for client {client_id}')
    return deleted


def find_sessions_by_shop(tenant_shop: str) -> List[SessionData]:
    rows = (
        AppSession.query
        .filter(AppSession.tenant_shop == tenant_shop)
        .filter(AppSession.expires_at > datetime.utcnow())
        .order_by(AppSession.last_activity_at.desc())
        .all()
    )
    return [SessionData.from_model(row) for row in rows]


def cleanup_expired_sessions() -> int:
    """Delete all expired sessions. Returns the number removed."""
    try:
        deleted = (
            AppSession.query
            .filter(AppSession.expires_at <= datetime.utcnow())
            .delete(synchronize_session='fetch')
        )
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError('Failed to clean up sessions', original_error=e)
    _commit('cleanup')
    logger.info(f'Cleaned up {deleted} expired sessions')
    return deleted


def resolve_session_from_request(request, crm_type: str = None) -> Optional[str]:
    """
    Extract the session ID a request carries, or None.

    1. `?session=` query parameter (all platforms)
    2. crm_type, when not supplied, is inferred from the host subdomain
       (falling back to `?crm=` on hosts without one)
    3. Shopify only: `Authorization: Bearer <session id>`
    """
    session_id = request.args.get(SESSION_PARAM)
    if session_id:
        return session_id

    if crm_type is None:
        crm_type = crm_type_from_host(request.host) or request.args.get('crm')

    if crm_type == SHOPIFY:
        auth_header = request.headers.get('Authorization', '')
        if auth_header.startswith('Bearer '):
            token = auth_header[len('Bearer '):].strip()
            if token:
                return token

    return None


def add_session_to_url(url: str, session_id: str) -> str:
    """Append (or replace) the session parameter on a URL."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != SESSION_PARAM]
    query.append((SESSION_PARAM, session_id))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def get_fake_app_session(crm_type: str) -> SessionData:
    """
    In-memory session for bypass development mode (AUTH_BYPASS=true).

    Bound to the first client of that platform; never persisted.
    """
    from ..models import Client

    if crm_type not in CRM_TYPES:
        raise ValidationError(f'Unsupported crm_type: {crm_type}', 'crm_type')

    client = Client.query.filter_by(crm_type=crm_type).order_by(Client.id).first()
    if client is None:
        raise SessionNotFoundError()

    return SessionData(
        id=f'{crm_type}_{client.tenant_shop}_dev',
        client_id=client.id,
        tenant_shop=client.tenant_shop,
        crm_type=crm_type,
        expires_at=datetime.utcnow() + _ttl(),
        user_name='Developer',
        user_email=client.user_email or 'dev@localhost',
        access_token='dev-token' if crm_type == SHOPIFY else None,
        theme='light',
    )
