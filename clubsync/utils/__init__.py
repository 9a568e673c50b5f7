"""
Utility modules for ClubSync.
"""
from .logging_config import setup_logging, mask_session_id
from .errors import (
    ErrorCode,
    error_response,
    exception_response,
    bad_request,
    unauthorized,
    not_found,
    conflict
)
from .exceptions import (
    ClubSyncError,
    NotFoundError,
    TierNotFoundError,
    CustomerNotFoundError,
    ValidationError,
    AuthenticationFailedError,
    SessionNotFoundError,
    UnknownTenantError,
    UnmappedWebhookEventError,
    RateLimitedError,
    PlatformError,
    PersistenceError,
    ConfigurationError
)
