"""
Custom exceptions for ClubSync.

Provider, session and pipeline failures are raised as subclasses of
ClubSyncError so request handlers can map them to HTTP status codes.
"""


class ClubSyncError(Exception):
    """Base exception for all ClubSync errors."""

    status_code = 500

    def __init__(self, message: str, code: str = "CLUBSYNC_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(ClubSyncError):
    """Resource not found (locally or on the platform)."""

    status_code = 404

    def __init__(self, resource: str, identifier=None):
        self.resource = resource
        self.identifier = identifier
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, f"{resource.upper().replace(' ', '_')}_NOT_FOUND")


class TierNotFoundError(NotFoundError):
    """Tier not found."""

    def __init__(self, identifier=None):
        super().__init__("Tier", identifier)


class CustomerNotFoundError(NotFoundError):
    """Customer not found."""

    def __init__(self, identifier=None):
        super().__init__("Customer", identifier)


class ValidationError(ClubSyncError):
    """Invalid input data."""

    status_code = 400

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class AuthenticationFailedError(ClubSyncError):
    """Platform rejected credentials, or a request could not be authenticated."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, "AUTHENTICATION_FAILED")


class SessionNotFoundError(ClubSyncError):
    """Session ID does not resolve to a stored session."""

    status_code = 401

    def __init__(self, session_id: str = None):
        self.session_id = session_id
        super().__init__("Session not found", "SESSION_NOT_FOUND")


class UnknownTenantError(ClubSyncError):
    """Inbound request names a tenant with no Client record."""

    status_code = 403

    def __init__(self, crm_type: str, tenant: str):
        self.crm_type = crm_type
        self.tenant = tenant
        super().__init__(f"Unknown {crm_type} tenant: {tenant}", "UNKNOWN_TENANT")


class UnmappedWebhookEventError(ClubSyncError):
    """Platform event/action pair outside the supported topic table."""

    status_code = 400

    def __init__(self, event: str, action: str):
        self.event = event
        self.action = action
        super().__init__(f"Unhandled webhook type: {event}/{action}", "UNMAPPED_WEBHOOK_EVENT")


class RateLimitedError(ClubSyncError):
    """Platform throttled the request. Safe for the caller to retry later."""

    status_code = 429

    def __init__(self, message: str = "Rate limited by platform", retry_after: float = None):
        self.retry_after = retry_after
        super().__init__(message, "RATE_LIMITED")


class PlatformError(ClubSyncError):
    """Opaque platform failure. Not retried."""

    status_code = 502

    def __init__(self, message: str, status: int = None, original_error: Exception = None):
        self.status = status
        self.original_error = original_error
        super().__init__(message, "PLATFORM_ERROR")


class PersistenceError(ClubSyncError):
    """Local store rejected a write."""

    status_code = 500

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message, "DATABASE_ERROR")


class ConfigurationError(ClubSyncError):
    """Application configuration error."""

    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR")
