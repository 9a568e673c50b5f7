"""
CLI Commands for ClubSync.

Usage:
    flask sessions cleanup                        # Delete expired app sessions

    flask crm register-webhooks --client-id 1     # Subscribe a tenant to every topic
    flask crm list-webhooks --client-id 1         # Show a tenant's subscriptions

    flask tiers sync --client-id 1                # Push active tiers to the platform

    flask members expire                          # Expire enrollments past their term
    flask members expiration-warnings --days 30   # Warn members nearing the end of term
"""
from .sessions import init_app as init_session_commands
from .crm import init_app as init_crm_commands
from .tiers import init_app as init_tier_commands
from .members import init_app as init_member_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_session_commands(app)
    init_crm_commands(app)
    init_tier_commands(app)
    init_member_commands(app)
