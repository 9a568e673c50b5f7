"""
Middleware package for ClubSync.
"""
from .session_auth import get_current_session, require_app_session, require_setup_complete
