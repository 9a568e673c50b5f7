"""
Logging setup.

Configures the root logger once per process so module loggers created with
logging.getLogger(__name__) share a single handler and format.
"""
import logging
import os
import sys

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'

_configured = False


def setup_logging(level: str = None) -> None:
    """Attach a stream handler to the root logger (idempotent)."""
    global _configured

    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # Quiet chatty libraries
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    _configured = True


def mask_session_id(session_id: str) -> str:
    """Session IDs are bearer credentials; only log a prefix."""
    if not session_id:
        return '<none>'
    return f'{session_id[:12]}...'
