"""
Gunicorn configuration.
"""
import os

# Bind to the platform's PORT or default
bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Worker configuration
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
# Platform API calls during enrollment can be slow
timeout = 60
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info').lower()
capture_output = True

# Process naming
proc_name = 'clubsync'

preload_app = True

# Graceful restart
graceful_timeout = 30


def on_starting(server):
    print("[Gunicorn] Starting ClubSync server...")


def on_exit(server):
    print("[Gunicorn] ClubSync server shutting down...")
