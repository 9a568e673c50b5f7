"""
ClubSync entry point.
"""
import os
import sys
import traceback

print("[ClubSync] Starting ClubSync v1.0.0")

config_name = os.getenv('FLASK_ENV', 'production')
print(f"[ClubSync] Config: {config_name}")
print(f"[ClubSync] PORT: {os.getenv('PORT', 'not set')}")
print(f"[ClubSync] DATABASE_URL: {'set' if os.getenv('DATABASE_URL') else 'NOT SET'}")

try:
    from clubsync import create_app
    app = create_app(config_name)
    print(f"[ClubSync] App created, {len(list(app.url_map.iter_rules()))} routes")
except Exception as e:
    print(f"[ClubSync] FATAL ERROR during app creation: {e}")
    traceback.print_exc()
    sys.exit(1)

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_ENV') == 'development'
    )
