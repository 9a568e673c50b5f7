"""
HTTP blueprints for ClubSync.
"""
