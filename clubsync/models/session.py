"""
App session model.

Sessions are addressed by an opaque ID carried in the URL; the embedding
platform iframe blocks third-party cookies.
"""
from datetime import datetime
from ..extensions import db


class AppSession(db.Model):
    __tablename__ = 'app_sessions'

    id = db.Column(db.String(255), primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False, index=True)
    tenant_shop = db.Column(db.String(255), nullable=False, index=True)
    crm_type = db.Column(db.String(20), nullable=False)

    user_name = db.Column(db.String(255))
    user_email = db.Column(db.String(255))
    access_token = db.Column(db.Text)
    scope = db.Column(db.String(500))
    theme = db.Column(db.String(10), default='light')
    extra = db.Column(db.JSON, default=dict)

    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    last_activity_at = db.Column(db.DateTime, default=datetime.utcnow)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = db.relationship('Client', backref=db.backref('sessions', lazy='dynamic', cascade='all, delete-orphan'))

    def is_expired(self, now: datetime = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at

    def __repr__(self):
        return f'<AppSession {self.crm_type}:{self.tenant_shop}>'
