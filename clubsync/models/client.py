"""
Client (tenant) model.
"""
from datetime import datetime
from ..extensions import db


class Client(db.Model):
    """
    A winery installed on one commerce platform.

    One row per (tenant_shop, crm_type). tenant_shop is the Commerce7 tenant
    ID or the Shopify shop domain.
    """
    __tablename__ = 'clients'
    __table_args__ = (
        db.UniqueConstraint('tenant_shop', 'crm_type', name='uq_clients_tenant_crm'),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_shop = db.Column(db.String(255), nullable=False, index=True)
    crm_type = db.Column(db.String(20), nullable=False)  # commerce7, shopify

    org_name = db.Column(db.String(255), nullable=False)
    org_contact = db.Column(db.String(255))
    user_email = db.Column(db.String(255))
    website_url = db.Column(db.String(500))

    # Shopify offline token for webhook/background calls (Commerce7 has none)
    access_token = db.Column(db.Text)

    setup_complete = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    club_program = db.relationship('ClubProgram', backref='client', uselist=False, cascade='all, delete-orphan')
    customers = db.relationship('Customer', backref='client', lazy='dynamic', cascade='all, delete-orphan')

    @classmethod
    def find_by_tenant(cls, crm_type: str, tenant_shop: str):
        return cls.query.filter_by(crm_type=crm_type, tenant_shop=tenant_shop).first()

    def __repr__(self):
        return f'<Client {self.crm_type}:{self.tenant_shop}>'

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_shop': self.tenant_shop,
            'crm_type': self.crm_type,
            'org_name': self.org_name,
            'org_contact': self.org_contact,
            'user_email': self.user_email,
            'website_url': self.website_url,
            'setup_complete': self.setup_complete,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
