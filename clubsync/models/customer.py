"""
Customer model - local mirror of a platform customer.
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import case, func
from ..extensions import db


class Customer(db.Model):
    __tablename__ = 'customers'
    __table_args__ = (
        db.UniqueConstraint('client_id', 'crm_id', name='uq_customers_client_crm'),
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False, index=True)
    crm_id = db.Column(db.String(100), nullable=False)

    email = db.Column(db.String(255), index=True)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    phone = db.Column(db.String(50))

    is_club_member = db.Column(db.Boolean, default=False)
    lifetime_value = db.Column(db.Numeric(12, 2), default=Decimal('0'))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    enrollments = db.relationship('ClubEnrollment', backref='customer', lazy='dynamic', cascade='all, delete-orphan')
    orders = db.relationship('CustomerOrder', backref='customer', lazy='dynamic', cascade='all, delete-orphan')

    @property
    def active_enrollment(self):
        from .club import ClubEnrollment
        return self.enrollments.filter_by(status=ClubEnrollment.STATUS_ACTIVE).first()

    @classmethod
    def add_lifetime_value(cls, customer_id: int, amount: Decimal):
        """
        Apply an order total (or a negative refund) in a single UPDATE.

        Never goes below zero. Loaded instances are not refreshed; callers
        refresh after commit.
        """
        new_value = func.coalesce(cls.lifetime_value, 0) + Decimal(str(amount))
        return cls.query.filter_by(id=customer_id).update(
            {cls.lifetime_value: case((new_value < 0, 0), else_=new_value)},
            synchronize_session=False,
        )

    def __repr__(self):
        return f'<Customer {self.email}>'

    def to_dict(self):
        enrollment = self.active_enrollment
        return {
            'id': self.id,
            'client_id': self.client_id,
            'crm_id': self.crm_id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'phone': self.phone,
            'is_club_member': self.is_club_member,
            'lifetime_value': float(self.lifetime_value or 0),
            'active_enrollment': enrollment.to_dict() if enrollment else None,
        }


class CustomerOrder(db.Model):
    """
    Orders already counted toward a customer's lifetime value.

    Keyed by the platform order ID so a redelivered orders/create webhook
    is only counted once.
    """
    __tablename__ = 'customer_orders'
    __table_args__ = (
        db.UniqueConstraint('client_id', 'crm_order_id', name='uq_customer_orders_client_order'),
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False, index=True)
    crm_order_id = db.Column(db.String(100), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<CustomerOrder {self.crm_order_id} {self.total}>'
