"""
Club program, tier (stage) and enrollment models.
"""
from datetime import datetime
from decimal import Decimal
from ..extensions import db


class ClubProgram(db.Model):
    """The wine club a client runs. One per client."""
    __tablename__ = 'club_programs'

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    stages = db.relationship('ClubStage', backref='club_program', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<ClubProgram {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'client_id': self.client_id,
            'name': self.name,
            'description': self.description,
            'is_active': self.is_active,
        }


class ClubStage(db.Model):
    """
    A membership tier within a club program.

    Active tiers are totally ordered by stage_order. Deactivated tiers keep
    their row (enrollments reference them) but drop out of the ordering.
    Thresholds are in the platform currency's major unit; NULL means
    no minimum.
    """
    __tablename__ = 'club_stages'

    SYNC_SYNCED = 'synced'
    SYNC_PENDING = 'pending'
    SYNC_ERROR = 'error'

    id = db.Column(db.Integer, primary_key=True)
    club_program_id = db.Column(db.Integer, db.ForeignKey('club_programs.id'), nullable=False)

    name = db.Column(db.String(100), nullable=False)
    stage_order = db.Column(db.Integer, nullable=True)
    discount_percentage = db.Column(db.Numeric(5, 2), default=Decimal('0'))
    duration_months = db.Column(db.Integer, default=12)
    min_purchase_amount = db.Column(db.Numeric(10, 2))
    min_ltv_amount = db.Column(db.Numeric(10, 2))
    is_active = db.Column(db.Boolean, default=True)
    # Invite-only tiers are never reached by an upgrade unless staff override
    upgradable = db.Column(db.Boolean, default=True, nullable=False)

    # Platform linkage
    crm_club_id = db.Column(db.String(100))
    crm_discount_id = db.Column(db.String(100))
    sync_status = db.Column(db.String(20), default=SYNC_PENDING)
    last_sync_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    enrollments = db.relationship('ClubEnrollment', backref='club_stage', lazy='dynamic', cascade='all, delete-orphan')

    @property
    def slug(self) -> str:
        return '-'.join(self.name.lower().split())

    def deactivate(self):
        """Soft-delete: keep the row, leave the active ordering."""
        self.is_active = False
        self.stage_order = None

    def __repr__(self):
        return f'<ClubStage {self.name} order={self.stage_order}>'

    def to_dict(self):
        return {
            'id': self.id,
            'club_program_id': self.club_program_id,
            'name': self.name,
            'stage_order': self.stage_order,
            'discount_percentage': float(self.discount_percentage) if self.discount_percentage is not None else 0,
            'duration_months': self.duration_months,
            'min_purchase_amount': float(self.min_purchase_amount) if self.min_purchase_amount is not None else None,
            'min_ltv_amount': float(self.min_ltv_amount) if self.min_ltv_amount is not None else None,
            'is_active': self.is_active,
            'upgradable': self.upgradable,
            'crm_club_id': self.crm_club_id,
            'crm_discount_id': self.crm_discount_id,
            'sync_status': self.sync_status,
            'last_sync_at': self.last_sync_at.isoformat() if self.last_sync_at else None,
        }


class ClubEnrollment(db.Model):
    """A customer's membership in one tier for a fixed term."""
    __tablename__ = 'club_enrollments'

    STATUS_ACTIVE = 'active'
    STATUS_UPGRADED = 'upgraded'
    STATUS_EXPIRED = 'expired'
    STATUS_CANCELLED = 'cancelled'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False, index=True)
    club_stage_id = db.Column(db.Integer, db.ForeignKey('club_stages.id'), nullable=False)

    status = db.Column(db.String(20), default=STATUS_ACTIVE, nullable=False)
    enrolled_at = db.Column(db.DateTime, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime)

    crm_membership_id = db.Column(db.String(100), index=True)
    synced_to_crm = db.Column(db.Boolean, default=False)
    crm_sync_at = db.Column(db.DateTime)
    crm_sync_error = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    history = db.relationship(
        'EnrollmentHistory', backref='enrollment', lazy='dynamic',
        cascade='all, delete-orphan', order_by='EnrollmentHistory.id',
    )

    def __repr__(self):
        return f'<ClubEnrollment customer={self.customer_id} stage={self.club_stage_id} {self.status}>'

    def to_dict(self):
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'club_stage_id': self.club_stage_id,
            'tier_name': self.club_stage.name if self.club_stage else None,
            'status': self.status,
            'enrolled_at': self.enrolled_at.isoformat() if self.enrolled_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'crm_membership_id': self.crm_membership_id,
            'synced_to_crm': self.synced_to_crm,
            'crm_sync_error': self.crm_sync_error,
        }


class EnrollmentHistory(db.Model):
    """
    One change to an enrollment: an upgrade into a new tier or a status
    change (expiry, cancellation).

    Upgrades are recorded on the new enrollment, with the tier the member
    left in old_club_stage_id.
    """
    __tablename__ = 'enrollment_history'

    CHANGE_UPGRADE = 'upgrade'
    CHANGE_STATUS = 'status_change'

    SOURCE_STAFF = 'staff'
    SOURCE_AUTO = 'auto'
    SOURCE_EXPIRY = 'expiry'
    SOURCE_WEBHOOK = 'webhook'

    id = db.Column(db.Integer, primary_key=True)
    enrollment_id = db.Column(db.Integer, db.ForeignKey('club_enrollments.id'), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False, index=True)

    change_type = db.Column(db.String(20), nullable=False)
    old_club_stage_id = db.Column(db.Integer, db.ForeignKey('club_stages.id'))
    new_club_stage_id = db.Column(db.Integer, db.ForeignKey('club_stages.id'))
    old_status = db.Column(db.String(20))
    new_status = db.Column(db.String(20))
    new_expires_at = db.Column(db.DateTime)
    source = db.Column(db.String(20))

    changed_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    @classmethod
    def record(cls, enrollment: 'ClubEnrollment', change_type: str, source: str,
               old_status: str, old_club_stage_id: int = None) -> 'EnrollmentHistory':
        """Add a row describing `enrollment` as it now stands. The caller commits."""
        entry = cls(
            customer_id=enrollment.customer_id,
            change_type=change_type,
            old_club_stage_id=old_club_stage_id or enrollment.club_stage_id,
            new_club_stage_id=enrollment.club_stage_id,
            old_status=old_status,
            new_status=enrollment.status,
            new_expires_at=enrollment.expires_at,
            source=source,
        )
        enrollment.history.append(entry)
        return entry

    def __repr__(self):
        return f'<EnrollmentHistory enrollment={self.enrollment_id} {self.change_type}>'

    def to_dict(self):
        return {
            'id': self.id,
            'enrollment_id': self.enrollment_id,
            'change_type': self.change_type,
            'old_club_stage_id': self.old_club_stage_id,
            'new_club_stage_id': self.new_club_stage_id,
            'old_status': self.old_status,
            'new_status': self.new_status,
            'new_expires_at': self.new_expires_at.isoformat() if self.new_expires_at else None,
            'source': self.source,
            'changed_at': self.changed_at.isoformat() if self.changed_at else None,
        }
