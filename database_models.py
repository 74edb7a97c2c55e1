from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)

from database import Base
from utils.clock import utcnow

PAYMENT_PENDING = "pending"
PAYMENT_APPROVED = "approved"
PAYMENT_REJECTED = "rejected"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_APPROVED, PAYMENT_REJECTED)

SUBSCRIPTION_NONE = "none"
SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_INACTIVE = "inactive"
SUBSCRIPTION_EXPIRED = "expired"
SUBSCRIPTION_CANCELLED = "cancelled"


class UserEntitlement(Base):
    """
    Paid-access state for one external user id.
    Created lazily on the first approved payment.
    """
    __tablename__ = "user_entitlements"

    user_id = Column(String(255), primary_key=True)
    is_pro = Column(Boolean, default=False, nullable=False)
    pro_since = Column(DateTime, nullable=True)
    subscription_status = Column(String(20), default=SUBSCRIPTION_NONE, nullable=False)
    subscription_ends_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, nullable=False)


class UserTrial(Base):
    """
    Single-use trial record. Skipped trials are stored with a zero-length window.
    """
    __tablename__ = "user_trials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), unique=True, nullable=False, index=True)
    trial_started_at = Column(DateTime, nullable=False)
    trial_ends_at = Column(DateTime, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    duration_days = Column(Integer, nullable=False)
    features = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class UserSubscription(Base):
    """
    Subscription period granted by an approved payment.
    At most one row per user is ``active``; older ones are deactivated on approval.
    """
    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)
    status = Column(String(20), default=SUBSCRIPTION_ACTIVE, nullable=False)
    start_date = Column(DateTime, default=utcnow, nullable=False)
    end_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Payment(Base):
    """
    Ledger row for a user-submitted payment.

    The unique index on ``transaction_id`` and the partial unique index on
    ``user_id`` for pending rows are the authoritative duplicate guards.
    """
    __tablename__ = "payments"
    __table_args__ = (
        Index(
            "uq_payments_one_pending_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    user_email = Column(String(255), nullable=True)
    user_name = Column(String(255), nullable=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(50), nullable=True)
    transaction_id = Column(String(100), unique=True, nullable=False)
    status = Column(String(20), default=PAYMENT_PENDING, nullable=False, index=True)
    admin_id = Column(String(255), nullable=True)
    admin_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    submitted_at = Column(DateTime, default=utcnow, nullable=False)
    processed_at = Column(DateTime, nullable=True)
