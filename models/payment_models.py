"""
Request and response models for the subscription and admin review endpoints
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class SubmitPaymentRequest(BaseModel):
    # Optional at the schema level so missing fields surface as VALIDATION_ERROR from the workflow
    amount: Optional[Decimal] = None
    transaction_id: Optional[str] = None
    plan_id: Optional[int] = None
    payment_method: Optional[str] = Field(default=None, max_length=50)
    user_email: Optional[str] = Field(default=None, max_length=255)
    user_name: Optional[str] = Field(default=None, max_length=255)


class ApprovePaymentRequest(BaseModel):
    admin_notes: Optional[str] = None


class RejectPaymentRequest(BaseModel):
    reason: Optional[str] = None


class CreatePlanRequest(BaseModel):
    name: str = Field(max_length=100)
    price: Decimal = Field(max_digits=10, decimal_places=2)
    duration_days: int
    description: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    is_active: bool = True


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class PlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    duration_days: int
    features: List[str] = Field(default_factory=list)
    is_active: bool


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    plan_id: Optional[int] = None
    plan_name: Optional[str] = None
    duration_days: Optional[int] = None
    amount: Decimal
    payment_method: Optional[str] = None
    transaction_id: str
    status: str
    admin_id: Optional[str] = None
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    submitted_at: datetime
    processed_at: Optional[datetime] = None


class TrialOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    trial_started_at: datetime
    trial_ends_at: datetime
    is_active: bool


class OnboardingStatus(BaseModel):
    state: str
    show_welcome: bool
    is_pro: bool
    trial_ends_at: Optional[datetime] = None


class ProStatus(BaseModel):
    is_pro: bool
    pro_since: Optional[datetime] = None
    subscription_status: str
    subscription_ends_at: Optional[datetime] = None


class SubscriptionSummary(BaseModel):
    status: str  # pro, trial or inactive
    plan_name: Optional[str] = None
    ends_at: Optional[datetime] = None
    days_remaining: int = 0
    months_remaining: int = 0
    trial_days_left: int = 0
    is_trial_available: bool = False
    is_trial_used: bool = False
    had_subscription: bool = False
    message: Optional[str] = None


class ReviewResult(BaseModel):
    payment_id: int
    user_id: str
    status: str
    already_processed: bool = False
    subscription_ends_at: Optional[datetime] = None


class DashboardStats(BaseModel):
    total_revenue: Decimal = Decimal("0")
    active_subscriptions: int = 0
    pending_payments: int = 0
    approved_payments: int = 0
    rejected_payments: int = 0
    recent_payments: int = 0
    approved_today: int = 0


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    plan_id: Optional[int] = None
    payment_id: Optional[int] = None
    status: str
    start_date: datetime
    end_date: datetime
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    plan_name: Optional[str] = None
    plan_price: Optional[Decimal] = None
