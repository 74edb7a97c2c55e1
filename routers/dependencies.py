"""
FastAPI dependencies wiring the opened Store into the workflow services
"""
from fastapi import Depends

from database import Store, get_store
from services.admin_review_service import AdminReviewService
from services.entitlement_service import EntitlementService
from services.payment_service import PaymentService
from services.plan_service import PlanService
from services.trial_service import TrialService
from utils.clock import utcnow


def get_clock():
    """Overridden in tests to freeze or advance time."""
    return utcnow


def get_trial_service(store: Store = Depends(get_store), clock=Depends(get_clock)) -> TrialService:
    return TrialService(store, clock=clock)


def get_payment_service(store: Store = Depends(get_store), clock=Depends(get_clock)) -> PaymentService:
    return PaymentService(store, clock=clock)


def get_entitlement_service(store: Store = Depends(get_store), clock=Depends(get_clock)) -> EntitlementService:
    return EntitlementService(store, clock=clock)


def get_admin_review_service(store: Store = Depends(get_store), clock=Depends(get_clock)) -> AdminReviewService:
    return AdminReviewService(store, clock=clock)


def get_plan_service(store: Store = Depends(get_store), clock=Depends(get_clock)) -> PlanService:
    return PlanService(store, clock=clock)
