"""
Subscription Router - user-facing trial, payment and entitlement endpoints
"""
import logging

from fastapi import APIRouter, Depends

from auth import Principal, get_current_user
from backend.utils.responses import success_response
from models.payment_models import PaymentOut, PlanOut, SubmitPaymentRequest, TrialOut
from routers.dependencies import (
    get_entitlement_service,
    get_payment_service,
    get_plan_service,
    get_trial_service,
)
from services.entitlement_service import EntitlementService
from services.payment_service import PaymentService
from services.plan_service import PlanService
from services.trial_service import TrialService

logger = logging.getLogger(__name__)

# Create subscription router
subscription_router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@subscription_router.get("/plans")
async def list_plans(plan_service: PlanService = Depends(get_plan_service)):
    """Public: active plans, cheapest first"""
    plans = await plan_service.list_active_plans()
    return success_response(
        data={"plans": [PlanOut.model_validate(plan) for plan in plans]},
        message="Plans retrieved successfully",
    )


@subscription_router.get("/onboarding-status")
async def onboarding_status(
    current_user: Principal = Depends(get_current_user),
    trial_service: TrialService = Depends(get_trial_service),
):
    status = await trial_service.get_onboarding_status(current_user.user_id)
    return success_response(data=status, message="Onboarding status retrieved")


@subscription_router.post("/start-trial")
async def start_trial(
    current_user: Principal = Depends(get_current_user),
    trial_service: TrialService = Depends(get_trial_service),
):
    trial = await trial_service.start_trial(current_user.user_id)
    return success_response(
        data={"trial": TrialOut.model_validate(trial)},
        message="Free trial started",
        status=201,
    )


@subscription_router.post("/skip-trial")
async def skip_trial(
    current_user: Principal = Depends(get_current_user),
    trial_service: TrialService = Depends(get_trial_service),
):
    trial = await trial_service.skip_trial(current_user.user_id)
    return success_response(data={"trial": TrialOut.model_validate(trial)}, message="Trial skipped")


@subscription_router.get("/my-subscription")
async def my_subscription(
    current_user: Principal = Depends(get_current_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service),
):
    summary = await entitlement_service.get_subscription_summary(current_user.user_id)
    return success_response(data=summary, message=summary.message or "OK")


@subscription_router.get("/pro-status")
async def pro_status(
    current_user: Principal = Depends(get_current_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service),
):
    status = await entitlement_service.get_pro_status(current_user.user_id)
    return success_response(data=status, message="Pro status retrieved")


@subscription_router.post("/submit-payment")
async def submit_payment(
    request: SubmitPaymentRequest,
    current_user: Principal = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
):
    """
    Submit a payment for admin review.

    The payment stays pending until an administrator approves or rejects it.
    Submitting consumes the user's free trial.
    """
    payment = await payment_service.submit_payment(
        current_user.user_id,
        amount=request.amount,
        transaction_id=request.transaction_id,
        plan_id=request.plan_id,
        metadata={
            "payment_method": request.payment_method,
            "user_email": request.user_email or current_user.email,
            "user_name": request.user_name,
        },
    )
    return success_response(
        data={"payment": PaymentOut.model_validate(payment)},
        message="Payment submitted successfully. Waiting for admin approval.",
        status=201,
    )


@subscription_router.get("/payment-history")
async def payment_history(
    current_user: Principal = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
):
    payments = await payment_service.get_payment_history(current_user.user_id)
    return success_response(data={"payments": payments}, message="Payment history retrieved")
