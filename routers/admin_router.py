"""
Admin Router - payment review, subscription management and plan catalogue endpoints
All endpoints require an admin Principal.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from auth import Principal, require_admin
from backend.utils.responses import success_response
from database import Store, get_store
from models.payment_models import (
    ApprovePaymentRequest,
    CreatePlanRequest,
    PlanOut,
    RejectPaymentRequest,
    SubscriptionOut,
)
from routers.dependencies import get_admin_review_service, get_plan_service
from services.admin_review_service import AdminReviewService
from services.plan_service import PlanService

logger = logging.getLogger(__name__)

# Create admin router
admin_router = APIRouter(prefix="/api/admin/subscription", tags=["admin"])


@admin_router.get("/pending-payments")
async def pending_payments(
    admin: Principal = Depends(require_admin),
    review_service: AdminReviewService = Depends(get_admin_review_service),
):
    payments = await review_service.list_pending_payments()
    return success_response(
        data={"payments": payments, "count": len(payments)},
        message="Pending payments retrieved",
    )


@admin_router.get("/payments")
async def list_payments(
    status: Optional[str] = Query(None),
    method: Optional[str] = Query(None),
    limit: int = Query(300, ge=1, le=300),
    admin: Principal = Depends(require_admin),
    review_service: AdminReviewService = Depends(get_admin_review_service),
):
    """List payments, optionally filtered by status (pending/approved/rejected/all) and payment method"""
    payments = await review_service.list_payments(status=status, payment_method=method, limit=limit)
    return success_response(
        data={"payments": payments, "count": len(payments)},
        message="Payments retrieved",
    )


@admin_router.post("/approve-payment/{payment_id}")
async def approve_payment(
    payment_id: int,
    request: Optional[ApprovePaymentRequest] = Body(None),
    admin: Principal = Depends(require_admin),
    review_service: AdminReviewService = Depends(get_admin_review_service),
):
    result = await review_service.approve_payment(
        payment_id,
        admin.user_id,
        admin_notes=request.admin_notes if request else None,
    )
    message = "Payment already approved" if result.already_processed else "Payment approved and subscription activated"
    return success_response(data=result, message=message)


@admin_router.post("/reject-payment/{payment_id}")
async def reject_payment(
    payment_id: int,
    request: Optional[RejectPaymentRequest] = Body(None),
    admin: Principal = Depends(require_admin),
    review_service: AdminReviewService = Depends(get_admin_review_service),
):
    result = await review_service.reject_payment(
        payment_id,
        admin.user_id,
        reason=request.reason if request else None,
    )
    message = "Payment already rejected" if result.already_processed else "Payment rejected"
    return success_response(data=result, message=message)


@admin_router.get("/subscriptions")
async def list_subscriptions(
    admin: Principal = Depends(require_admin),
    review_service: AdminReviewService = Depends(get_admin_review_service),
):
    subscriptions = await review_service.list_subscriptions()
    return success_response(
        data={"subscriptions": subscriptions, "count": len(subscriptions)},
        message="Subscriptions retrieved",
    )


@admin_router.post("/cancel-subscription/{user_id}")
async def cancel_subscription(
    user_id: str,
    admin: Principal = Depends(require_admin),
    review_service: AdminReviewService = Depends(get_admin_review_service),
):
    subscription = await review_service.cancel_subscription(user_id, admin.user_id)
    return success_response(
        data={"subscription": SubscriptionOut.model_validate(subscription)},
        message="Subscription cancelled",
    )


@admin_router.get("/plans")
async def list_all_plans(
    admin: Principal = Depends(require_admin),
    plan_service: PlanService = Depends(get_plan_service),
):
    plans = await plan_service.list_plans()
    return success_response(data={"plans": [PlanOut.model_validate(plan) for plan in plans]})


@admin_router.post("/plans")
async def create_plan(
    request: CreatePlanRequest,
    admin: Principal = Depends(require_admin),
    plan_service: PlanService = Depends(get_plan_service),
):
    plan = await plan_service.create_plan(
        name=request.name,
        price=request.price,
        duration_days=request.duration_days,
        description=request.description,
        features=request.features,
        is_active=request.is_active,
    )
    logger.info(f"Plan {plan.id} created by admin {admin.user_id}")
    return success_response(data={"plan": PlanOut.model_validate(plan)}, message="Plan created", status=201)


@admin_router.get("/dashboard-stats")
async def dashboard_stats(
    admin: Principal = Depends(require_admin),
    review_service: AdminReviewService = Depends(get_admin_review_service),
):
    stats = await review_service.dashboard_stats()
    return success_response(data=stats, message="Dashboard stats retrieved")


@admin_router.get("/health")
async def admin_health(
    admin: Principal = Depends(require_admin),
    store: Store = Depends(get_store),
):
    await store.ping()
    return success_response(data={"status": "healthy", "database": "connected"}, message="Admin API healthy")
