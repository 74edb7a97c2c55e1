"""
Admin Review Service - approve / reject payments and admin-side reads
"""
import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.utils.errors import InvalidStateTransition, NotFound, ValidationError
from config import settings
from crud.entitlement import EntitlementRepository
from crud.payment import PaymentRepository
from crud.plan import PlanRepository
from database import Store
from database_models import (
    PAYMENT_APPROVED,
    PAYMENT_PENDING,
    PAYMENT_REJECTED,
    PAYMENT_STATUSES,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_CANCELLED,
    SUBSCRIPTION_EXPIRED,
    UserSubscription,
)
from models.payment_models import DashboardStats, PaymentOut, ReviewResult, SubscriptionOut
from services.payment_service import payment_view
from utils.clock import utcnow

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 300
RECENT_PAYMENTS_DAYS = 7


class AdminReviewService:
    """
    Service for the administrator side of the payment lifecycle.

    approve/reject lock the payment row for the whole transaction and only
    leave ``pending`` through a conditional update, so two concurrent reviews
    of the same payment cannot both apply. Both are idempotent when repeated
    with the same outcome.
    """

    def __init__(self, store: Store, clock=utcnow, default_duration_days: Optional[int] = None):
        self.store = store
        self.clock = clock
        self.default_duration_days = (
            default_duration_days if default_duration_days is not None else settings.default_plan_duration_days
        )

    async def approve_payment(self, payment_id: int, admin_id: str, admin_notes: Optional[str] = None) -> ReviewResult:
        """
        Approve a pending payment and activate the user's subscription.

        Args:
            payment_id: Payment to approve
            admin_id: Reviewing administrator
            admin_notes: Optional free-text note stored on the payment

        Returns:
            ReviewResult; ``already_processed`` is True when the payment was already approved

        Raises:
            NotFound: Payment does not exist
            InvalidStateTransition: Payment was rejected
        """
        now = self.clock()

        async def _approve(session: AsyncSession) -> ReviewResult:
            payments = PaymentRepository(session)
            entitlements = EntitlementRepository(session)

            payment = await payments.get_payment(payment_id, for_update=True)
            if payment is None:
                raise NotFound("Payment not found")

            user_id = payment.user_id
            plan_id = payment.plan_id
            status = payment.status
            if status == PAYMENT_PENDING:
                claimed = await payments.transition_status(payment.id, PAYMENT_PENDING, {
                    "status": PAYMENT_APPROVED,
                    "admin_id": admin_id,
                    "admin_notes": admin_notes,
                    "processed_at": now,
                })
                if not claimed:
                    # Processed by a concurrent review between our read and our write
                    status = await payments.get_status(payment_id)

            if status == PAYMENT_APPROVED:
                # Report the period this payment granted, not whatever the user holds now
                granted = await entitlements.get_subscription_for_payment(payment_id)
                return ReviewResult(
                    payment_id=payment_id,
                    user_id=user_id,
                    status=PAYMENT_APPROVED,
                    already_processed=True,
                    subscription_ends_at=granted.end_date if granted else None,
                )
            if status != PAYMENT_PENDING:
                raise InvalidStateTransition(f"Payment already {status}")

            plan = await PlanRepository(session).get_plan(plan_id) if plan_id else None
            duration_days = plan.duration_days if plan is not None else self.default_duration_days
            ends_at = now + timedelta(days=duration_days)

            await entitlements.deactivate_active_subscriptions(user_id)
            await entitlements.create_subscription(
                user_id,
                plan_id=plan.id if plan is not None else None,
                payment_id=payment_id,
                start_date=now,
                end_date=ends_at,
            )
            await entitlements.grant_pro(user_id, now, ends_at)

            return ReviewResult(
                payment_id=payment_id,
                user_id=user_id,
                status=PAYMENT_APPROVED,
                subscription_ends_at=ends_at,
            )

        result = await self.store.run(_approve)
        if result.already_processed:
            logger.info(f"Payment {payment_id} already approved; approval by {admin_id} was a no-op")
        else:
            logger.info(
                f"Payment {payment_id} approved by {admin_id}; user {result.user_id} is Pro until "
                f"{result.subscription_ends_at.isoformat()}"
            )
        return result

    async def reject_payment(self, payment_id: int, admin_id: str, reason: Optional[str]) -> ReviewResult:
        """
        Reject a pending payment. The user's entitlement is not touched.

        Raises:
            ValidationError: Blank reason (checked before anything is read)
            NotFound: Payment does not exist
            InvalidStateTransition: Payment was approved
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Rejection reason is required")

        now = self.clock()

        async def _reject(session: AsyncSession) -> ReviewResult:
            payments = PaymentRepository(session)
            payment = await payments.get_payment(payment_id, for_update=True)
            if payment is None:
                raise NotFound("Payment not found")

            user_id = payment.user_id
            status = payment.status
            if status == PAYMENT_PENDING:
                claimed = await payments.transition_status(payment_id, PAYMENT_PENDING, {
                    "status": PAYMENT_REJECTED,
                    "rejection_reason": reason,
                    "admin_id": admin_id,
                    "processed_at": now,
                })
                if claimed:
                    return ReviewResult(payment_id=payment_id, user_id=user_id, status=PAYMENT_REJECTED)
                status = await payments.get_status(payment_id)

            if status == PAYMENT_REJECTED:
                return ReviewResult(
                    payment_id=payment_id,
                    user_id=user_id,
                    status=PAYMENT_REJECTED,
                    already_processed=True,
                )
            raise InvalidStateTransition(f"Payment already {status}")

        result = await self.store.run(_reject)
        if result.already_processed:
            logger.info(f"Payment {payment_id} already rejected; rejection by {admin_id} was a no-op")
        else:
            logger.info(f"Payment {payment_id} rejected by {admin_id}: {reason}")
        return result

    async def list_pending_payments(self) -> List[PaymentOut]:
        return await self.list_payments(status=PAYMENT_PENDING)

    async def list_payments(
        self,
        status: Optional[str] = None,
        payment_method: Optional[str] = None,
        limit: int = MAX_LIST_LIMIT,
    ) -> List[PaymentOut]:
        """
        List payments newest first.

        Args:
            status: pending, approved, rejected, or "all"/None for no filter
            payment_method: Exact method filter, or "all"/None for no filter
            limit: Maximum number of rows (capped at 300)
        """
        if status in (None, "", "all"):
            status = None
        elif status not in PAYMENT_STATUSES:
            raise ValidationError(f"Unknown payment status: {status}")
        if payment_method in ("", "all"):
            payment_method = None
        limit = max(1, min(int(limit), MAX_LIST_LIMIT))

        async def _list(session: AsyncSession):
            return await PaymentRepository(session).list_payments(status, payment_method, limit)

        rows = await self.store.run(_list)
        return [payment_view(row) for row in rows]

    async def dashboard_stats(self) -> DashboardStats:
        now = self.clock()
        recent_since = now - timedelta(days=RECENT_PAYMENTS_DAYS)
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

        async def _stats(session: AsyncSession) -> DashboardStats:
            payments = PaymentRepository(session)
            counts = await payments.count_by_status()
            return DashboardStats(
                total_revenue=await payments.total_approved_amount(),
                active_subscriptions=await EntitlementRepository(session).count_active_subscriptions(now),
                pending_payments=counts.get(PAYMENT_PENDING, 0),
                approved_payments=counts.get(PAYMENT_APPROVED, 0),
                rejected_payments=counts.get(PAYMENT_REJECTED, 0),
                recent_payments=await payments.count_submitted_since(recent_since),
                approved_today=await payments.count_approved_since(start_of_day),
            )

        return await self.store.run(_stats)

    async def list_subscriptions(self) -> List[SubscriptionOut]:
        now = self.clock()

        async def _list(session: AsyncSession):
            return await EntitlementRepository(session).list_subscriptions()

        views = []
        for subscription, user_email, user_name, plan_name, plan_price in await self.store.run(_list):
            view = SubscriptionOut.model_validate(subscription)
            if view.status == SUBSCRIPTION_ACTIVE and view.end_date <= now:
                view.status = SUBSCRIPTION_EXPIRED
            view.user_email = user_email
            view.user_name = user_name
            view.plan_name = plan_name
            view.plan_price = plan_price
            views.append(view)
        return views

    async def cancel_subscription(self, user_id: str, admin_id: str) -> UserSubscription:
        """
        End the user's running subscription now and revoke Pro.
        A period that already ran out is left as recorded.

        Raises:
            NotFound: The user has no unexpired active subscription
        """
        now = self.clock()

        async def _cancel(session: AsyncSession) -> UserSubscription:
            entitlements = EntitlementRepository(session)
            subscription = await entitlements.get_active_subscription(user_id, for_update=True, unexpired_at=now)
            if subscription is None:
                raise NotFound("No active subscription for this user")
            subscription.status = SUBSCRIPTION_CANCELLED
            subscription.end_date = now
            await entitlements.revoke_pro(user_id, now, SUBSCRIPTION_CANCELLED)
            await session.flush()
            return subscription

        subscription = await self.store.run(_cancel)
        logger.info(f"Subscription {subscription.id} of user {user_id} cancelled by {admin_id}")
        return subscription
