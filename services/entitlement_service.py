"""
Entitlement Service - read-side view of a user's paid access
"""
import logging
import math
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from crud.entitlement import EntitlementRepository
from database import Store
from database_models import (
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_EXPIRED,
    SUBSCRIPTION_NONE,
    UserEntitlement,
)
from models.payment_models import ProStatus, SubscriptionSummary
from utils.clock import utcnow

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def effective_pro(entitlement: Optional[UserEntitlement], now: datetime) -> bool:
    """Stored Pro flag, cut off at the subscription end date."""
    if entitlement is None or not entitlement.is_pro:
        return False
    ends_at = entitlement.subscription_ends_at
    return ends_at is None or now < ends_at


def days_until(moment: datetime, now: datetime) -> int:
    remaining = (moment - now).total_seconds()
    return max(0, math.ceil(remaining / SECONDS_PER_DAY))


class EntitlementService:
    """
    Service answering "does this user have paid access right now?".
    Expiry is evaluated at read time; nothing is written here.
    """

    def __init__(self, store: Store, clock=utcnow):
        self.store = store
        self.clock = clock

    async def get_pro_status(self, user_id: str) -> ProStatus:
        """
        Get the effective Pro status of a user.

        Args:
            user_id: External user id

        Returns:
            ProStatus. Users without an entitlement record are reported as not Pro with status "none".
        """
        now = self.clock()

        async def _read(session: AsyncSession):
            return await EntitlementRepository(session).get_entitlement(user_id)

        entitlement = await self.store.run(_read)
        if entitlement is None:
            return ProStatus(is_pro=False, subscription_status=SUBSCRIPTION_NONE)

        is_pro = effective_pro(entitlement, now)
        status = entitlement.subscription_status
        if entitlement.is_pro and not is_pro:
            status = SUBSCRIPTION_EXPIRED

        return ProStatus(
            is_pro=is_pro,
            pro_since=entitlement.pro_since,
            subscription_status=status,
            subscription_ends_at=entitlement.subscription_ends_at,
        )

    async def get_subscription_summary(self, user_id: str) -> SubscriptionSummary:
        """
        Summarize the user's subscription for the "my subscription" screen.

        The result status is "pro" while an active subscription period runs,
        "trial" while the free trial runs, and "inactive" otherwise.
        """
        now = self.clock()

        async def _read(session: AsyncSession):
            repo = EntitlementRepository(session)
            return (
                await repo.get_latest_subscription(user_id),
                await repo.get_trial(user_id),
                await repo.has_expired_subscription(user_id, now),
            )

        latest, trial, had_subscription = await self.store.run(_read)

        if latest is not None:
            subscription, plan_name = latest
            if subscription.status == SUBSCRIPTION_ACTIVE and now < subscription.end_date:
                days_left = days_until(subscription.end_date, now)
                months_left = math.ceil(days_left / 30)
                return SubscriptionSummary(
                    status="pro",
                    plan_name=plan_name,
                    ends_at=subscription.end_date,
                    days_remaining=days_left,
                    months_remaining=months_left,
                    is_trial_used=trial is not None,
                    message=f"Subscription active - {days_left} days remaining",
                )

        if trial is not None and trial.is_active and now < trial.trial_ends_at:
            days_left = days_until(trial.trial_ends_at, now)
            return SubscriptionSummary(
                status="trial",
                ends_at=trial.trial_ends_at,
                trial_days_left=days_left,
                is_trial_used=True,
                message=f"Free trial active - {days_left} days left",
            )

        if trial is not None:
            message = "Free trial used. Purchase a subscription."
        elif had_subscription:
            message = "Subscription expired. Purchase again."
        else:
            message = "No active subscription"

        return SubscriptionSummary(
            status="inactive",
            is_trial_available=trial is None,
            is_trial_used=trial is not None,
            had_subscription=had_subscription,
            message=message,
        )
