"""
EntitlementRepository for trial, subscription period and Pro flag records
"""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database_models import (
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_INACTIVE,
    Payment,
    SubscriptionPlan,
    UserEntitlement,
    UserSubscription,
    UserTrial,
)


class EntitlementRepository:
    """
    Repository class for the Entitlement Store.
    Encapsulates all database logic for UserEntitlement, UserTrial and UserSubscription.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    # ------------------------------------------------------------------
    # Entitlement (Pro flag)
    # ------------------------------------------------------------------
    async def get_entitlement(self, user_id: str, for_update: bool = False) -> Optional[UserEntitlement]:
        stmt = select(UserEntitlement).where(UserEntitlement.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def grant_pro(self, user_id: str, now: datetime, ends_at: Optional[datetime]) -> UserEntitlement:
        """
        Upsert the entitlement to Pro with an active subscription period.
        ``pro_since`` is kept only while the stored period is still running at ``now``;
        after a lapse it restarts.

        Args:
            user_id: External user id
            now: Approval timestamp
            ends_at: End of the subscription period granted by the approval

        Returns:
            The updated UserEntitlement
        """
        entitlement = await self.get_entitlement(user_id, for_update=True)
        if entitlement is None:
            entitlement = UserEntitlement(user_id=user_id)
            self.db.add(entitlement)

        still_pro = bool(entitlement.is_pro) and entitlement.pro_since is not None and (
            entitlement.subscription_ends_at is None or now < entitlement.subscription_ends_at
        )
        if not still_pro:
            entitlement.pro_since = now
        entitlement.is_pro = True
        entitlement.subscription_status = SUBSCRIPTION_ACTIVE
        entitlement.subscription_ends_at = ends_at
        entitlement.updated_at = now

        await self.db.flush()
        return entitlement

    async def revoke_pro(self, user_id: str, now: datetime, status: str) -> Optional[UserEntitlement]:
        entitlement = await self.get_entitlement(user_id, for_update=True)
        if entitlement is None:
            return None
        entitlement.is_pro = False
        entitlement.subscription_status = status
        entitlement.subscription_ends_at = now
        entitlement.updated_at = now
        await self.db.flush()
        return entitlement

    # ------------------------------------------------------------------
    # Trials
    # ------------------------------------------------------------------
    async def get_trial(self, user_id: str) -> Optional[UserTrial]:
        result = await self.db.execute(
            select(UserTrial).where(UserTrial.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def create_trial(
        self,
        user_id: str,
        started_at: datetime,
        ends_at: datetime,
        is_active: bool,
    ) -> UserTrial:
        """
        Insert the trial record for a user.
        The unique index on user_id raises IntegrityError on a second insert.
        """
        trial = UserTrial(
            user_id=user_id,
            trial_started_at=started_at,
            trial_ends_at=ends_at,
            is_active=is_active,
            created_at=started_at,
        )
        self.db.add(trial)
        await self.db.flush()
        return trial

    async def skip_trial(self, user_id: str, now: datetime) -> UserTrial:
        """Mark the trial consumed with a zero-length window, creating it if missing."""
        trial = await self.get_trial(user_id)
        if trial is None:
            return await self.create_trial(user_id, now, now, is_active=False)

        trial.is_active = False
        trial.trial_started_at = now
        trial.trial_ends_at = now
        await self.db.flush()
        return trial

    async def consume_trial(self, user_id: str, now: datetime) -> UserTrial:
        """Deactivate the trial keeping its dates, or create it already consumed."""
        trial = await self.get_trial(user_id)
        if trial is None:
            return await self.create_trial(user_id, now, now, is_active=False)

        if trial.is_active:
            trial.is_active = False
            await self.db.flush()
        return trial

    # ------------------------------------------------------------------
    # Subscription periods
    # ------------------------------------------------------------------
    async def get_active_subscription(
        self,
        user_id: str,
        for_update: bool = False,
        unexpired_at: Optional[datetime] = None,
    ) -> Optional[UserSubscription]:
        """Newest active subscription row; with ``unexpired_at`` only one whose period is still running then."""
        stmt = (
            select(UserSubscription)
            .where(
                UserSubscription.user_id == user_id,
                UserSubscription.status == SUBSCRIPTION_ACTIVE,
            )
            .order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc())
        )
        if unexpired_at is not None:
            stmt = stmt.where(UserSubscription.end_date > unexpired_at)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_subscription_for_payment(self, payment_id: int) -> Optional[UserSubscription]:
        result = await self.db.execute(
            select(UserSubscription)
            .where(UserSubscription.payment_id == payment_id)
            .order_by(UserSubscription.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_latest_subscription(self, user_id: str) -> Optional[Tuple[UserSubscription, Optional[str]]]:
        """Most recent subscription row for a user with its (possibly missing) plan name."""
        result = await self.db.execute(
            select(UserSubscription, SubscriptionPlan.name)
            .outerjoin(SubscriptionPlan, UserSubscription.plan_id == SubscriptionPlan.id)
            .where(UserSubscription.user_id == user_id)
            .order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc())
            .limit(1)
        )
        row = result.first()
        return (row[0], row[1]) if row else None

    async def has_expired_subscription(self, user_id: str, now: datetime) -> bool:
        result = await self.db.execute(
            select(func.count(UserSubscription.id)).where(
                UserSubscription.user_id == user_id,
                UserSubscription.end_date <= now,
            )
        )
        return (result.scalar() or 0) > 0

    async def deactivate_active_subscriptions(self, user_id: str) -> int:
        result = await self.db.execute(
            update(UserSubscription)
            .where(
                UserSubscription.user_id == user_id,
                UserSubscription.status == SUBSCRIPTION_ACTIVE,
            )
            .values(status=SUBSCRIPTION_INACTIVE)
        )
        return result.rowcount or 0

    async def create_subscription(
        self,
        user_id: str,
        plan_id: Optional[int],
        payment_id: Optional[int],
        start_date: datetime,
        end_date: datetime,
    ) -> UserSubscription:
        subscription = UserSubscription(
            user_id=user_id,
            plan_id=plan_id,
            payment_id=payment_id,
            status=SUBSCRIPTION_ACTIVE,
            start_date=start_date,
            end_date=end_date,
            created_at=start_date,
        )
        self.db.add(subscription)
        await self.db.flush()
        return subscription

    async def count_active_subscriptions(self, now: datetime) -> int:
        result = await self.db.execute(
            select(func.count(UserSubscription.id)).where(
                UserSubscription.status == SUBSCRIPTION_ACTIVE,
                UserSubscription.end_date > now,
            )
        )
        return result.scalar() or 0

    async def list_subscriptions(self) -> List[tuple]:
        """
        All subscription rows, newest first, each joined with its own payment and plan.

        Returns:
            List of (UserSubscription, user_email, user_name, plan_name, plan_price)
        """
        result = await self.db.execute(
            select(
                UserSubscription,
                Payment.user_email,
                Payment.user_name,
                SubscriptionPlan.name,
                SubscriptionPlan.price,
            )
            .outerjoin(Payment, UserSubscription.payment_id == Payment.id)
            .outerjoin(SubscriptionPlan, UserSubscription.plan_id == SubscriptionPlan.id)
            .order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc())
        )
        return [tuple(row) for row in result.all()]
