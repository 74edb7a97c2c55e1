"""
PlanRepository for the subscription plan catalogue
"""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database_models import SubscriptionPlan


class PlanRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_plan(self, plan_id: int) -> Optional[SubscriptionPlan]:
        return await self.db.get(SubscriptionPlan, plan_id)

    async def get_active_plan(self, plan_id: int) -> Optional[SubscriptionPlan]:
        result = await self.db.execute(
            select(SubscriptionPlan).where(
                SubscriptionPlan.id == plan_id, SubscriptionPlan.is_active.is_(True)
            )
        )
        return result.scalar_one_or_none()

    async def get_default_plan(self) -> Optional[SubscriptionPlan]:
        """Cheapest active plan; used when a submission names no plan."""
        result = await self.db.execute(
            select(SubscriptionPlan)
            .where(SubscriptionPlan.is_active.is_(True))
            .order_by(SubscriptionPlan.price.asc(), SubscriptionPlan.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_plans(self, active_only: bool = False) -> List[SubscriptionPlan]:
        stmt = select(SubscriptionPlan)
        if active_only:
            stmt = stmt.where(SubscriptionPlan.is_active.is_(True))
        result = await self.db.execute(
            stmt.order_by(SubscriptionPlan.price.asc(), SubscriptionPlan.id.asc())
        )
        return list(result.scalars().all())

    async def count_plans(self) -> int:
        result = await self.db.execute(select(func.count(SubscriptionPlan.id)))
        return result.scalar() or 0

    async def create_plan(self, plan_data: dict) -> SubscriptionPlan:
        plan = SubscriptionPlan(**plan_data)
        self.db.add(plan)
        await self.db.flush()
        await self.db.refresh(plan)
        return plan
