"""
Plan Service for the subscription plan catalogue
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.utils.errors import ValidationError
from crud.plan import PlanRepository
from database import Store
from database_models import SubscriptionPlan
from utils.clock import utcnow

logger = logging.getLogger(__name__)

MAX_PLAN_NAME_LENGTH = 100
# Numeric(10, 2)
PRICE_DECIMAL_PLACES = 2
MAX_PLAN_PRICE = Decimal("100000000")

DEFAULT_PLAN = {
    "name": "Premium Plan",
    "description": "Unlock all premium features including advanced analytics, unlimited products, and priority support",
    "price": Decimal("200.00"),
    "duration_days": 30,
    "features": [
        "Advanced Analytics",
        "Unlimited Products",
        "Priority Support",
        "Data Export",
        "Custom Reports",
    ],
    "is_active": True,
}


class PlanService:
    """
    Service for reading and maintaining subscription plans.
    """

    def __init__(self, store: Store, clock=utcnow):
        self.store = store
        self.clock = clock

    async def list_active_plans(self) -> List[SubscriptionPlan]:
        async def _list(session: AsyncSession):
            return await PlanRepository(session).list_plans(active_only=True)

        return await self.store.run(_list)

    async def list_plans(self) -> List[SubscriptionPlan]:
        async def _list(session: AsyncSession):
            return await PlanRepository(session).list_plans()

        return await self.store.run(_list)

    async def create_plan(
        self,
        name: str,
        price,
        duration_days: int,
        description: Optional[str] = None,
        features: Optional[List[str]] = None,
        is_active: bool = True,
    ) -> SubscriptionPlan:
        """
        Create a subscription plan.

        Args:
            name: Display name (non-blank)
            price: Plan price, must be > 0
            duration_days: Length of the subscription period granted on approval, must be > 0
            description: Optional description
            features: Optional list of feature labels
            is_active: Whether the plan can be purchased

        Returns:
            Created SubscriptionPlan

        Raises:
            ValidationError: If any field is invalid
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Plan name is required")
        if len(name) > MAX_PLAN_NAME_LENGTH:
            raise ValidationError(f"Plan name must be at most {MAX_PLAN_NAME_LENGTH} characters")
        try:
            price = Decimal(str(price))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError("Plan price must be a number")
        if not price.is_finite() or price <= 0:
            raise ValidationError("Plan price must be greater than zero")
        if price.as_tuple().exponent < -PRICE_DECIMAL_PLACES or price >= MAX_PLAN_PRICE:
            raise ValidationError(
                f"Plan price must be below {MAX_PLAN_PRICE} with at most {PRICE_DECIMAL_PLACES} decimal places"
            )
        if duration_days is None or int(duration_days) <= 0:
            raise ValidationError("Plan duration_days must be greater than zero")

        plan_data = {
            "name": name,
            "description": description,
            "price": price,
            "duration_days": int(duration_days),
            "features": list(features or []),
            "is_active": is_active,
            "created_at": self.clock(),
        }

        async def _create(session: AsyncSession):
            return await PlanRepository(session).create_plan(plan_data)

        plan = await self.store.run(_create)
        logger.info(f"Created subscription plan {plan.id} ({plan.name}, {plan.price} / {plan.duration_days} days)")
        return plan

    async def ensure_default_plan(self) -> Optional[SubscriptionPlan]:
        """
        Seed the default plan when the catalogue is empty.

        Returns:
            The created plan, or None if plans already exist
        """
        plan_data = dict(DEFAULT_PLAN, features=list(DEFAULT_PLAN["features"]), created_at=self.clock())

        async def _seed(session: AsyncSession):
            repo = PlanRepository(session)
            if await repo.count_plans() > 0:
                return None
            return await repo.create_plan(plan_data)

        plan = await self.store.run(_seed)
        if plan is not None:
            logger.info(f"Seeded default subscription plan '{plan.name}'")
        return plan
