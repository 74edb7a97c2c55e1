"""
PaymentRepository for the payment ledger
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database_models import PAYMENT_APPROVED, PAYMENT_PENDING, Payment, SubscriptionPlan

PaymentRow = Tuple[Payment, Optional[str], Optional[int]]


class PaymentRepository:
    """
    Repository class for Payment database operations.
    Rows are only inserted here and mutated by the admin review workflow; never deleted.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_payment(self, payment_id: int, for_update: bool = False) -> Optional[Payment]:
        """
        Retrieve a payment by id.

        Args:
            payment_id: Payment id
            for_update: Take a row lock (SELECT ... FOR UPDATE) for the rest of the transaction

        Returns:
            Payment if found, None otherwise
        """
        stmt = select(Payment).where(Payment.id == payment_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def transition_status(self, payment_id: int, from_status: str, values: dict) -> bool:
        """
        Move a payment out of ``from_status`` only if it is still in it.

        Args:
            payment_id: Payment id
            from_status: Status the payment must currently have
            values: Column values to set, including the new status

        Returns:
            True if this call performed the transition, False if another writer got there first
        """
        result = await self.db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == from_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_status(self, payment_id: int) -> Optional[str]:
        result = await self.db.execute(select(Payment.status).where(Payment.id == payment_id))
        return result.scalar_one_or_none()

    async def get_pending_for_user(self, user_id: str) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment)
            .where(Payment.user_id == user_id, Payment.status == PAYMENT_PENDING)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment).where(Payment.transaction_id == transaction_id).limit(1)
        )
        return result.scalar_one_or_none()

    async def create_payment(self, payment_data: dict) -> Payment:
        """
        Insert a pending payment.

        Args:
            payment_data: Column values. Must include user_id, amount, transaction_id, submitted_at

        Returns:
            Created Payment (flushed, id assigned)

        Raises:
            IntegrityError: On a duplicate transaction id or a second pending payment for the user
        """
        payment = Payment(status=PAYMENT_PENDING, **payment_data)
        self.db.add(payment)
        await self.db.flush()
        await self.db.refresh(payment)
        return payment

    async def has_approved_payment(self, user_id: str) -> bool:
        result = await self.db.execute(
            select(func.count(Payment.id)).where(
                Payment.user_id == user_id, Payment.status == PAYMENT_APPROVED
            )
        )
        return (result.scalar() or 0) > 0

    def _with_plan(self):
        return (
            select(Payment, SubscriptionPlan.name, SubscriptionPlan.duration_days)
            .outerjoin(SubscriptionPlan, Payment.plan_id == SubscriptionPlan.id)
        )

    async def list_for_user(self, user_id: str) -> List[PaymentRow]:
        result = await self.db.execute(
            self._with_plan()
            .where(Payment.user_id == user_id)
            .order_by(Payment.submitted_at.desc(), Payment.id.desc())
        )
        return [tuple(row) for row in result.all()]

    async def list_payments(
        self,
        status: Optional[str] = None,
        payment_method: Optional[str] = None,
        limit: int = 300,
    ) -> List[PaymentRow]:
        stmt = self._with_plan()
        if status:
            stmt = stmt.where(Payment.status == status)
        if payment_method:
            stmt = stmt.where(Payment.payment_method == payment_method)
        result = await self.db.execute(
            stmt.order_by(Payment.submitted_at.desc(), Payment.id.desc()).limit(limit)
        )
        return [tuple(row) for row in result.all()]

    async def count_by_status(self) -> Dict[str, int]:
        result = await self.db.execute(
            select(Payment.status, func.count(Payment.id)).group_by(Payment.status)
        )
        return {status: int(count) for status, count in result.all()}

    async def total_approved_amount(self) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.status == PAYMENT_APPROVED)
        )
        return Decimal(str(result.scalar() or 0))

    async def count_submitted_since(self, since: datetime) -> int:
        result = await self.db.execute(
            select(func.count(Payment.id)).where(Payment.submitted_at >= since)
        )
        return result.scalar() or 0

    async def count_approved_since(self, since: datetime) -> int:
        result = await self.db.execute(
            select(func.count(Payment.id)).where(
                Payment.status == PAYMENT_APPROVED, Payment.processed_at >= since
            )
        )
        return result.scalar() or 0
