"""
Payment Service - user-side payment submission and history
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.utils.errors import (
    AlreadyEntitled,
    AmountMismatch,
    DuplicatePending,
    DuplicateTransaction,
    PlanNotFound,
    ValidationError,
)
from crud.entitlement import EntitlementRepository
from crud.payment import PaymentRepository, PaymentRow
from crud.plan import PlanRepository
from database import Store
from database_models import Payment
from models.payment_models import PaymentOut
from services.entitlement_service import effective_pro
from utils.clock import utcnow

logger = logging.getLogger(__name__)

MAX_TRANSACTION_ID_LENGTH = 100
# Column widths of the optional descriptive fields
METADATA_LIMITS = {"payment_method": 50, "user_email": 255, "user_name": 255}


def payment_view(row: PaymentRow) -> PaymentOut:
    """Flatten a (Payment, plan_name, duration_days) row into the API model."""
    payment, plan_name, duration_days = row
    view = PaymentOut.model_validate(payment)
    view.plan_name = plan_name
    view.duration_days = duration_days
    return view


def parse_amount(amount) -> Decimal:
    if amount is None or (isinstance(amount, str) and not amount.strip()):
        raise ValidationError("Missing required field: amount")
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Amount must be a number")
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than zero")
    return value


def parse_transaction_id(transaction_id) -> str:
    value = "" if transaction_id is None else str(transaction_id).strip()
    if not value:
        raise ValidationError("Missing required field: transaction_id")
    if len(value) > MAX_TRANSACTION_ID_LENGTH:
        raise ValidationError(f"transaction_id must be at most {MAX_TRANSACTION_ID_LENGTH} characters")
    return value


def parse_metadata(metadata: Optional[dict]) -> dict:
    metadata = metadata or {}
    for field, limit in METADATA_LIMITS.items():
        value = metadata.get(field)
        if value is not None and len(str(value)) > limit:
            raise ValidationError(f"{field} must be at most {limit} characters")
    return metadata


class PaymentService:
    """
    Service for recording user payment submissions.

    The unique index on transaction_id and the one-pending-per-user index are
    the real guards; the existence checks here only produce nicer errors.
    """

    def __init__(self, store: Store, clock=utcnow):
        self.store = store
        self.clock = clock

    async def _check_duplicates(self, payments: PaymentRepository, user_id: str, transaction_id: str) -> None:
        if await payments.get_pending_for_user(user_id) is not None:
            raise DuplicatePending()
        if await payments.get_by_transaction_id(transaction_id) is not None:
            raise DuplicateTransaction()

    async def _classify_conflict(self, user_id: str, transaction_id: str) -> Optional[Exception]:
        """Map an integrity violation to the domain conflict it represents."""

        async def _read(session: AsyncSession):
            payments = PaymentRepository(session)
            if await payments.get_pending_for_user(user_id) is not None:
                return DuplicatePending()
            if await payments.get_by_transaction_id(transaction_id) is not None:
                return DuplicateTransaction()
            return None

        return await self.store.run(_read)

    async def submit_payment(
        self,
        user_id: str,
        amount,
        transaction_id,
        plan_id: Optional[int] = None,
        metadata: Optional[dict] = None,
    ) -> Payment:
        """
        Record a pending payment for admin review.

        Checks run in order and the first failure wins: field validation
        (amount, transaction id, plan, exact price match), then already-Pro,
        then an existing pending payment, then a reused transaction id.
        On success the payment is inserted and the user's trial consumed in
        one transaction.

        Args:
            user_id: External user id
            amount: Submitted amount, must equal the plan price exactly
            transaction_id: Opaque transaction code supplied by the user
            plan_id: Plan being paid for; the default plan when omitted
            metadata: Optional payment_method, user_email, user_name

        Returns:
            The created pending Payment

        Raises:
            ValidationError, PlanNotFound, AmountMismatch, AlreadyEntitled,
            DuplicatePending, DuplicateTransaction
        """
        value = parse_amount(amount)
        tx_id = parse_transaction_id(transaction_id)
        metadata = parse_metadata(metadata)
        now = self.clock()

        async def _submit(session: AsyncSession) -> Payment:
            plans = PlanRepository(session)
            plan = await plans.get_active_plan(plan_id) if plan_id is not None else await plans.get_default_plan()
            if plan is None:
                raise PlanNotFound()
            if value != plan.price:
                raise AmountMismatch(f"Amount {value} does not match plan price {plan.price}")

            entitlements = EntitlementRepository(session)
            if effective_pro(await entitlements.get_entitlement(user_id), now):
                raise AlreadyEntitled()

            payments = PaymentRepository(session)
            await self._check_duplicates(payments, user_id, tx_id)

            payment = await payments.create_payment({
                "user_id": user_id,
                "user_email": metadata.get("user_email"),
                "user_name": metadata.get("user_name"),
                "plan_id": plan.id,
                "amount": value,
                "payment_method": metadata.get("payment_method"),
                "transaction_id": tx_id,
                "submitted_at": now,
            })
            await entitlements.consume_trial(user_id, now)
            return payment

        for attempt in range(2):
            try:
                payment = await self.store.run(_submit)
                break
            except IntegrityError as e:
                conflict = await self._classify_conflict(user_id, tx_id)
                if conflict is not None:
                    logger.warning(f"Payment submission for user {user_id} rejected by storage constraint: {conflict.code}")
                    raise conflict from e
                if attempt == 1:
                    raise
                # Only the trial insert raced; the trial row now exists so the next attempt updates it
                logger.info(f"Retrying submission for user {user_id} after concurrent trial insert")

        logger.info(f"Payment {payment.id} submitted by user {user_id}: {payment.amount} (tx {tx_id})")
        return payment

    async def get_payment_history(self, user_id: str) -> List[PaymentOut]:
        async def _list(session: AsyncSession):
            return await PaymentRepository(session).list_for_user(user_id)

        rows = await self.store.run(_list)
        return [payment_view(row) for row in rows]
