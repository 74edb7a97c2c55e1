"""
Trial Service for the single-use free trial and onboarding state
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.utils.errors import AlreadyUsed
from config import settings
from crud.entitlement import EntitlementRepository
from database import Store
from database_models import UserTrial
from models.payment_models import OnboardingStatus
from services.entitlement_service import effective_pro
from utils.clock import utcnow

logger = logging.getLogger(__name__)

STATE_ACTIVE_SUBSCRIPTION = "has_active_subscription"
STATE_TRIAL_ACTIVE = "trial_active"
STATE_TRIAL_USED = "trial_expired_or_skipped"
STATE_ELIGIBLE = "eligible_for_trial"


def is_trial_active(trial: Optional[UserTrial], now: datetime) -> bool:
    """
    Check if a trial is currently active.

    A trial is active if the record exists, is flagged active and its end
    date has not passed. Nothing ever extends or re-activates a trial.

    Args:
        trial: UserTrial record or None
        now: Current time

    Returns:
        True if trial is active, False otherwise
    """
    if trial is None or not trial.is_active:
        return False
    return now < trial.trial_ends_at


class TrialService:
    """
    Service for managing user trial periods.
    Handles onboarding state, trial start and trial skip.
    """

    def __init__(self, store: Store, clock=utcnow, trial_days: Optional[int] = None):
        """
        Initialize the trial service.

        Args:
            store: Open Store handle
            clock: Callable returning the current naive UTC datetime
            trial_days: Trial length, defaults to TRIAL_DAYS from settings
        """
        self.store = store
        self.clock = clock
        self.trial_days = trial_days if trial_days is not None else settings.trial_days

    async def get_onboarding_status(self, user_id: str) -> OnboardingStatus:
        now = self.clock()

        async def _read(session: AsyncSession):
            repo = EntitlementRepository(session)
            return await repo.get_entitlement(user_id), await repo.get_trial(user_id)

        entitlement, trial = await self.store.run(_read)

        is_pro = effective_pro(entitlement, now)
        if is_pro:
            state = STATE_ACTIVE_SUBSCRIPTION
        elif is_trial_active(trial, now):
            state = STATE_TRIAL_ACTIVE
        elif trial is not None:
            state = STATE_TRIAL_USED
        else:
            state = STATE_ELIGIBLE

        return OnboardingStatus(
            state=state,
            show_welcome=state == STATE_ELIGIBLE,
            is_pro=is_pro,
            trial_ends_at=trial.trial_ends_at if trial is not None else None,
        )

    async def start_trial(self, user_id: str) -> UserTrial:
        """
        Start the free trial for a user.

        Args:
            user_id: External user id

        Returns:
            The new active UserTrial

        Raises:
            AlreadyUsed: If the user has any trial record (active, expired or skipped)
        """
        now = self.clock()
        ends_at = now + timedelta(days=self.trial_days)

        async def _start(session: AsyncSession):
            repo = EntitlementRepository(session)
            if await repo.get_trial(user_id) is not None:
                raise AlreadyUsed()
            return await repo.create_trial(user_id, now, ends_at, is_active=True)

        try:
            trial = await self.store.run(_start)
        except IntegrityError:
            # Lost the race against a concurrent insert for the same user
            logger.info(f"Concurrent trial start for user {user_id} rejected by unique constraint")
            raise AlreadyUsed()

        logger.info(f"Trial started for user {user_id}, ends at {ends_at.isoformat()}")
        return trial

    async def skip_trial(self, user_id: str) -> UserTrial:
        """Consume the trial without using it. Safe to call repeatedly."""
        now = self.clock()

        async def _skip(session: AsyncSession):
            return await EntitlementRepository(session).skip_trial(user_id, now)

        try:
            trial = await self.store.run(_skip)
        except IntegrityError:
            # A concurrent call created the record first; the update path is now safe
            trial = await self.store.run(_skip)

        logger.info(f"Trial skipped for user {user_id}")
        return trial
