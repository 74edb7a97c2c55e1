"""
Unit tests for AdminReviewService: approve / reject state machine, listings, stats, cancellation
"""
import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from backend.utils.errors import InvalidStateTransition, NotFound, ValidationError
from database_models import (
    PAYMENT_APPROVED,
    PAYMENT_PENDING,
    PAYMENT_REJECTED,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_CANCELLED,
    SUBSCRIPTION_INACTIVE,
    Payment,
    UserSubscription,
)


async def load_payment(store, payment_id):
    async def _get(session):
        return await session.get(Payment, payment_id)

    return await store.run(_get)


async def load_subscriptions(store, user_id):
    async def _list(session):
        result = await session.execute(
            select(UserSubscription).where(UserSubscription.user_id == user_id).order_by(UserSubscription.id)
        )
        return list(result.scalars().all())

    return await store.run(_list)


@pytest.mark.asyncio
async def test_approve_activates_pro_for_plan_duration(
    submit, review_service, entitlement_service, plan, store, clock, check_entitlement_invariant
):
    payment = await submit("user-1", "TX1")

    result = await review_service.approve_payment(payment.id, "admin-1", admin_notes="receipt ok")

    assert result.status == PAYMENT_APPROVED
    assert result.already_processed is False
    assert result.user_id == "user-1"
    assert result.subscription_ends_at == clock.now + timedelta(days=30)

    stored = await load_payment(store, payment.id)
    assert stored.status == PAYMENT_APPROVED
    assert stored.admin_id == "admin-1"
    assert stored.admin_notes == "receipt ok"
    assert stored.processed_at == clock.now

    status = await entitlement_service.get_pro_status("user-1")
    assert status.is_pro is True
    assert status.pro_since == clock.now
    assert status.subscription_status == SUBSCRIPTION_ACTIVE
    assert status.subscription_ends_at == clock.now + timedelta(days=30)

    assert await check_entitlement_invariant() == 1


@pytest.mark.asyncio
async def test_approve_twice_is_idempotent(submit, review_service, store, plan, clock):
    payment = await submit("user-1", "TX1")
    first = await review_service.approve_payment(payment.id, "admin-1")

    clock.advance(hours=2)
    second = await review_service.approve_payment(payment.id, "admin-2")

    assert second.already_processed is True
    assert second.status == PAYMENT_APPROVED
    assert second.subscription_ends_at == first.subscription_ends_at

    stored = await load_payment(store, payment.id)
    assert stored.admin_id == "admin-1"
    assert len(await load_subscriptions(store, "user-1")) == 1


@pytest.mark.asyncio
async def test_concurrent_approvals_apply_once(submit, review_service, store, plan):
    payment = await submit("user-1", "TX1")

    results = await asyncio.gather(
        review_service.approve_payment(payment.id, "admin-1"),
        review_service.approve_payment(payment.id, "admin-2"),
    )

    assert sorted(r.already_processed for r in results) == [False, True]
    assert len(await load_subscriptions(store, "user-1")) == 1


@pytest.mark.asyncio
async def test_approve_unknown_payment_fails_not_found(review_service):
    with pytest.raises(NotFound):
        await review_service.approve_payment(424242, "admin-1")


@pytest.mark.asyncio
async def test_approve_after_reject_fails_without_mutation(submit, review_service, entitlement_service, store, plan):
    payment = await submit("user-1", "TX1")
    await review_service.reject_payment(payment.id, "admin-1", "unverifiable")

    with pytest.raises(InvalidStateTransition):
        await review_service.approve_payment(payment.id, "admin-2")

    stored = await load_payment(store, payment.id)
    assert stored.status == PAYMENT_REJECTED
    assert stored.admin_id == "admin-1"
    assert (await entitlement_service.get_pro_status("user-1")).is_pro is False


@pytest.mark.asyncio
async def test_reject_after_approve_fails_without_mutation(submit, review_service, entitlement_service, store, plan):
    payment = await submit("user-1", "TX1")
    await review_service.approve_payment(payment.id, "admin-1")

    with pytest.raises(InvalidStateTransition):
        await review_service.reject_payment(payment.id, "admin-2", "changed my mind")

    stored = await load_payment(store, payment.id)
    assert stored.status == PAYMENT_APPROVED
    assert stored.rejection_reason is None
    assert (await entitlement_service.get_pro_status("user-1")).is_pro is True


@pytest.mark.asyncio
@pytest.mark.parametrize("reason", [None, "", "   "])
async def test_reject_requires_reason(submit, review_service, store, plan, reason):
    payment = await submit("user-1", "TX1")

    with pytest.raises(ValidationError):
        await review_service.reject_payment(payment.id, "admin-1", reason)

    assert (await load_payment(store, payment.id)).status == PAYMENT_PENDING


@pytest.mark.asyncio
async def test_blank_reason_checked_before_lookup(review_service):
    with pytest.raises(ValidationError):
        await review_service.reject_payment(424242, "admin-1", "")


@pytest.mark.asyncio
async def test_reject_leaves_user_without_pro(
    submit, review_service, entitlement_service, store, plan, clock, check_entitlement_invariant
):
    payment = await submit("user-1", "TX1")

    result = await review_service.reject_payment(payment.id, "admin-1", "unverifiable")

    assert result.status == PAYMENT_REJECTED
    assert result.already_processed is False
    stored = await load_payment(store, payment.id)
    assert stored.rejection_reason == "unverifiable"
    assert stored.processed_at == clock.now

    status = await entitlement_service.get_pro_status("user-1")
    assert status.is_pro is False
    assert status.subscription_status == "none"
    assert await check_entitlement_invariant() == 0


@pytest.mark.asyncio
async def test_reject_twice_is_idempotent(submit, review_service, store, plan):
    payment = await submit("user-1", "TX1")
    await review_service.reject_payment(payment.id, "admin-1", "unverifiable")

    again = await review_service.reject_payment(payment.id, "admin-2", "still unverifiable")

    assert again.already_processed is True
    stored = await load_payment(store, payment.id)
    assert stored.rejection_reason == "unverifiable"
    assert stored.admin_id == "admin-1"


@pytest.mark.asyncio
async def test_renewal_replaces_previous_subscription(submit, review_service, store, plan, clock):
    first = await submit("user-1", "TX1")
    await review_service.approve_payment(first.id, "admin-1")

    clock.advance(days=31)
    second = await submit("user-1", "TX2")
    result = await review_service.approve_payment(second.id, "admin-1")

    # Last approved wins, durations are not stacked
    assert result.subscription_ends_at == clock.now + timedelta(days=30)
    subscriptions = await load_subscriptions(store, "user-1")
    assert [s.status for s in subscriptions] == [SUBSCRIPTION_INACTIVE, SUBSCRIPTION_ACTIVE]


@pytest.mark.asyncio
async def test_missing_plan_falls_back_to_default_duration(submit, review_service, store, plan, clock):
    payment = await submit("user-1", "TX1")

    async def _drop_plan(session):
        row = await session.get(Payment, payment.id)
        row.plan_id = None

    await store.run(_drop_plan)

    result = await review_service.approve_payment(payment.id, "admin-1")
    assert result.subscription_ends_at == clock.now + timedelta(days=30)


@pytest.mark.asyncio
async def test_list_pending_and_filtered_payments(submit, review_service, plan, clock):
    p1 = await submit("user-1", "TX1", metadata={"payment_method": "bank_transfer"})
    clock.advance(minutes=1)
    p2 = await submit("user-2", "TX2", metadata={"payment_method": "mobile_money"})
    clock.advance(minutes=1)
    p3 = await submit("user-3", "TX3", metadata={"payment_method": "bank_transfer"})
    await review_service.approve_payment(p1.id, "admin-1")
    await review_service.reject_payment(p2.id, "admin-1", "no receipt")

    pending = await review_service.list_pending_payments()
    assert [p.id for p in pending] == [p3.id]
    assert pending[0].plan_name == "Premium Plan"

    everything = await review_service.list_payments(status="all")
    assert [p.id for p in everything] == [p3.id, p2.id, p1.id]

    approved = await review_service.list_payments(status=PAYMENT_APPROVED)
    assert [p.id for p in approved] == [p1.id]

    by_method = await review_service.list_payments(payment_method="bank_transfer")
    assert {p.id for p in by_method} == {p1.id, p3.id}

    limited = await review_service.list_payments(limit=2)
    assert len(limited) == 2


@pytest.mark.asyncio
async def test_unknown_status_filter_fails_validation(review_service):
    with pytest.raises(ValidationError):
        await review_service.list_payments(status="refunded")


@pytest.mark.asyncio
async def test_dashboard_stats_empty_store_has_zero_defaults(review_service):
    stats = await review_service.dashboard_stats()

    assert stats.total_revenue == Decimal("0")
    assert stats.active_subscriptions == 0
    assert stats.pending_payments == 0
    assert stats.approved_payments == 0
    assert stats.rejected_payments == 0
    assert stats.recent_payments == 0
    assert stats.approved_today == 0


@pytest.mark.asyncio
async def test_dashboard_stats_count_each_payment_once(submit, review_service, plan, clock):
    old = await submit("user-0", "TX0")
    await review_service.approve_payment(old.id, "admin-1")
    clock.advance(days=10)

    p1 = await submit("user-1", "TX1")
    p2 = await submit("user-2", "TX2")
    await submit("user-3", "TX3")
    await review_service.approve_payment(p1.id, "admin-1")
    await review_service.reject_payment(p2.id, "admin-1", "no receipt")

    stats = await review_service.dashboard_stats()

    assert stats.total_revenue == Decimal("400.00")
    assert stats.approved_payments == 2
    assert stats.rejected_payments == 1
    assert stats.pending_payments == 1
    assert stats.approved_payments + stats.rejected_payments + stats.pending_payments == 4
    assert stats.recent_payments == 3
    assert stats.approved_today == 1
    # user-0's 30 day subscription is still running after 10 days
    assert stats.active_subscriptions == 2


@pytest.mark.asyncio
async def test_list_subscriptions_joins_own_payment_and_plan(submit, review_service, plan, clock):
    p1 = await submit("user-1", "TX1", metadata={"user_email": "one@example.com", "user_name": "One"})
    await review_service.approve_payment(p1.id, "admin-1")
    clock.advance(days=31)
    p2 = await submit("user-1", "TX2", metadata={"user_email": "one+new@example.com", "user_name": "One"})
    await review_service.approve_payment(p2.id, "admin-1")

    subscriptions = await review_service.list_subscriptions()

    assert len(subscriptions) == 2
    newest, oldest = subscriptions
    assert newest.payment_id == p2.id
    assert newest.user_email == "one+new@example.com"
    assert newest.status == SUBSCRIPTION_ACTIVE
    assert newest.plan_name == "Premium Plan"
    assert newest.plan_price == Decimal("200.00")
    assert oldest.payment_id == p1.id
    assert oldest.user_email == "one@example.com"
    assert oldest.status == SUBSCRIPTION_INACTIVE


@pytest.mark.asyncio
async def test_elapsed_subscription_listed_as_expired(submit, review_service, plan, clock):
    payment = await submit("user-1", "TX1")
    await review_service.approve_payment(payment.id, "admin-1")
    clock.advance(days=30)

    subscriptions = await review_service.list_subscriptions()
    assert subscriptions[0].status == "expired"


@pytest.mark.asyncio
async def test_cancel_subscription_revokes_pro(
    submit, review_service, entitlement_service, plan, clock, check_entitlement_invariant
):
    payment = await submit("user-1", "TX1")
    await review_service.approve_payment(payment.id, "admin-1")
    clock.advance(days=3)

    subscription = await review_service.cancel_subscription("user-1", "admin-1")

    assert subscription.status == SUBSCRIPTION_CANCELLED
    assert subscription.end_date == clock.now
    status = await entitlement_service.get_pro_status("user-1")
    assert status.is_pro is False
    assert status.subscription_status == SUBSCRIPTION_CANCELLED
    assert await check_entitlement_invariant() == 0


@pytest.mark.asyncio
async def test_cancel_without_active_subscription_fails_not_found(review_service):
    with pytest.raises(NotFound):
        await review_service.cancel_subscription("user-1", "admin-1")


@pytest.mark.asyncio
async def test_cancel_after_expiry_leaves_history_untouched(submit, review_service, entitlement_service, store, plan, clock):
    payment = await submit("user-1", "TX1")
    result = await review_service.approve_payment(payment.id, "admin-1")
    clock.advance(days=60)

    with pytest.raises(NotFound):
        await review_service.cancel_subscription("user-1", "admin-1")

    [subscription] = await load_subscriptions(store, "user-1")
    assert subscription.status == SUBSCRIPTION_ACTIVE
    assert subscription.end_date == result.subscription_ends_at
    status = await entitlement_service.get_pro_status("user-1")
    assert status.subscription_ends_at == result.subscription_ends_at


@pytest.mark.asyncio
async def test_reapprove_reports_own_period_after_renewal(submit, review_service, plan, clock):
    start = clock.now
    first = await submit("user-1", "TX1")
    await review_service.approve_payment(first.id, "admin-1")

    clock.advance(days=40)
    second = await submit("user-1", "TX2")
    renewed = await review_service.approve_payment(second.id, "admin-1")

    again = await review_service.approve_payment(first.id, "admin-2")

    assert again.already_processed is True
    assert again.subscription_ends_at == start + timedelta(days=30)
    assert renewed.subscription_ends_at == clock.now + timedelta(days=30)
