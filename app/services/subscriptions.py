"""
subscriptions.py - Plan catalog and per-user subscription ledger

Provides:
- PLANS / get_plan(plan_id)
- subscribe, cancel, reactivate - status transitions
- get_subscription - read with lazy expiry applied to the returned view
- handle_webhook - PayPal webhook dispatch
- get_usage - usage numbers for the billing page

Expiry is never written back by a read: ``effective_status`` is a pure
function of the stored record and the current time, applied wherever a
subscription is read.
"""

import calendar
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

from app.db.database import Database
from app.errors import InvalidInput, NotFound
from app.models.base import new_id, utc_now
from app.models.subscription import PaymentPlan, Subscription, SubscriptionPointer, UsageStats
from app.services import analytics, session_store
from app.services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)

PLANS: list[PaymentPlan] = [
    PaymentPlan(
        id="toefl_monthly",
        name="TOEFL Prep Monthly",
        description="Full access to all TOEFL preparation materials",
        amount=10.00,
        currency="USD",
        interval="monthly",
        features=[
            "Unlimited practice questions",
            "AI-powered grading and feedback",
            "Full-length practice tests",
            "Progress tracking and analytics",
            "Speaking practice with voice recording",
            "Writing practice with detailed feedback",
            "Mobile app access",
        ],
        trial_days=7,
    ),
    PaymentPlan(
        id="toefl_yearly",
        name="TOEFL Prep Yearly",
        description="Full access with 2 months free",
        amount=100.00,
        currency="USD",
        interval="yearly",
        features=[
            "All monthly plan features",
            "2 months free (save $20)",
            "Priority customer support",
            "Advanced analytics",
            "Personalized study plans",
        ],
        trial_days=14,
    ),
]

CANCELLABLE_STATUSES = {"active", "trial"}


def get_plan(plan_id: str) -> PaymentPlan | None:
    return next((p for p in PLANS if p.id == plan_id), None)


def add_months(start: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's end."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def period_end(start: datetime, plan: PaymentPlan) -> datetime:
    return add_months(start, 1 if plan.interval == "monthly" else 12)


def is_expired(subscription: Subscription, now: datetime) -> bool:
    return now > subscription.end_date


def effective_status(subscription: Subscription, now: datetime) -> str:
    if subscription.status == "active" and is_expired(subscription, now):
        return "expired"
    return subscription.status


def is_active(subscription: Subscription, now: datetime) -> bool:
    return effective_status(subscription, now) == "active"


def subscription_lock(user_id: str) -> str:
    return f"subscription:{user_id}"


async def _current(db: Database, user_id: str) -> Subscription | None:
    pointer = await db.user_subscriptions.get(user_id)
    if pointer is None:
        return None
    subscription = await db.subscriptions.get(pointer.subscription_id)
    if subscription is None:
        logger.warning("User %s points at missing subscription %s", user_id, pointer.subscription_id)
    return subscription


async def _verify(gateway: PaymentGateway, order_id: str) -> None:
    if not await gateway.verify_payment(order_id):
        raise InvalidInput("Payment verification failed")


async def subscribe(
    db: Database,
    gateway: PaymentGateway,
    user_id: str,
    plan_id: str,
    order_id: str,
    now: datetime | None = None,
) -> Subscription:
    plan = get_plan(plan_id)
    if plan is None:
        raise InvalidInput("Invalid plan")

    await _verify(gateway, order_id)

    start = now or utc_now()
    subscription = Subscription(
        id=new_id("sub"),
        user_id=user_id,
        status="active",
        plan_id=plan.id,
        plan_name=plan.name,
        amount=plan.amount,
        currency=plan.currency,
        start_date=start,
        end_date=period_end(start, plan),
        paypal_subscription_id=order_id,
        auto_renew=True,
    )

    async with db.locks.hold(subscription_lock(user_id)):
        await db.subscriptions.put(subscription.id, subscription)
        await db.user_subscriptions.put(user_id, SubscriptionPointer(subscription_id=subscription.id))

    logger.info("User %s subscribed to %s until %s", user_id, plan.id, subscription.end_date.isoformat())
    return subscription


async def get_subscription(db: Database, user_id: str, now: datetime | None = None) -> Subscription | None:
    """The user's subscription as of ``now``; an overdue active one reads as expired."""
    subscription = await _current(db, user_id)
    if subscription is None:
        return None
    return subscription.model_copy(update={"status": effective_status(subscription, now or utc_now())})


async def cancel(
    db: Database,
    gateway: PaymentGateway,
    user_id: str,
    now: datetime | None = None,
) -> Subscription:
    now = now or utc_now()
    async with db.locks.hold(subscription_lock(user_id)):
        subscription = await _current(db, user_id)
        if subscription is None:
            raise NotFound("No active subscription found")

        status = effective_status(subscription, now)
        if status not in CANCELLABLE_STATUSES:
            raise InvalidInput(f"Subscription is {status}")

        if subscription.paypal_subscription_id:
            # Best effort; the local cancel stands either way.
            await gateway.cancel_subscription(subscription.paypal_subscription_id)

        subscription.status = "cancelled"
        subscription.auto_renew = False
        await db.subscriptions.put(subscription.id, subscription)

    logger.info("Subscription %s cancelled for user %s", subscription.id, user_id)
    return subscription


async def reactivate(
    db: Database,
    gateway: PaymentGateway,
    user_id: str,
    order_id: str,
    now: datetime | None = None,
) -> Subscription:
    now = now or utc_now()
    async with db.locks.hold(subscription_lock(user_id)):
        subscription = await _current(db, user_id)
        if subscription is None:
            raise NotFound("No subscription found")

        await _verify(gateway, order_id)

        subscription.status = "active"
        subscription.auto_renew = True
        subscription.paypal_subscription_id = order_id
        plan = get_plan(subscription.plan_id)
        if plan is not None:
            subscription.end_date = period_end(now, plan)
        await db.subscriptions.put(subscription.id, subscription)

    logger.info("Subscription %s reactivated for user %s", subscription.id, user_id)
    return subscription


# ── Webhooks ─────────────────────────────────────────────────────────
# Handlers only log for now; updating the ledger from provider events needs a
# mapping from PayPal resource ids to our subscriptions.

async def _on_subscription_activated(db: Database, payload: dict[str, Any]) -> None:
    logger.info("Subscription activated: %s", payload.get("resource", {}).get("id"))


async def _on_subscription_cancelled(db: Database, payload: dict[str, Any]) -> None:
    logger.info("Subscription cancelled: %s", payload.get("resource", {}).get("id"))


async def _on_subscription_expired(db: Database, payload: dict[str, Any]) -> None:
    logger.info("Subscription expired: %s", payload.get("resource", {}).get("id"))


async def _on_payment_completed(db: Database, payload: dict[str, Any]) -> None:
    logger.info("Payment completed: %s", payload.get("resource", {}).get("id"))


WEBHOOK_HANDLERS: dict[str, Callable[[Database, dict[str, Any]], Awaitable[None]]] = {
    "BILLING.SUBSCRIPTION.ACTIVATED": _on_subscription_activated,
    "BILLING.SUBSCRIPTION.CANCELLED": _on_subscription_cancelled,
    "BILLING.SUBSCRIPTION.EXPIRED": _on_subscription_expired,
    "PAYMENT.SALE.COMPLETED": _on_payment_completed,
}


async def handle_webhook(db: Database, payload: dict[str, Any]) -> bool:
    """Dispatch by ``event_type``. Returns False for event types we ignore."""
    event_type = payload.get("event_type")
    handler = WEBHOOK_HANDLERS.get(event_type)
    if handler is None:
        logger.warning("Ignoring PayPal webhook event %r", event_type)
        return False
    await handler(db, payload)
    return True


# ── Usage ────────────────────────────────────────────────────────────

async def get_usage(
    db: Database,
    user_id: str,
    monthly_limit: int,
    now: datetime | None = None,
) -> UsageStats:
    now = now or utc_now()
    events = await analytics.get_events(db, user_id)
    answered = [e for e in events if e.event_type == "question_answered"]
    answered_this_month = sum(
        1 for e in answered if (e.timestamp.year, e.timestamp.month) == (now.year, now.month)
    )

    sessions, _ = await session_store.list_user_sessions(db, user_id, limit=None)
    stored = await analytics.get_stored_analytics(db, user_id)

    return UsageStats(
        questions_attempted=len(answered),
        practice_tests_taken=sum(1 for s in sessions if s.status == "completed"),
        study_time_minutes=round(sum(s.time_used for s in sessions) / 60, 1),
        current_streak=stored.streak_days if stored else 0,
        monthly_limit=monthly_limit,
        remaining_questions=max(0, monthly_limit - answered_this_month),
    )
