"""
test_subscriptions.py - Tests for plans, the subscription ledger and the PayPal client

Tests:
- monthly/yearly periods with calendar month arithmetic
- lazy expiry on read, without writing the store
- cancel / reactivate transitions
- webhook dispatch
- PayPal order verification over a mocked transport
"""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from app.db.database import Database
from app.errors import InvalidInput, NotFound, PaymentProviderError
from app.services import analytics, session_store, subscriptions
from app.services.payment_gateway import PaymentGateway

JAN_1 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def db():
    return Database.in_memory()


@pytest.fixture
def gateway():
    return PaymentGateway()


class TestPeriods:

    def test_add_months_clamps_day(self):
        assert subscriptions.add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
        assert subscriptions.add_months(datetime(2023, 1, 31), 1) == datetime(2023, 2, 28)
        assert subscriptions.add_months(datetime(2024, 11, 15), 2) == datetime(2025, 1, 15)

    def test_plan_periods(self):
        monthly = subscriptions.get_plan("toefl_monthly")
        yearly = subscriptions.get_plan("toefl_yearly")
        assert subscriptions.period_end(JAN_1, monthly) == datetime(2024, 2, 1, tzinfo=timezone.utc)
        assert subscriptions.period_end(JAN_1, yearly) == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert subscriptions.get_plan("lifetime") is None


class TestSubscribe:

    def test_monthly_subscription(self, db, gateway):
        async def scenario():
            sub = await subscriptions.subscribe(db, gateway, "u1", "toefl_monthly", "ORDER-1", now=JAN_1)
            assert sub.status == "active"
            assert sub.end_date == datetime(2024, 2, 1, tzinfo=timezone.utc)
            assert sub.amount == 10.0
            assert sub.auto_renew is True

            current = await subscriptions.get_subscription(db, "u1", now=datetime(2024, 1, 15, tzinfo=timezone.utc))
            assert current.id == sub.id
            assert subscriptions.is_active(current, datetime(2024, 1, 15, tzinfo=timezone.utc))

        asyncio.run(scenario())

    def test_expired_on_read(self, db, gateway):
        async def scenario():
            sub = await subscriptions.subscribe(db, gateway, "u1", "toefl_monthly", "ORDER-1", now=JAN_1)
            later = datetime(2024, 2, 2, tzinfo=timezone.utc)
            current = await subscriptions.get_subscription(db, "u1", now=later)
            assert current.status == "expired"
            assert not subscriptions.is_active(current, later)
            # the stored record is untouched
            assert (await db.subscriptions.get(sub.id)).status == "active"

        asyncio.run(scenario())

    def test_new_subscription_replaces_pointer(self, db, gateway):
        async def scenario():
            await subscriptions.subscribe(db, gateway, "u1", "toefl_monthly", "ORDER-1", now=JAN_1)
            yearly = await subscriptions.subscribe(db, gateway, "u1", "toefl_yearly", "ORDER-2", now=JAN_1)
            current = await subscriptions.get_subscription(db, "u1", now=JAN_1)
            assert current.id == yearly.id
            assert len(await db.subscriptions.values()) == 2

        asyncio.run(scenario())

    def test_invalid_plan(self, db, gateway):
        with pytest.raises(InvalidInput, match="Invalid plan"):
            asyncio.run(subscriptions.subscribe(db, gateway, "u1", "lifetime", "ORDER-1"))

    def test_missing_order_id(self, db, gateway):
        with pytest.raises(InvalidInput, match="Payment verification failed"):
            asyncio.run(subscriptions.subscribe(db, gateway, "u1", "toefl_monthly", ""))

    def test_no_subscription(self, db):
        assert asyncio.run(subscriptions.get_subscription(db, "u1")) is None


class TestCancelReactivate:

    def test_cancel_then_reactivate(self, db, gateway):
        async def scenario():
            await subscriptions.subscribe(db, gateway, "u1", "toefl_monthly", "ORDER-1", now=JAN_1)
            cancelled = await subscriptions.cancel(db, gateway, "u1", now=JAN_1)
            assert cancelled.status == "cancelled"
            assert cancelled.auto_renew is False

            with pytest.raises(InvalidInput):
                await subscriptions.cancel(db, gateway, "u1", now=JAN_1)

            march = datetime(2024, 3, 5, tzinfo=timezone.utc)
            reactivated = await subscriptions.reactivate(db, gateway, "u1", "ORDER-2", now=march)
            assert reactivated.status == "active"
            assert reactivated.auto_renew is True
            assert reactivated.paypal_subscription_id == "ORDER-2"
            assert reactivated.end_date == datetime(2024, 4, 5, tzinfo=timezone.utc)

        asyncio.run(scenario())

    def test_cancel_expired(self, db, gateway):
        async def scenario():
            await subscriptions.subscribe(db, gateway, "u1", "toefl_monthly", "ORDER-1", now=JAN_1)
            with pytest.raises(InvalidInput, match="expired"):
                await subscriptions.cancel(db, gateway, "u1", now=datetime(2024, 6, 1, tzinfo=timezone.utc))

        asyncio.run(scenario())

    def test_cancel_without_subscription(self, db, gateway):
        with pytest.raises(NotFound):
            asyncio.run(subscriptions.cancel(db, gateway, "u1"))

    def test_reactivate_without_subscription(self, db, gateway):
        with pytest.raises(NotFound):
            asyncio.run(subscriptions.reactivate(db, gateway, "u1", "ORDER-1"))


def test_webhook_dispatch(db):
    handled = asyncio.run(subscriptions.handle_webhook(
        db, {"event_type": "BILLING.SUBSCRIPTION.CANCELLED", "resource": {"id": "I-123"}}
    ))
    assert handled is True
    assert asyncio.run(subscriptions.handle_webhook(db, {"event_type": "CUSTOMER.DISPUTE.CREATED"})) is False
    assert asyncio.run(subscriptions.handle_webhook(db, {})) is False


def test_usage(db):
    now = datetime(2024, 3, 10, tzinfo=timezone.utc)

    async def scenario():
        session = await session_store.create_session(db, "u1", "practice", "reading", ["r1"], 600, now=now)
        await session_store.submit_answer(db, session.id, "r1", "A", 120, now=now)
        await session_store.complete_session(db, session.id, now=now)
        await analytics.record_event(db, "u1", "question_answered", {"section": "reading"}, now=now)
        await analytics.record_event(
            db, "u1", "question_answered", {"section": "reading"}, now=datetime(2024, 2, 20, tzinfo=timezone.utc)
        )
        return await subscriptions.get_usage(db, "u1", monthly_limit=100, now=now)

    usage = asyncio.run(scenario())
    assert usage.questions_attempted == 2
    assert usage.practice_tests_taken == 1
    assert usage.study_time_minutes == 2.0
    assert usage.monthly_limit == 100
    assert usage.remaining_questions == 99


class TestPaymentGateway:

    def make_gateway(self, handler):
        return PaymentGateway(
            api_base="https://paypal.test",
            client_id="id",
            client_secret="secret",
            transport=httpx.MockTransport(handler),
        )

    def test_mock_mode(self):
        gateway = PaymentGateway()
        assert gateway.mock_mode
        assert asyncio.run(gateway.verify_payment("ORDER-1")) is True
        assert asyncio.run(gateway.verify_payment("")) is False
        assert asyncio.run(gateway.cancel_subscription("I-1")) is True

    @pytest.mark.parametrize("status, expected", [("COMPLETED", True), ("APPROVED", True), ("CREATED", False)])
    def test_order_status(self, status, expected):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1/oauth2/token":
                return httpx.Response(200, json={"access_token": "tok"})
            assert request.headers["Authorization"] == "Bearer tok"
            assert request.url.path == "/v2/checkout/orders/ORDER-1"
            return httpx.Response(200, json={"id": "ORDER-1", "status": status})

        assert asyncio.run(self.make_gateway(handler).verify_payment("ORDER-1")) is expected

    def test_unknown_order(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1/oauth2/token":
                return httpx.Response(200, json={"access_token": "tok"})
            return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})

        assert asyncio.run(self.make_gateway(handler).verify_payment("ORDER-1")) is False

    def test_provider_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PaymentProviderError):
            asyncio.run(self.make_gateway(handler).verify_payment("ORDER-1"))

    def test_cancel_failure_is_reported(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1/oauth2/token":
                return httpx.Response(200, json={"access_token": "tok"})
            return httpx.Response(422, json={"name": "UNPROCESSABLE_ENTITY"})

        assert asyncio.run(self.make_gateway(handler).cancel_subscription("I-1")) is False
