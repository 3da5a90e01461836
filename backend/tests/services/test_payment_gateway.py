from types import SimpleNamespace

import pytest
import stripe

from bookflow.core.exceptions import PaymentGatewayException
from bookflow.services.payment_gateway import StripePaymentGateway, idempotency_key


@pytest.fixture
def gateway():
    # An empty key forces mock mode regardless of the environment.
    return StripePaymentGateway(secret_key="")


class TestStripePaymentGatewayMockMode:
    def test_not_configured(self, gateway):
        assert gateway.stripe_configured is False

    @pytest.mark.asyncio
    async def test_mock_intent_is_deterministic(self, gateway):
        intent = await gateway.create_payment_intent("01HRES", 3000, "usd")

        assert intent.payment_intent_id == "mock_pi_01HRES"
        assert intent.client_secret == "mock_pi_01HRES_secret_mock"
        assert intent.amount_cents == 3000
        assert intent.status == "requires_payment_method"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -100])
    async def test_rejects_non_positive_amount(self, gateway, amount):
        with pytest.raises(PaymentGatewayException) as exc_info:
            await gateway.create_payment_intent("01HRES", amount, "usd")
        assert exc_info.value.reservation_id == "01HRES"

    @pytest.mark.asyncio
    async def test_mock_refund(self, gateway):
        refund = await gateway.request_refund("mock_pi_01HRES", 1000, reason="requested_by_customer")

        assert refund.status == "succeeded"
        assert refund.amount_cents == 1000
        assert refund.reason == "requested_by_customer"

    @pytest.mark.asyncio
    async def test_unknown_refund_reason_is_dropped(self, gateway):
        refund = await gateway.request_refund("mock_pi_01HRES", reason="changed my mind")

        assert refund.reason is None

    @pytest.mark.asyncio
    async def test_rejects_non_positive_refund(self, gateway):
        with pytest.raises(PaymentGatewayException):
            await gateway.request_refund("mock_pi_01HRES", 0)


class TestIdempotencyKeys:
    def test_each_attempt_gets_its_own_key(self):
        first = idempotency_key("01HRES", 3000, 1)
        retry = idempotency_key("01HRES", 3000, 2)

        assert first != retry
        assert first == idempotency_key("01HRES", 3000, 1)

    @pytest.mark.asyncio
    async def test_retries_send_distinct_keys_to_stripe(self, monkeypatch):
        # Setup
        monkeypatch.setattr(stripe, "api_key", stripe.api_key)
        monkeypatch.setattr(stripe, "max_network_retries", stripe.max_network_retries)
        calls = []

        def create(**kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                raise stripe.APIConnectionError("network down")
            return SimpleNamespace(
                id="pi_live_1",
                client_secret="pi_live_1_secret",
                amount=kwargs["amount"],
                currency=kwargs["currency"],
                status="requires_payment_method",
            )

        monkeypatch.setattr(stripe.PaymentIntent, "create", create)
        gateway = StripePaymentGateway(secret_key="sk_test_bookflow")

        # Execute
        with pytest.raises(PaymentGatewayException):
            await gateway.create_payment_intent("01HRES", 3000, "usd", attempt=1)
        intent = await gateway.create_payment_intent("01HRES", 3000, "usd", attempt=2)

        # Assert
        assert intent.payment_intent_id == "pi_live_1"
        keys = [call["idempotency_key"] for call in calls]
        assert keys[0] != keys[1]
        assert calls[1]["metadata"]["attempt"] == "2"
