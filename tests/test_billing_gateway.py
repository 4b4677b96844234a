"""
Tests for payment provider gateways
"""
import hashlib
import hmac
import json
import time
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest

from content_studio.exceptions import ProviderError, ProviderNotConfiguredError
from content_studio.services.billing_gateway import (
    FatoraGateway,
    PaddleGateway,
    StripeGateway,
    get_billing_gateway,
    make_fatora_order_id,
    plan_from_fatora_amount,
    plan_from_price,
    user_id_from_order_id,
)

PADDLE_SECRET = "pdl_ntfset_secret"
FATORA_SECRET = "fatora_secret"
STRIPE_SECRET = "whsec_test_secret"


def paddle_gateway(handler=None) -> PaddleGateway:
    client = httpx.Client(transport=httpx.MockTransport(handler)) if handler else None
    return PaddleGateway(
        api_key="pdl_key",
        webhook_secret=PADDLE_SECRET,
        base_url="https://sandbox-api.paddle.com",
        price_ids={"Pro": "pri_pro", "Business": "pri_biz"},
        product_ids={"Pro": "pro_pro", "Business": "pro_biz"},
        client=client,
    )


def fatora_gateway(handler=None, secret=FATORA_SECRET) -> FatoraGateway:
    client = httpx.Client(transport=httpx.MockTransport(handler)) if handler else None
    return FatoraGateway(
        api_key="fatora_key",
        webhook_secret=secret,
        base_url="https://api.fatora.io/v1",
        prices={"Pro": 29, "Business": 99},
        client=client,
    )


def stripe_gateway() -> StripeGateway:
    return StripeGateway(
        api_key="sk_test_123",
        webhook_secret=STRIPE_SECRET,
        price_ids={"Pro": "price_pro", "Business": "price_biz"},
    )


class TestHelpers:
    """Test plan and order id helpers"""

    def test_plan_from_price(self):
        assert plan_from_price("price_pro", "price_pro", "price_biz") == "Pro"
        assert plan_from_price("price_biz", "price_pro", "price_biz") == "Business"
        assert plan_from_price("price_other", "price_pro", "price_biz") == "Free"
        assert plan_from_price(None, None, None) == "Free"

    def test_plan_from_fatora_amount(self):
        assert plan_from_fatora_amount(29) == "Pro"
        assert plan_from_fatora_amount("99.00") == "Business"
        assert plan_from_fatora_amount(5) == "Free"
        assert plan_from_fatora_amount(None) == "Free"

    def test_order_id_round_trip(self):
        order_id = make_fatora_order_id(42, now=1700000000.5)
        assert order_id == "order_1700000000500_42"
        assert user_id_from_order_id(order_id) == 42

    def test_invalid_order_ids(self):
        assert user_id_from_order_id(None) is None
        assert user_id_from_order_id("order_42") is None
        assert user_id_from_order_id("order_123_abc") is None


class TestFactory:
    """Test gateway selection"""

    def _config(self, **overrides):
        values = dict(
            STRIPE_SECRET_KEY=None, STRIPE_WEBHOOK_SECRET=None,
            STRIPE_PRICE_ID_PRO=None, STRIPE_PRICE_ID_BUSINESS=None,
            PADDLE_API_KEY=None, PADDLE_WEBHOOK_SECRET=None, paddle_api_url="https://sandbox-api.paddle.com",
            PADDLE_PRICE_ID_PRO=None, PADDLE_PRICE_ID_BUSINESS=None,
            PADDLE_PRODUCT_ID_PRO=None, PADDLE_PRODUCT_ID_BUSINESS=None,
            FATORA_API_KEY=None, FATORA_WEBHOOK_SECRET=None, FATORA_API_URL="https://api.fatora.io/v1",
        )
        values.update(overrides)
        return SimpleNamespace(**values)

    def test_missing_key(self):
        with pytest.raises(ProviderNotConfiguredError):
            get_billing_gateway("paddle", self._config())

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            get_billing_gateway("paypal", self._config())

    def test_fatora_prices_from_plans(self):
        gateway = get_billing_gateway("fatora", self._config(FATORA_API_KEY="key"))
        assert isinstance(gateway, FatoraGateway)
        assert gateway.prices == {"Pro": 29, "Business": 99}

    def test_factory_gateways_hold_no_client(self):
        config = self._config(PADDLE_API_KEY="pdl_key", FATORA_API_KEY="key")
        assert get_billing_gateway("paddle", config).client is None
        assert get_billing_gateway("fatora", config).client is None

    def test_one_off_requests_without_client(self):
        gateway = get_billing_gateway("fatora", self._config(FATORA_API_KEY="key"))
        response = httpx.Response(
            200, json={"status": "SUCCESS", "result": {"payment_status": "SUCCESS"}},
            request=httpx.Request("POST", "https://api.fatora.io/v1/payments/verify"),
        )
        with patch("content_studio.services.billing_gateway.httpx.request", return_value=response) as request:
            result = gateway.verify_payment("order_1_42")

        assert result["status"] == "SUCCESS"
        args, kwargs = request.call_args
        assert args == ("POST", "https://api.fatora.io/v1/payments/verify")
        assert kwargs["timeout"] == 15
        assert kwargs["json"] == {"order_id": "order_1_42"}


class TestPaddleGateway:
    """Test Paddle Billing gateway"""

    def _signature(self, body: bytes, ts: str = "1700000000") -> str:
        digest = hmac.new(PADDLE_SECRET.encode(), f"{ts}:".encode() + body, hashlib.sha256).hexdigest()
        return f"ts={ts};h1={digest}"

    def test_valid_signature(self):
        body = b'{"event_type": "transaction.completed"}'
        assert paddle_gateway().verify_webhook_signature(body, self._signature(body)) is True

    def test_tampered_body(self):
        body = b'{"event_type": "transaction.completed"}'
        signature = self._signature(body)
        assert paddle_gateway().verify_webhook_signature(body + b" ", signature) is False

    def test_malformed_signature(self):
        gateway = paddle_gateway()
        assert gateway.verify_webhook_signature(b"{}", None) is False
        assert gateway.verify_webhook_signature(b"{}", "h1=abc") is False

    def test_decode_form_payload(self):
        body = b"alert_name=subscription_created&alert_id=77&passthrough=%7B%22userId%22%3A%205%7D"
        payload = PaddleGateway.decode_payload(body, "application/x-www-form-urlencoded")
        assert payload["alert_name"] == "subscription_created"
        assert json.loads(payload["passthrough"]) == {"userId": 5}

    def test_parse_transaction_completed(self):
        event = paddle_gateway().parse_webhook_event({
            "event_id": "evt_1",
            "event_type": "transaction.completed",
            "data": {
                "id": "txn_1",
                "subscription_id": "sub_1",
                "customer_id": "ctm_1",
                "status": "completed",
                "origin": "subscription_recurring",
                "custom_data": {"userId": "7", "planName": "Pro"},
                "items": [{"price": {"id": "pri_biz", "product_id": "pro_biz"}}],
                "details": {"totals": {"total": "4999", "currency_code": "USD"}},
                "current_billing_period": {
                    "starts_at": "2026-06-01T00:00:00Z",
                    "ends_at": "2026-07-01T00:00:00.000000Z",
                },
            },
        })
        assert event["event_type"] == "payment_succeeded"
        assert event["provider_event_id"] == "evt_1"
        assert event["user_id"] == 7
        assert event["subscription_id"] == "sub_1"
        assert event["transaction_id"] == "txn_1"
        assert event["plan"] == "Business"
        assert event["amount"] == 49.99
        assert event["current_period_end"] == datetime(2026, 7, 1)

    def test_parse_subscription_canceled(self):
        event = paddle_gateway().parse_webhook_event({
            "event_id": "evt_2",
            "event_type": "subscription.canceled",
            "data": {"id": "sub_1", "customer_id": "ctm_1", "status": "canceled"},
        })
        assert event["event_type"] == "subscription_cancelled"
        assert event["subscription_id"] == "sub_1"
        assert event["transaction_id"] is None

    def test_parse_classic_alert(self):
        event = paddle_gateway().parse_webhook_event({
            "alert_name": "subscription_payment_succeeded",
            "alert_id": "99",
            "subscription_id": "123",
            "passthrough": '{"userId": 3, "planName": "Pro"}',
            "next_bill_date": "2026-08-01",
        })
        assert event["event_type"] == "payment_succeeded"
        assert event["user_id"] == 3
        assert event["plan"] == "Pro"
        assert event["current_period_end"] == datetime(2026, 8, 1)

    def test_existing_customer_from_search(self):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer pdl_key"
            return httpx.Response(200, json={"data": [{"id": "ctm_found"}]})

        assert paddle_gateway(handler).find_or_create_customer(1, "a@example.com") == "ctm_found"

    def test_customer_already_exists(self):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"data": []})
            return httpx.Response(409, json={"error": {
                "code": "customer_already_exists",
                "detail": "customer email conflicts with customer of id ctm_01abc",
            }})

        assert paddle_gateway(handler).find_or_create_customer(1, "a@example.com") == "ctm_01abc"

    def test_create_checkout(self):
        def handler(request):
            if request.url.path == "/customers":
                return httpx.Response(200, json={"data": [{"id": "ctm_1"}]})
            body = json.loads(request.content)
            assert body["items"] == [{"price_id": "pri_pro", "quantity": 1}]
            assert body["custom_data"] == {"userId": "5", "planName": "Pro"}
            return httpx.Response(201, json={"data": {"id": "txn_9", "checkout": {"url": "https://pay.example/txn_9"}}})

        result = paddle_gateway(handler).create_checkout(5, "a@example.com", "Pro", "https://app/ok", "https://app/no")
        assert result == {
            "url": "https://pay.example/txn_9",
            "transaction_id": "txn_9",
            "customer_id": "ctm_1",
            "price_id": "pri_pro",
        }

    def test_api_error_raises_provider_error(self):
        gateway = paddle_gateway(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(ProviderError):
            gateway.fetch_subscription("sub_1")

    def test_list_invoices(self):
        def handler(request):
            assert request.url.params["subscription_id"] == "sub_1"
            return httpx.Response(200, json={"data": [{
                "id": "txn_1",
                "invoice_number": "INV-1",
                "status": "completed",
                "billed_at": "2026-06-01T10:00:00Z",
                "receipt_url": "https://paddle/receipt",
                "details": {"totals": {"total": "1999", "currency_code": "EUR"}},
            }]})

        invoices = paddle_gateway(handler).list_invoices(subscription_id="sub_1")
        assert invoices[0]["id"] == "INV-1"
        assert invoices[0]["amount"] == 19.99
        assert invoices[0]["currency"] == "EUR"
        assert invoices[0]["url"] == "https://paddle/receipt"


class TestFatoraGateway:
    """Test Fatora gateway"""

    def test_signature(self):
        body = b'{"order_id": "order_1_2"}'
        signature = hmac.new(FATORA_SECRET.encode(), body, hashlib.sha256).hexdigest()
        gateway = fatora_gateway()
        assert gateway.verify_webhook_signature(body, signature) is True
        assert gateway.verify_webhook_signature(body, "0" * 64) is False
        assert gateway.verify_webhook_signature(body, None) is False

    def test_no_secret_skips_verification(self):
        assert fatora_gateway(secret=None).verify_webhook_signature(b"{}", None) is True

    def test_parse_success(self):
        event = fatora_gateway().parse_webhook_event({
            "order_id": "order_1700000000000_12",
            "transaction_id": "tx_1",
            "status": "success",
            "amount": "99",
        })
        assert event["event_type"] == "payment_succeeded"
        assert event["user_id"] == 12
        assert event["plan"] == "Business"
        assert event["provider_event_id"] == "tx_1"

    def test_parse_failure(self):
        event = fatora_gateway().parse_webhook_event({"order_id": "order_1_12", "payment_status": "FAILURE"})
        assert event["event_type"] == "payment_failed"
        assert event["provider_event_id"] == "order_1_12:FAILURE"

    def test_create_checkout(self):
        def handler(request):
            assert request.headers["api_key"] == "fatora_key"
            body = json.loads(request.content)
            assert body["amount"] == 29
            assert user_id_from_order_id(body["order_id"]) == 4
            return httpx.Response(200, json={"result": {"checkout_url": "https://fatora/pay"}})

        result = fatora_gateway(handler).create_checkout(4, "u@example.com", "Pro", "https://ok", "https://no")
        assert result["url"] == "https://fatora/pay"
        assert result["amount"] == 29

    def test_checkout_without_url(self):
        gateway = fatora_gateway(lambda request: httpx.Response(200, json={"result": {}}))
        with pytest.raises(ProviderError):
            gateway.create_checkout(4, "u@example.com", "Pro", "https://ok", "https://no")

    def test_no_portal(self):
        with pytest.raises(ValueError):
            fatora_gateway().create_portal_session("cus", "https://app")


class TestStripeGateway:
    """Test Stripe gateway webhook handling"""

    def test_signature(self):
        payload = json.dumps({"id": "evt_1", "object": "event", "type": "invoice.paid"}).encode()
        timestamp = int(time.time())
        digest = hmac.new(
            STRIPE_SECRET.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256
        ).hexdigest()
        gateway = stripe_gateway()
        assert gateway.verify_webhook_signature(payload, f"t={timestamp},v1={digest}") is True
        assert gateway.verify_webhook_signature(payload, f"t={timestamp},v1={'0' * 64}") is False
        assert gateway.verify_webhook_signature(payload, None) is False

    def test_parse_checkout_completed(self):
        event = stripe_gateway().parse_webhook_event({
            "id": "evt_1",
            "type": "checkout.session.completed",
            "data": {"object": {
                "subscription": "sub_1",
                "customer": "cus_1",
                "metadata": {"userId": "9", "planName": "Pro"},
            }},
        })
        assert event["event_type"] == "checkout_completed"
        assert event["user_id"] == 9
        assert event["subscription_id"] == "sub_1"

    def test_parse_subscription_item_periods(self):
        event = stripe_gateway().parse_webhook_event({
            "id": "evt_2",
            "type": "customer.subscription.updated",
            "data": {"object": {
                "id": "sub_1",
                "customer": "cus_1",
                "status": "active",
                "cancel_at_period_end": True,
                "items": {"data": [{
                    "price": {"id": "price_biz"},
                    "current_period_start": 1780272000,
                    "current_period_end": 1782864000,
                }]},
            }},
        })
        assert event["event_type"] == "subscription_updated"
        assert event["plan"] == "Business"
        assert event["cancel_at_period_end"] is True
        assert event["current_period_end"] == datetime.utcfromtimestamp(1782864000)

    def test_parse_invoice_failed(self):
        event = stripe_gateway().parse_webhook_event({
            "id": "evt_3",
            "type": "invoice.payment_failed",
            "data": {"object": {"id": "in_1", "subscription": "sub_1", "amount_due": 1999, "currency": "usd"}},
        })
        assert event["event_type"] == "payment_failed"
        assert event["amount"] == 19.99
        assert event["currency"] == "USD"

    def test_fetch_payment_intent(self):
        gateway = stripe_gateway()
        intent = {
            "id": "pi_1", "status": "succeeded", "amount_received": 500, "currency": "usd",
            "metadata": {"userId": "42", "credits": "250"},
        }
        with patch.object(gateway.stripe.PaymentIntent, "retrieve", return_value=intent) as retrieve:
            result = gateway.fetch_payment_intent("pi_1")

        retrieve.assert_called_once_with("pi_1")
        assert result == {
            "id": "pi_1", "status": "succeeded", "amount": 5.0, "currency": "USD",
            "user_id": 42, "credits": 250,
        }

    def test_fetch_payment_intent_error(self):
        gateway = stripe_gateway()
        error = gateway.stripe.InvalidRequestError("No such payment_intent", "id")
        with patch.object(gateway.stripe.PaymentIntent, "retrieve", side_effect=error):
            with pytest.raises(ProviderError):
                gateway.fetch_payment_intent("pi_missing")
