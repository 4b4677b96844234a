"""
Billing Gateway - Abstract interface for payment providers
Supports Stripe, Paddle Billing and Fatora
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from urllib.parse import parse_qs
import hashlib
import hmac
import json
import logging
import re
import time

import httpx

from ..exceptions import ProviderError, ProviderNotConfiguredError

logger = logging.getLogger(__name__)

PLAN_FREE = "Free"
PLAN_PRO = "Pro"
PLAN_BUSINESS = "Business"

FATORA_PLAN_AMOUNTS = {29: PLAN_PRO, 99: PLAN_BUSINESS}

PADDLE_CUSTOMER_ID_PATTERN = re.compile(r"customer of id (ctm_[a-zA-Z0-9]+)")

HTTP_TIMEOUT = 15


def _send(client: Optional[httpx.Client], method: str, url: str, **kwargs) -> httpx.Response:
    """Use an injected client when given, otherwise a one-off request"""
    if client is not None:
        return client.request(method, url, **kwargs)
    return httpx.request(method, url, timeout=HTTP_TIMEOUT, **kwargs)


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a dict or a Stripe object"""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, IndexError, TypeError):
        return default
    return default if value is None else value


def _from_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.utcfromtimestamp(int(value))


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        # Stored as naive UTC
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def plan_from_price(price_id: Optional[str], pro_id: Optional[str], business_id: Optional[str]) -> str:
    """Map a provider price/product id to a plan name"""
    if price_id and pro_id and price_id == pro_id:
        return PLAN_PRO
    if price_id and business_id and price_id == business_id:
        return PLAN_BUSINESS
    return PLAN_FREE


def plan_from_fatora_amount(amount: Any) -> str:
    try:
        return FATORA_PLAN_AMOUNTS.get(int(float(amount)), PLAN_FREE)
    except (TypeError, ValueError):
        return PLAN_FREE


def make_fatora_order_id(user_id: int, now: Optional[float] = None) -> str:
    """Order ids carry the user id as the last segment: order_<ms>_<userId>"""
    timestamp = int((now if now is not None else time.time()) * 1000)
    return f"order_{timestamp}_{user_id}"


def user_id_from_order_id(order_id: Optional[str]) -> Optional[int]:
    """Extract the user id from an order id; None when the format is invalid"""
    if not order_id:
        return None
    parts = order_id.split("_")
    if len(parts) < 3:
        return None
    try:
        return int(parts[-1])
    except ValueError:
        return None


class BillingGateway(ABC):
    """Abstract base class for payment providers"""

    name: str = ""

    @abstractmethod
    def create_checkout(
        self,
        user_id: int,
        email: str,
        plan: str,
        success_url: str,
        cancel_url: str,
        price_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Start a hosted checkout; returns at least {"url": ...}"""
        pass

    @abstractmethod
    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """Return a self-service billing portal URL"""
        pass

    @abstractmethod
    def fetch_subscription(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        """Current provider state of a subscription, normalized"""
        pass

    @abstractmethod
    def list_invoices(self, customer_id: Optional[str] = None, subscription_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Most recent invoices, normalized"""
        pass

    @abstractmethod
    def get_payment_method(self, customer_id: Optional[str] = None, subscription_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Card on file, normalized"""
        pass

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """Verify webhook signature"""
        pass

    @abstractmethod
    def parse_webhook_event(self, payload: Dict) -> Dict[str, Any]:
        """Parse webhook event into standardized format"""
        pass

    def find_customer_subscription(self, customer_id: str) -> Optional[Dict[str, Any]]:
        """First subscription the provider holds for a customer"""
        return None


def _event(provider: str, event_type: str, **fields) -> Dict[str, Any]:
    event = {
        "provider": provider,
        "event_type": event_type,
        "provider_event_id": "",
        "user_id": None,
        "subscription_id": None,
        "customer_id": None,
        "status": None,
        "plan": None,
        "current_period_start": None,
        "current_period_end": None,
        "cancel_at_period_end": False,
        "amount": None,
        "currency": None,
        "order_id": None,
        "transaction_id": None,
        "raw_data": {},
    }
    event.update(fields)
    return event


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


class StripeGateway(BillingGateway):
    """Stripe payment gateway"""

    name = "stripe"

    def __init__(self, api_key: str, webhook_secret: Optional[str], price_ids: Dict[str, Optional[str]]):
        """
        Initialize Stripe gateway

        Args:
            api_key: Stripe API key (test or live)
            webhook_secret: Stripe webhook signing secret
            price_ids: Plan name -> Stripe price id
        """
        import stripe
        self.stripe = stripe
        self.stripe.api_key = api_key
        self.webhook_secret = webhook_secret
        self.price_ids = price_ids

    def plan_for_price(self, price_id: Optional[str]) -> str:
        return plan_from_price(price_id, self.price_ids.get(PLAN_PRO), self.price_ids.get(PLAN_BUSINESS))

    def _call(self, description: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except self.stripe.StripeError as e:
            logger.error(f"Stripe {description} failed: {e}")
            raise ProviderError("stripe", f"{description} failed: {e}") from e

    def _find_or_create_customer(self, user_id: int, email: str) -> str:
        existing = self._call("customer lookup", self.stripe.Customer.list, email=email, limit=1)
        data = _get(existing, "data", [])
        if data:
            return data[0]["id"]
        customer = self._call(
            "customer creation", self.stripe.Customer.create,
            email=email, metadata={"userId": str(user_id)},
        )
        logger.info(f"Created Stripe customer {customer['id']} for user {user_id}")
        return customer["id"]

    def create_checkout(self, user_id, email, plan, success_url, cancel_url, price_id=None, customer_id=None):
        price_id = price_id or self.price_ids.get(plan)
        if not price_id:
            raise ValueError(f"No Stripe price configured for plan {plan}")

        customer_id = customer_id or self._find_or_create_customer(user_id, email)
        metadata = {"userId": str(user_id), "planName": plan}
        session = self._call(
            "checkout session creation", self.stripe.checkout.Session.create,
            customer=customer_id,
            mode="subscription",
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
        return {"url": session["url"], "customer_id": customer_id, "session_id": session["id"]}

    def create_portal_session(self, customer_id, return_url):
        session = self._call(
            "portal session creation", self.stripe.billing_portal.Session.create,
            customer=customer_id, return_url=return_url,
        )
        return session["url"]

    def _normalize_subscription(self, subscription) -> Dict[str, Any]:
        items = _get(_get(subscription, "items"), "data", [])
        first_item = items[0] if items else None
        price_id = _get(_get(first_item, "price"), "id")
        # Newer API versions moved billing periods onto the subscription item
        period_start = _get(subscription, "current_period_start") or _get(first_item, "current_period_start")
        period_end = _get(subscription, "current_period_end") or _get(first_item, "current_period_end")
        return {
            "id": _get(subscription, "id"),
            "customer_id": _get(subscription, "customer"),
            "status": _get(subscription, "status"),
            "price_id": price_id,
            "plan": self.plan_for_price(price_id),
            "current_period_start": _from_timestamp(period_start),
            "current_period_end": _from_timestamp(period_end),
            "cancel_at_period_end": bool(_get(subscription, "cancel_at_period_end", False)),
        }

    def fetch_subscription(self, subscription_id):
        subscription = self._call("subscription retrieval", self.stripe.Subscription.retrieve, subscription_id)
        return self._normalize_subscription(subscription)

    def find_customer_subscription(self, customer_id):
        result = self._call(
            "subscription listing", self.stripe.Subscription.list,
            customer=customer_id, limit=1, status="all",
        )
        data = _get(result, "data", [])
        return self._normalize_subscription(data[0]) if data else None

    def list_invoices(self, customer_id=None, subscription_id=None):
        if not customer_id:
            return []
        result = self._call("invoice listing", self.stripe.Invoice.list, customer=customer_id, limit=5)
        return [
            {
                "id": _get(invoice, "id"),
                "amount": (_get(invoice, "amount_paid", 0) or 0) / 100,
                "currency": (_get(invoice, "currency", "usd") or "usd").upper(),
                "status": _get(invoice, "status"),
                "date": _from_timestamp(_get(invoice, "created")),
                "url": _get(invoice, "hosted_invoice_url"),
                "pdf": _get(invoice, "invoice_pdf"),
            }
            for invoice in _get(result, "data", [])
        ]

    def get_payment_method(self, customer_id=None, subscription_id=None):
        if not customer_id:
            return None
        result = self._call(
            "payment method listing", self.stripe.PaymentMethod.list,
            customer=customer_id, type="card", limit=1,
        )
        data = _get(result, "data", [])
        if not data:
            return None
        card = _get(data[0], "card")
        return {
            "brand": _get(card, "brand"),
            "last4": _get(card, "last4"),
            "expiryMonth": _get(card, "exp_month"),
            "expiryYear": _get(card, "exp_year"),
        }

    def fetch_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        """One-off card payment, normalized; credit packs carry userId and credits in metadata"""
        intent = self._call("payment intent retrieval", self.stripe.PaymentIntent.retrieve, payment_intent_id)
        metadata = _get(intent, "metadata", {})
        return {
            "id": _get(intent, "id"),
            "status": _get(intent, "status"),
            "amount": (_get(intent, "amount_received", 0) or 0) / 100,
            "currency": (_get(intent, "currency", "usd") or "usd").upper(),
            "user_id": _int_or_none(_get(metadata, "userId")),
            "credits": _int_or_none(_get(metadata, "credits")),
        }

    def verify_webhook_signature(self, payload, signature):
        """Verify Stripe webhook signature"""
        if not signature or not self.webhook_secret:
            return False
        try:
            self.stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
            return True
        except self.stripe.SignatureVerificationError:
            return False
        except ValueError as e:
            logger.warning(f"Stripe webhook payload invalid: {e}")
            return False

    def parse_webhook_event(self, payload):
        """Parse Stripe webhook event"""
        event_type = payload.get("type", "")
        data = payload.get("data", {}).get("object", {}) or {}
        metadata = data.get("metadata") or {}

        if event_type == "checkout.session.completed":
            return _event(
                "stripe", "checkout_completed",
                provider_event_id=payload.get("id", ""),
                subscription_id=data.get("subscription"),
                customer_id=data.get("customer"),
                user_id=_int_or_none(metadata.get("userId") or data.get("client_reference_id")),
                plan=metadata.get("planName"),
                raw_data=data,
            )

        if event_type.startswith("customer.subscription."):
            normalized = self._normalize_subscription(data)
            event_mapping = {
                "customer.subscription.created": "subscription_created",
                "customer.subscription.updated": "subscription_updated",
                "customer.subscription.deleted": "subscription_cancelled",
            }
            return _event(
                "stripe", event_mapping.get(event_type, event_type),
                provider_event_id=payload.get("id", ""),
                subscription_id=normalized["id"],
                customer_id=normalized["customer_id"],
                user_id=_int_or_none(metadata.get("userId")),
                status=normalized["status"],
                plan=normalized["plan"],
                current_period_start=normalized["current_period_start"],
                current_period_end=normalized["current_period_end"],
                cancel_at_period_end=normalized["cancel_at_period_end"],
                raw_data=data,
            )

        invoice_mapping = {
            "invoice.paid": "payment_succeeded",
            "invoice.payment_succeeded": "payment_succeeded",
            "invoice.payment_failed": "payment_failed",
        }
        if event_type in invoice_mapping:
            return _event(
                "stripe", invoice_mapping[event_type],
                provider_event_id=payload.get("id", ""),
                subscription_id=data.get("subscription"),
                customer_id=data.get("customer"),
                amount=(data.get("amount_paid") or data.get("amount_due") or 0) / 100,
                currency=(data.get("currency") or "usd").upper(),
                transaction_id=data.get("id"),
                raw_data=data,
            )

        return _event("stripe", event_type, provider_event_id=payload.get("id", ""), raw_data=data)


class PaddleGateway(BillingGateway):
    """Paddle Billing gateway (REST over httpx)"""

    name = "paddle"

    def __init__(
        self,
        api_key: str,
        webhook_secret: Optional[str],
        base_url: str,
        price_ids: Dict[str, Optional[str]],
        product_ids: Dict[str, Optional[str]],
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.price_ids = price_ids
        self.product_ids = product_ids
        self.client = client

    def plan_for_product(self, product_id: Optional[str], price_id: Optional[str] = None) -> str:
        plan = plan_from_price(product_id, self.product_ids.get(PLAN_PRO), self.product_ids.get(PLAN_BUSINESS))
        if plan == PLAN_FREE:
            plan = plan_from_price(price_id, self.price_ids.get(PLAN_PRO), self.price_ids.get(PLAN_BUSINESS))
        return plan

    def _request(self, method: str, endpoint: str, data: Optional[Dict] = None, params: Optional[Dict] = None) -> httpx.Response:
        """Make HTTP request to the Paddle API"""
        url = f"{self.base_url}{endpoint}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            return _send(self.client, method, url, headers=headers, json=data, params=params)
        except httpx.HTTPError as e:
            logger.error(f"Paddle API request failed: {method} {endpoint}: {e}")
            raise ProviderError("paddle", str(e)) from e

    def _json(self, response: httpx.Response, description: str) -> Dict[str, Any]:
        if response.is_success:
            return response.json()
        logger.error(f"Paddle {description} failed: {response.status_code} {response.text[:500]}")
        raise ProviderError("paddle", f"{description} failed with status {response.status_code}")

    def find_or_create_customer(self, user_id: int, email: str) -> str:
        search = self._request("GET", "/customers", params={"email": email})
        if search.is_success:
            customers = search.json().get("data") or []
            if customers:
                return customers[0]["id"]
        else:
            logger.warning(f"Paddle customer search failed: {search.status_code}")

        response = self._request("POST", "/customers", data={"email": email, "custom_data": {"userId": str(user_id)}})
        if response.is_success:
            customer_id = response.json()["data"]["id"]
            logger.info(f"Created Paddle customer {customer_id} for user {user_id}")
            return customer_id

        error = (response.json() if response.content else {}).get("error") or {}
        if error.get("code") == "customer_already_exists":
            match = PADDLE_CUSTOMER_ID_PATTERN.search(error.get("detail", ""))
            if match:
                logger.info(f"Using existing Paddle customer {match.group(1)} from error detail")
                return match.group(1)
        logger.error(f"Paddle customer creation failed: {response.status_code} {error}")
        raise ProviderError("paddle", "customer creation failed")

    def create_checkout(self, user_id, email, plan, success_url, cancel_url, price_id=None, customer_id=None):
        price_id = price_id or self.price_ids.get(plan)
        if not price_id:
            raise ValueError(f"No Paddle price configured for plan {plan}")

        customer_id = customer_id or self.find_or_create_customer(user_id, email)
        body = {
            "items": [{"price_id": price_id, "quantity": 1}],
            "customer_id": customer_id,
            "custom_data": {"userId": str(user_id), "planName": plan},
            "checkout": {"url": success_url},
        }
        data = self._json(self._request("POST", "/transactions", data=body), "transaction creation")["data"]
        return {
            "url": (data.get("checkout") or {}).get("url"),
            "transaction_id": data.get("id"),
            "customer_id": customer_id,
            "price_id": price_id,
        }

    def create_portal_session(self, customer_id, return_url):
        data = self._json(
            self._request("POST", f"/customers/{customer_id}/portal-sessions", data={}),
            "portal session creation",
        )["data"]
        return ((data.get("urls") or {}).get("general") or {}).get("overview")

    def fetch_subscription(self, subscription_id):
        data = self._json(self._request("GET", f"/subscriptions/{subscription_id}"), "subscription retrieval")["data"]
        items = data.get("items") or []
        price = (items[0].get("price") or {}) if items else {}
        period = data.get("current_billing_period") or {}
        scheduled = data.get("scheduled_change") or {}
        return {
            "id": data.get("id"),
            "customer_id": data.get("customer_id"),
            "status": data.get("status"),
            "price_id": price.get("id"),
            "plan": self.plan_for_product(price.get("product_id"), price.get("id")),
            "current_period_start": _from_iso(period.get("starts_at")),
            "current_period_end": _from_iso(period.get("ends_at")),
            "cancel_at_period_end": scheduled.get("action") == "cancel",
        }

    def _transactions(self, subscription_id: str, per_page: int = 5) -> List[Dict[str, Any]]:
        response = self._request(
            "GET", "/transactions",
            params={"subscription_id": subscription_id, "per_page": per_page, "order_by": "created_at[DESC]"},
        )
        return self._json(response, "transaction listing").get("data") or []

    def list_invoices(self, customer_id=None, subscription_id=None):
        if not subscription_id:
            return []
        invoices = []
        for txn in self._transactions(subscription_id):
            totals = (txn.get("details") or {}).get("totals") or {}
            invoices.append({
                "id": txn.get("invoice_number") or txn.get("id"),
                # Paddle totals are strings in the lowest denomination
                "amount": int(totals.get("total") or 0) / 100,
                "currency": totals.get("currency_code") or txn.get("currency_code") or "USD",
                "status": txn.get("status"),
                "date": _from_iso(txn.get("billed_at") or txn.get("created_at")),
                "url": txn.get("receipt_url"),
                "pdf": None,
            })
        return invoices

    def get_payment_method(self, customer_id=None, subscription_id=None):
        if not subscription_id:
            return None
        for txn in self._transactions(subscription_id, per_page=1):
            for payment in txn.get("payments") or []:
                card = (payment.get("method_details") or {}).get("card")
                if card:
                    return {
                        "brand": card.get("type"),
                        "last4": card.get("last4"),
                        "expiryMonth": card.get("expiry_month"),
                        "expiryYear": card.get("expiry_year"),
                    }
        return None

    def verify_webhook_signature(self, payload, signature):
        """Verify a Paddle-Signature header: ts=<unix>;h1=<hex hmac of "ts:body">"""
        if not signature or not self.webhook_secret:
            return False
        parts = dict(
            part.split("=", 1) for part in signature.split(";") if "=" in part
        )
        ts, h1 = parts.get("ts"), parts.get("h1")
        if not ts or not h1:
            return False
        signed = f"{ts}:".encode("utf-8") + payload
        expected = hmac.new(self.webhook_secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, h1)

    @staticmethod
    def decode_payload(body: bytes, content_type: str) -> Dict[str, Any]:
        """Paddle Billing sends JSON; classic alerts are form-encoded"""
        if "application/x-www-form-urlencoded" in (content_type or ""):
            return {k: v[0] for k, v in parse_qs(body.decode("utf-8")).items()}
        return json.loads(body or b"{}")

    def parse_webhook_event(self, payload):
        """Parse a Paddle Billing or classic webhook payload"""
        if "alert_name" in payload:
            return self._parse_classic_event(payload)

        event_type = payload.get("event_type", "")
        data = payload.get("data") or {}
        custom = data.get("custom_data") or {}
        items = data.get("items") or []
        price = (items[0].get("price") or {}) if items else {}
        period = data.get("current_billing_period") or {}

        event_mapping = {
            "subscription.created": "subscription_created",
            "subscription.activated": "subscription_created",
            "subscription.updated": "subscription_updated",
            "subscription.canceled": "subscription_cancelled",
            "subscription.past_due": "subscription_updated",
            "transaction.completed": "payment_succeeded",
            "transaction.payment_failed": "payment_failed",
        }
        is_transaction = event_type.startswith("transaction.")
        totals = (data.get("details") or {}).get("totals") or {}
        return _event(
            "paddle", event_mapping.get(event_type, event_type),
            provider_event_id=payload.get("event_id", ""),
            user_id=_int_or_none(custom.get("userId")),
            subscription_id=data.get("subscription_id") if is_transaction else data.get("id"),
            customer_id=data.get("customer_id"),
            status=data.get("status"),
            plan=self.plan_for_product(price.get("product_id"), price.get("id")) if price else custom.get("planName"),
            current_period_start=_from_iso(period.get("starts_at")),
            current_period_end=_from_iso(period.get("ends_at")),
            cancel_at_period_end=((data.get("scheduled_change") or {}).get("action") == "cancel"),
            amount=int(totals["total"]) / 100 if totals.get("total") else None,
            currency=totals.get("currency_code"),
            transaction_id=data.get("id") if is_transaction else None,
            raw_data=data,
        )

    def _parse_classic_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        alert = payload.get("alert_name", "")
        try:
            passthrough = json.loads(payload.get("passthrough") or "{}")
        except ValueError:
            passthrough = {}
        event_mapping = {
            "subscription_created": "subscription_created",
            "subscription_updated": "subscription_updated",
            "subscription_cancelled": "subscription_cancelled",
            "subscription_payment_succeeded": "payment_succeeded",
            "subscription_payment_failed": "payment_failed",
        }
        next_bill = payload.get("next_bill_date")
        return _event(
            "paddle", event_mapping.get(alert, alert),
            provider_event_id=payload.get("alert_id", ""),
            user_id=_int_or_none(passthrough.get("userId")),
            subscription_id=payload.get("subscription_id"),
            customer_id=payload.get("user_id"),
            status=payload.get("status"),
            plan=passthrough.get("planName") or self.plan_for_product(payload.get("subscription_plan_id")),
            current_period_end=datetime.strptime(next_bill, "%Y-%m-%d") if next_bill else None,
            raw_data=payload,
        )


class FatoraGateway(BillingGateway):
    """Fatora one-off payment gateway (REST over httpx)"""

    name = "fatora"

    def __init__(self, api_key: str, webhook_secret: Optional[str], base_url: str, prices: Dict[str, float],
                 client: Optional[httpx.Client] = None):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.prices = prices
        self.client = client

    def _post(self, endpoint: str, data: Dict[str, Any], description: str) -> Dict[str, Any]:
        try:
            response = _send(
                self.client, "POST", f"{self.base_url}{endpoint}",
                headers={"api_key": self.api_key, "Content-Type": "application/json"},
                json=data,
            )
        except httpx.HTTPError as e:
            logger.error(f"Fatora {description} failed: {e}")
            raise ProviderError("fatora", str(e)) from e
        if not response.is_success:
            logger.error(f"Fatora {description} failed: {response.status_code} {response.text[:500]}")
            raise ProviderError("fatora", f"{description} failed with status {response.status_code}")
        return response.json()

    def create_checkout(self, user_id, email, plan, success_url, cancel_url, price_id=None, customer_id=None):
        amount = self.prices.get(plan)
        if not amount:
            raise ValueError(f"No Fatora price configured for plan {plan}")
        order_id = make_fatora_order_id(user_id)
        result = self._post("/payments/checkout", {
            "amount": amount,
            "currency": "USD",
            "order_id": order_id,
            "client": {"name": email.split("@")[0], "email": email},
            "language": "en",
            "success_url": success_url,
            "failure_url": cancel_url,
            "note": f"Subscription to {plan} plan",
        }, "checkout creation")
        payment_url = result.get("payment_url") or (result.get("result") or {}).get("checkout_url")
        if not payment_url:
            raise ProviderError("fatora", "No payment URL in checkout response")
        return {"url": payment_url, "order_id": order_id, "amount": amount}

    def verify_payment(self, order_id: str, transaction_id: Optional[str] = None) -> Dict[str, Any]:
        """Ask Fatora for the state of an order; returns {"status", "result": {...}}"""
        body = {"order_id": order_id}
        if transaction_id:
            body["transaction_id"] = transaction_id
        return self._post("/payments/verify", body, "payment verification")

    def create_portal_session(self, customer_id, return_url):
        raise ValueError("Fatora does not provide a billing portal")

    def fetch_subscription(self, subscription_id):
        return None

    def list_invoices(self, customer_id=None, subscription_id=None):
        return []

    def get_payment_method(self, customer_id=None, subscription_id=None):
        return None

    def verify_webhook_signature(self, payload, signature):
        """Hex HMAC-SHA256 of the raw body; skipped when no secret is configured"""
        if not self.webhook_secret:
            logger.warning("FATORA_WEBHOOK_SECRET not set - skipping Fatora signature verification")
            return True
        if not signature:
            return False
        expected = hmac.new(self.webhook_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)

    def parse_webhook_event(self, payload):
        """Parse Fatora payment callback"""
        status = (payload.get("status") or payload.get("payment_status") or "").upper()
        order_id = payload.get("order_id")
        amount = payload.get("amount")
        event_type = {"SUCCESS": "payment_succeeded", "FAILED": "payment_failed", "FAILURE": "payment_failed"}.get(
            status, status.lower()
        )
        return _event(
            "fatora", event_type,
            # A retried order gets a new callback per status
            provider_event_id=payload.get("transaction_id") or (f"{order_id}:{status}" if order_id else ""),
            user_id=user_id_from_order_id(order_id),
            status=status,
            plan=plan_from_fatora_amount(amount),
            amount=float(amount) if amount not in (None, "") else None,
            currency=payload.get("currency") or "USD",
            order_id=order_id,
            transaction_id=payload.get("transaction_id"),
            raw_data=payload,
        )


def get_billing_gateway(provider: str, config) -> BillingGateway:
    """
    Factory function to get the appropriate billing gateway

    Args:
        provider: 'stripe', 'paddle', or 'fatora'
        config: Config object with payment provider settings

    Returns:
        BillingGateway instance

    Raises:
        ProviderNotConfiguredError: The provider has no API key
        ValueError: Unknown provider
    """
    if provider == "stripe":
        if not config.STRIPE_SECRET_KEY:
            raise ProviderNotConfiguredError("stripe")
        return StripeGateway(
            api_key=config.STRIPE_SECRET_KEY,
            webhook_secret=config.STRIPE_WEBHOOK_SECRET,
            price_ids={PLAN_PRO: config.STRIPE_PRICE_ID_PRO, PLAN_BUSINESS: config.STRIPE_PRICE_ID_BUSINESS},
        )
    if provider == "paddle":
        if not config.PADDLE_API_KEY:
            raise ProviderNotConfiguredError("paddle")
        return PaddleGateway(
            api_key=config.PADDLE_API_KEY,
            webhook_secret=config.PADDLE_WEBHOOK_SECRET,
            base_url=config.paddle_api_url,
            price_ids={PLAN_PRO: config.PADDLE_PRICE_ID_PRO, PLAN_BUSINESS: config.PADDLE_PRICE_ID_BUSINESS},
            product_ids={PLAN_PRO: config.PADDLE_PRODUCT_ID_PRO, PLAN_BUSINESS: config.PADDLE_PRODUCT_ID_BUSINESS},
        )
    if provider == "fatora":
        if not config.FATORA_API_KEY:
            raise ProviderNotConfiguredError("fatora")
        from .credits_service import get_plans
        prices = {name: plan.get("fatora_price") for name, plan in get_plans().items() if plan.get("fatora_price")}
        return FatoraGateway(
            api_key=config.FATORA_API_KEY,
            webhook_secret=config.FATORA_WEBHOOK_SECRET,
            base_url=config.FATORA_API_URL,
            prices=prices,
        )
    raise ValueError(f"Unknown payment provider: {provider}")
