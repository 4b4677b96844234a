"""
Subscription Service - Manages user subscriptions across payment providers
"""
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional, Dict, Any, Callable, Tuple
import calendar
import logging

from fastapi import HTTPException, status

from ..config import config
from ..db.models import User, Subscription, Payment, BillingEvent, SubscriptionStatus, PaymentProvider
from ..exceptions import ProviderError, ProviderNotConfiguredError
from .billing_gateway import (
    BillingGateway,
    get_billing_gateway,
    user_id_from_order_id,
    PLAN_FREE,
    PLAN_PRO,
    PLAN_BUSINESS,
)
from .credits_service import CreditsService, credits_for_plan, price_for_plan

logger = logging.getLogger(__name__)

PAID_PLANS = (PLAN_PRO, PLAN_BUSINESS)


def add_months(value: datetime, months: int = 1) -> datetime:
    """Same day N months later, clamped to the end of shorter months"""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SubscriptionService:
    """Service for subscription state, checkout and provider reconciliation"""

    def __init__(self, db: Session, gateway_factory: Optional[Callable[[str], BillingGateway]] = None):
        """
        Initialize SubscriptionService

        Args:
            db: Database session
            gateway_factory: provider name -> BillingGateway; defaults to the configured gateways
        """
        self.db = db
        self.gateway_factory = gateway_factory or (lambda provider: get_billing_gateway(provider, config))
        self.credits = CreditsService(db)

    def get_subscription(self, user_id: int) -> Optional[Subscription]:
        return self.db.query(Subscription).filter(Subscription.user_id == user_id).first()

    def get_or_create_subscription(self, user_id: int) -> Subscription:
        subscription = self.get_subscription(user_id)
        if subscription is None:
            subscription = Subscription(
                user_id=user_id,
                plan=PLAN_FREE,
                status=SubscriptionStatus.INACTIVE.value,
                price=0.0,
            )
            self.db.add(subscription)
            self.db.flush()
        return subscription

    def _set_plan(self, subscription: Subscription, plan: Optional[str], commit: bool = True) -> None:
        """Switch plan; the credit allowance follows the plan"""
        if not plan or plan == subscription.plan:
            return
        logger.info(f"User {subscription.user_id} plan change: {subscription.plan} -> {plan}")
        subscription.plan = plan
        subscription.price = price_for_plan(plan)
        self.credits.update_total(subscription.user_id, credits_for_plan(plan), commit=commit)

    def _apply_provider_state(self, subscription: Subscription, state: Dict[str, Any], commit: bool = True) -> None:
        """Write a provider's view of the subscription back to the row"""
        if state.get("status"):
            subscription.status = state["status"]
        if state.get("current_period_start"):
            subscription.current_period_start = state["current_period_start"]
        if state.get("current_period_end"):
            subscription.current_period_end = state["current_period_end"]
        subscription.cancel_at_period_end = bool(state.get("cancel_at_period_end"))
        self._set_plan(subscription, state.get("plan"), commit=commit)
        subscription.updated_at = datetime.utcnow()
        if commit:
            self.db.commit()

    # Status

    def get_status(self, user: User) -> Dict[str, Any]:
        """
        Subscription status refreshed from the user's provider.

        Provider failures fall back to the stored row without payment
        method or invoices.
        """
        subscription = self.get_subscription(user.id)
        if subscription is None:
            return {"subscription": None, "paymentMethod": None, "invoices": []}

        payment_method = None
        invoices = []
        price_id = subscription.paddle_price_id
        try:
            if subscription.payment_provider == PaymentProvider.PADDLE.value and subscription.paddle_subscription_id:
                gateway = self.gateway_factory(PaymentProvider.PADDLE.value)
                state = gateway.fetch_subscription(subscription.paddle_subscription_id)
                if state:
                    self._apply_provider_state(subscription, state)
                    price_id = state.get("price_id") or price_id
                payment_method = gateway.get_payment_method(subscription_id=subscription.paddle_subscription_id)
                invoices = gateway.list_invoices(subscription_id=subscription.paddle_subscription_id)

            elif subscription.stripe_customer_id:
                gateway = self.gateway_factory(PaymentProvider.STRIPE.value)
                if subscription.stripe_subscription_id:
                    state = gateway.fetch_subscription(subscription.stripe_subscription_id)
                else:
                    state = gateway.find_customer_subscription(subscription.stripe_customer_id)
                    if state:
                        logger.info(f"Adopting Stripe subscription {state['id']} for user {user.id}")
                        subscription.stripe_subscription_id = state["id"]
                if state:
                    self._apply_provider_state(subscription, state)
                    price_id = state.get("price_id")
                payment_method = gateway.get_payment_method(customer_id=subscription.stripe_customer_id)
                invoices = gateway.list_invoices(customer_id=subscription.stripe_customer_id)

        except (ProviderError, ProviderNotConfiguredError) as e:
            logger.warning(f"Subscription refresh failed for user {user.id}, using stored state: {e}")
            self.db.rollback()
            payment_method = None
            invoices = []

        return {
            "subscription": self.serialize(subscription, price_id),
            "paymentMethod": payment_method,
            "invoices": [dict(invoice, date=_iso(invoice.get("date"))) for invoice in invoices],
        }

    def serialize(self, subscription: Subscription, price_id: Optional[str] = None) -> Dict[str, Any]:
        plan = subscription.plan or PLAN_FREE
        credits = self.credits.get_or_create(subscription.user_id, credits_for_plan(plan))
        return {
            "id": subscription.id,
            "status": subscription.status,
            "plan": plan,
            "provider": subscription.payment_provider,
            "priceId": price_id,
            "price": subscription.price if subscription.price is not None else price_for_plan(plan),
            "currentPeriodStart": _iso(subscription.current_period_start),
            "currentPeriodEnd": _iso(subscription.current_period_end),
            "cancelAtPeriodEnd": bool(subscription.cancel_at_period_end),
            "usageCredits": credits.used_credits,
            "maxCredits": credits_for_plan(plan),
        }

    # Webhook events

    def _find_for_event(self, event: Dict[str, Any]) -> Optional[Subscription]:
        if event.get("user_id"):
            if self.db.query(User.id).filter(User.id == event["user_id"]).first() is None:
                logger.warning(f"Webhook event for unknown user {event['user_id']}")
                return None
            return self.get_or_create_subscription(event["user_id"])

        query = self.db.query(Subscription)
        if event["provider"] == PaymentProvider.STRIPE.value:
            if event.get("subscription_id"):
                found = query.filter(Subscription.stripe_subscription_id == event["subscription_id"]).first()
                if found:
                    return found
            if event.get("customer_id"):
                return query.filter(Subscription.stripe_customer_id == event["customer_id"]).first()
        elif event["provider"] == PaymentProvider.PADDLE.value:
            if event.get("subscription_id"):
                found = query.filter(Subscription.paddle_subscription_id == event["subscription_id"]).first()
                if found:
                    return found
            if event.get("customer_id"):
                return query.filter(Subscription.paddle_customer_id == event["customer_id"]).first()
        return None

    def _record_ids(self, subscription: Subscription, event: Dict[str, Any]) -> None:
        provider = event["provider"]
        subscription.payment_provider = provider
        if provider == PaymentProvider.STRIPE.value:
            subscription.stripe_customer_id = event.get("customer_id") or subscription.stripe_customer_id
            subscription.stripe_subscription_id = event.get("subscription_id") or subscription.stripe_subscription_id
        elif provider == PaymentProvider.PADDLE.value:
            subscription.paddle_customer_id = event.get("customer_id") or subscription.paddle_customer_id
            subscription.paddle_subscription_id = event.get("subscription_id") or subscription.paddle_subscription_id

    def apply_event(self, event: Dict[str, Any]) -> Optional[Subscription]:
        """
        Apply a normalized webhook event.

        Returns:
            The updated subscription, or None when the event was ignored

        Raises:
            ValueError: A Fatora event whose order id carries no user id
        """
        event_type = event["event_type"]
        provider = event["provider"]
        event_id = event.get("provider_event_id")

        if event_id:
            if self.db.query(BillingEvent.id).filter(BillingEvent.provider_event_id == event_id).first():
                logger.warning(f"Duplicate webhook event {event_id} - ignoring")
                return None
            self.db.add(BillingEvent(
                provider=provider,
                event_type=event_type,
                provider_event_id=event_id,
                payload_json=event.get("raw_data") or {},
            ))
            self.db.flush()

        if provider == PaymentProvider.FATORA.value:
            return self._apply_fatora_event(event)

        handled = (
            "checkout_completed",
            "subscription_created",
            "subscription_updated",
            "subscription_cancelled",
            "payment_succeeded",
            "payment_failed",
        )
        if event_type not in handled:
            logger.info(f"Ignoring {provider} event {event_type}")
            self.db.commit()
            return None

        subscription = self._find_for_event(event)
        if subscription is None:
            logger.warning(f"No subscription matches {provider} event {event_type} ({event.get('subscription_id')})")
            self.db.commit()
            return None

        self._record_ids(subscription, event)

        if event_type == "checkout_completed":
            state = None
            if event.get("subscription_id"):
                state = self.gateway_factory(provider).fetch_subscription(event["subscription_id"])
            if state:
                self._apply_provider_state(subscription, state, commit=False)
            else:
                subscription.status = SubscriptionStatus.ACTIVE.value
                self._set_plan(subscription, event.get("plan"), commit=False)

        elif event_type in ("subscription_created", "subscription_updated"):
            self._apply_provider_state(subscription, event, commit=False)

        elif event_type == "subscription_cancelled":
            if provider == PaymentProvider.STRIPE.value:
                subscription.status = SubscriptionStatus.INACTIVE.value
                subscription.stripe_subscription_id = None
                subscription.cancel_at_period_end = False
                self._set_plan(subscription, PLAN_FREE, commit=False)
            else:
                subscription.status = SubscriptionStatus.CANCELLED.value

        elif event_type == "payment_succeeded":
            subscription.status = SubscriptionStatus.ACTIVE.value
            raw = event.get("raw_data") or {}
            renewal = raw.get("billing_reason") == "subscription_cycle" or raw.get("origin") == "subscription_recurring"
            if renewal:
                self.credits.reset(subscription.user_id, credits_for_plan(subscription.plan), commit=False)

        elif event_type == "payment_failed":
            subscription.status = SubscriptionStatus.PAST_DUE.value

        subscription.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(subscription)
        logger.info(f"Applied {provider} event {event_type} to subscription of user {subscription.user_id}")
        return subscription

    def _apply_fatora_event(self, event: Dict[str, Any]) -> Optional[Subscription]:
        user_id = event.get("user_id") or user_id_from_order_id(event.get("order_id"))
        if user_id is None:
            raise ValueError(f"Invalid order id: {event.get('order_id')}")
        if self.db.query(User.id).filter(User.id == user_id).first() is None:
            logger.warning(f"Fatora event for unknown user {user_id}")
            self.db.commit()
            return None

        event_type = event["event_type"]
        if event_type not in ("payment_succeeded", "payment_failed"):
            logger.info(f"Ignoring fatora event {event_type} for order {event.get('order_id')}")
            self.db.commit()
            return None

        order_id = event.get("order_id")
        payment = (
            self.db.query(Payment)
            .filter(Payment.provider == PaymentProvider.FATORA.value, Payment.order_id == order_id)
            .first()
        )
        if payment is not None and payment.status == "succeeded":
            logger.info(f"Fatora order {order_id} already applied")
            self.db.commit()
            return self.get_subscription(user_id)

        if payment is None:
            payment = Payment(user_id=user_id, provider=PaymentProvider.FATORA.value, order_id=order_id)
            self.db.add(payment)
        payment.transaction_id = event.get("transaction_id")
        payment.amount = event.get("amount") or 0.0
        payment.currency = event.get("currency") or "USD"

        if event_type == "payment_failed":
            payment.status = "failed"
            self.db.commit()
            logger.warning(f"Fatora payment failed for order {order_id}")
            return self.get_subscription(user_id)

        payment.status = "succeeded"
        subscription = self.get_or_create_subscription(user_id)
        now = datetime.utcnow()
        previous_plan = subscription.plan
        subscription.payment_provider = PaymentProvider.FATORA.value
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.transaction_id = event.get("transaction_id")
        subscription.current_period_start = now
        subscription.current_period_end = add_months(now)
        subscription.cancel_at_period_end = False
        self._set_plan(subscription, event.get("plan"), commit=False)
        if subscription.plan == previous_plan:
            self.credits.reset(user_id, credits_for_plan(subscription.plan), commit=False)
        subscription.updated_at = now
        self.db.commit()
        self.db.refresh(subscription)
        logger.info(f"Activated {subscription.plan} via Fatora order {order_id} for user {user_id}")
        return subscription

    # Checkout and portal

    def start_checkout(self, user: User, provider: str, plan: str, price_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Provider-specific checkout start.

        Raises:
            ValueError: Unknown provider or plan
            ProviderNotConfiguredError: Provider has no credentials
            ProviderError: Provider call failed
        """
        if plan not in PAID_PLANS:
            raise ValueError(f"Invalid plan: {plan}")
        gateway = self.gateway_factory(provider)
        subscription = self.get_or_create_subscription(user.id)

        base = f"{config.APP_URL}/dashboard/billing"
        customer_id = None
        if provider == PaymentProvider.STRIPE.value:
            customer_id = subscription.stripe_customer_id
        elif provider == PaymentProvider.PADDLE.value:
            customer_id = subscription.paddle_customer_id

        result = gateway.create_checkout(
            user_id=user.id,
            email=user.email,
            plan=plan,
            success_url=f"{base}?success=true&provider={provider}",
            cancel_url=f"{base}?canceled=true&provider={provider}",
            price_id=price_id,
            customer_id=customer_id,
        )

        subscription.payment_provider = provider
        if subscription.status != SubscriptionStatus.ACTIVE.value:
            subscription.status = SubscriptionStatus.PENDING.value
        if provider == PaymentProvider.STRIPE.value:
            subscription.stripe_customer_id = result.get("customer_id")
        elif provider == PaymentProvider.PADDLE.value:
            subscription.paddle_customer_id = result.get("customer_id")
            subscription.paddle_price_id = result.get("price_id")
            subscription.transaction_id = result.get("transaction_id")
        elif provider == PaymentProvider.FATORA.value:
            self.db.add(Payment(
                user_id=user.id,
                provider=provider,
                order_id=result.get("order_id"),
                amount=result.get("amount") or 0.0,
                status="pending",
            ))
        self.db.commit()
        logger.info(f"Started {provider} checkout for user {user.id} ({plan})")

        response = {"url": result["url"]}
        if result.get("transaction_id"):
            response["transactionId"] = result["transaction_id"]
        if result.get("order_id"):
            response["orderId"] = result["order_id"]
        return response

    def verify_fatora_payment(self, user: User, order_id: str, transaction_id: Optional[str] = None) -> Dict[str, Any]:
        """Check a Fatora order and activate the plan when it was paid"""
        if user_id_from_order_id(order_id) != user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Order does not belong to this user")

        gateway = self.gateway_factory(PaymentProvider.FATORA.value)
        result = gateway.verify_payment(order_id, transaction_id)
        details = result.get("result") or {}
        payment_status = details.get("payment_status") or result.get("status")

        if result.get("status") != "SUCCESS" or details.get("payment_status") != "SUCCESS":
            logger.info(f"Fatora order {order_id} not paid: {payment_status}")
            return {"verified": False, "status": payment_status}

        event = gateway.parse_webhook_event({
            "status": "SUCCESS",
            "order_id": order_id,
            "transaction_id": transaction_id or details.get("transaction_id"),
            "amount": details.get("amount"),
            "currency": details.get("currency"),
        })
        # None when the webhook already applied this order
        subscription = self.apply_event(event) or self.get_subscription(user.id)
        if subscription is None:
            return {"verified": True, "status": SubscriptionStatus.ACTIVE.value, "plan": event["plan"]}
        return {"verified": True, "status": subscription.status, "plan": subscription.plan}

    def confirm_credit_purchase(self, user: User, payment_id: str, amount: int) -> Tuple[int, int]:
        """
        Add a credit pack once its Stripe payment has succeeded.

        Returns:
            (new_total, remaining)
        """
        already_applied = (
            self.db.query(Payment.id)
            .filter(Payment.provider == PaymentProvider.STRIPE.value, Payment.transaction_id == payment_id)
            .first()
        )
        if already_applied:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Payment already applied")

        intent = self.gateway_factory(PaymentProvider.STRIPE.value).fetch_payment_intent(payment_id)
        if intent.get("status") != "succeeded":
            logger.info(f"Credit purchase {payment_id} for user {user.id} not paid: {intent.get('status')}")
            raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail="Payment not completed")
        if intent.get("user_id") != user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Payment does not belong to this user")
        if intent.get("credits") != amount:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Credit amount does not match the payment")

        self.db.add(Payment(
            user_id=user.id,
            provider=PaymentProvider.STRIPE.value,
            transaction_id=payment_id,
            amount=intent.get("amount") or 0.0,
            currency=intent.get("currency") or "USD",
            status="succeeded",
        ))
        # purchase() commits the payment row with the new total
        return self.credits.purchase(user.id, amount, payment_id)

    def portal_session(self, user: User) -> str:
        subscription = self.get_subscription(user.id)
        return_url = f"{config.APP_URL}/dashboard/billing"
        if subscription and subscription.payment_provider == PaymentProvider.PADDLE.value and subscription.paddle_customer_id:
            gateway = self.gateway_factory(PaymentProvider.PADDLE.value)
            return gateway.create_portal_session(subscription.paddle_customer_id, return_url)
        if subscription and subscription.stripe_customer_id:
            gateway = self.gateway_factory(PaymentProvider.STRIPE.value)
            return gateway.create_portal_session(subscription.stripe_customer_id, return_url)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No billing account found")
