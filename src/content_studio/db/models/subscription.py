"""
Subscription and payment models
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, Float
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from ..base import Base, JSONType


class SubscriptionStatus(str, enum.Enum):
    """Subscription status enum"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"
    TRIALING = "trialing"


class PaymentProvider(str, enum.Enum):
    """Payment provider enum"""
    STRIPE = "stripe"
    PADDLE = "paddle"
    FATORA = "fatora"


class Subscription(Base):
    """User subscription model; one row per user"""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)
    plan = Column(String, nullable=False, default="Free", index=True)
    status = Column(String, nullable=False, default=SubscriptionStatus.INACTIVE.value, index=True)
    payment_provider = Column(String, nullable=True, index=True)
    price = Column(Float, nullable=True)

    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_subscription_id = Column(String, nullable=True, index=True)
    paddle_customer_id = Column(String, nullable=True, index=True)
    paddle_subscription_id = Column(String, nullable=True, index=True)
    paddle_price_id = Column(String, nullable=True)
    transaction_id = Column(String, nullable=True, index=True)

    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="subscription")


class Payment(Base):
    """One-off payment record (Fatora orders)"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider = Column(String, nullable=False, index=True)
    order_id = Column(String, nullable=True, index=True)
    transaction_id = Column(String, nullable=True, index=True)
    amount = Column(Float, nullable=False, default=0.0)
    currency = Column(String, nullable=False, default="USD")
    status = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class BillingEvent(Base):
    """Processed webhook events; provider_event_id guards against replays"""
    __tablename__ = "billing_events"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String, nullable=False, index=True)
    event_type = Column(String, nullable=False, index=True)
    provider_event_id = Column(String, nullable=False, unique=True, index=True)
    payload_json = Column(JSONType, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
