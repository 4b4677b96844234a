"""
Database models for Content Studio
"""
from .user import User, NotificationSettings
from .content import Template, GeneratedContent, GeneratedImage
from .credits import UserCredits, CreditLog
from .subscription import Subscription, Payment, BillingEvent, SubscriptionStatus, PaymentProvider
from .settings import AdminSettings

__all__ = [
    "User",
    "NotificationSettings",
    "Template",
    "GeneratedContent",
    "GeneratedImage",
    "UserCredits",
    "CreditLog",
    "Subscription",
    "Payment",
    "BillingEvent",
    "SubscriptionStatus",
    "PaymentProvider",
    "AdminSettings",
]
