"""
Database module for Content Studio
"""
from .engine import engine, SessionLocal, get_db
from .base import Base
from .models import (
    User,
    NotificationSettings,
    Template,
    GeneratedContent,
    GeneratedImage,
    UserCredits,
    CreditLog,
    Subscription,
    Payment,
    BillingEvent,
    AdminSettings,
)

__all__ = [
    "engine",
    "SessionLocal",
    "get_db",
    "Base",
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
    "AdminSettings",
]
