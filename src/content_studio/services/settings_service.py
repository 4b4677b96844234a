"""
Settings Service - versioned admin panel settings
"""
from sqlalchemy.orm import Session
from typing import Dict, Any
import copy
import logging

from ..db.models import AdminSettings

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "security": {
        "minPasswordLength": 8,
        "requireSpecialChar": True,
        "requireNumber": True,
        "requireUppercase": True,
        "sessionTimeout": 60,
        "maxLoginAttempts": 5,
        "enableTwoFactor": False,
        "ipRestriction": False,
        "allowedIPs": "",
        "adminEmailNotifications": True,
        "securityLogRetention": "90",
    },
    "api": {
        "rateLimit": 100,
        "apiTimeout": 30,
        "enableCORS": True,
        "allowedOrigins": "*",
    },
}


class SettingsService:
    """Each save inserts a new row; reads return the newest one"""

    def __init__(self, db: Session):
        self.db = db

    def get(self) -> Dict[str, Any]:
        latest = (
            self.db.query(AdminSettings)
            .order_by(AdminSettings.created_at.desc(), AdminSettings.id.desc())
            .first()
        )
        if latest is None:
            return copy.deepcopy(DEFAULT_SETTINGS)
        return latest.settings or {}

    def save(self, settings: Dict[str, Any]) -> AdminSettings:
        if not isinstance(settings, dict):
            raise ValueError("Invalid settings data")
        row = AdminSettings(settings=settings)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        logger.info(f"Saved admin settings version {row.id}")
        return row
