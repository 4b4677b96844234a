"""
Admin panel settings model
"""
from sqlalchemy import Column, Integer, DateTime
from datetime import datetime

from ..base import Base, JSONType


class AdminSettings(Base):
    """Versioned admin settings; the newest row wins"""
    __tablename__ = "admin_settings"

    id = Column(Integer, primary_key=True, index=True)
    settings = Column(JSONType, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
