"""
Credit balance and credit ledger models
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from ..base import Base


class UserCredits(Base):
    """Per-user credit counter for the current billing period"""
    __tablename__ = "credits"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)
    total_credits = Column(Integer, nullable=False, default=1000)
    used_credits = Column(Integer, nullable=False, default=0)
    reset_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="credits")

    @property
    def remaining(self) -> int:
        return max(0, (self.total_credits or 0) - (self.used_credits or 0))


class CreditLog(Base):
    """Append-only record of every credit movement"""
    __tablename__ = "credits_log"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    action_type = Column(String, nullable=False, index=True)
    credits_used = Column(Integer, nullable=False, default=0)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
