"""
Credits Service - per-user usage quota backed by the credits table
"""
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple
from pathlib import Path
import logging
import yaml

from ..db.models import UserCredits, CreditLog
from ..exceptions import InsufficientCreditsError

logger = logging.getLogger(__name__)

PLANS_PATH = Path(__file__).parent.parent / "config" / "plans.yaml"
DEFAULT_PLAN = "Free"
DEFAULT_CREDITS = 1000

_plan_config: Optional[Dict[str, Any]] = None


def load_plan_config() -> Dict[str, Any]:
    """Load plan and credit cost configuration from YAML"""
    global _plan_config
    if _plan_config is None:
        with open(PLANS_PATH, "r") as f:
            _plan_config = yaml.safe_load(f) or {}
    return _plan_config


def get_plans() -> Dict[str, Dict[str, Any]]:
    return load_plan_config().get("plans", {})


def credits_for_plan(plan_name: Optional[str]) -> int:
    """Monthly credit allowance for a plan; unknown plans get the Free allowance"""
    plan = get_plans().get(plan_name or DEFAULT_PLAN) or get_plans().get(DEFAULT_PLAN, {})
    return int(plan.get("credits", DEFAULT_CREDITS))


def price_for_plan(plan_name: Optional[str]) -> float:
    plan = get_plans().get(plan_name or DEFAULT_PLAN, {})
    return float(plan.get("price", 0))


def credit_cost(action: str) -> int:
    """Credits consumed by an action; actions without a listed cost are free"""
    return int(load_plan_config().get("credit_costs", {}).get(action, 0))


def next_reset_date(now: Optional[datetime] = None) -> datetime:
    """First day of the following month at midnight"""
    now = now or datetime.utcnow()
    if now.month == 12:
        return datetime(now.year + 1, 1, 1)
    return datetime(now.year, now.month + 1, 1)


class CreditsService:
    """Service for reading and moving user credits"""

    def __init__(self, db: Session):
        self.db = db

    def _save(self, commit: bool) -> None:
        """Commit, or only flush when the caller owns the transaction"""
        if commit:
            self.db.commit()
        else:
            self.db.flush()

    def get_or_create(self, user_id: int, plan_credits: int = DEFAULT_CREDITS, commit: bool = True) -> UserCredits:
        credits = self.db.query(UserCredits).filter(UserCredits.user_id == user_id).first()
        if credits:
            return credits

        credits = UserCredits(
            user_id=user_id,
            total_credits=plan_credits,
            used_credits=0,
            reset_date=next_reset_date(),
        )
        self.db.add(credits)
        self._save(commit)
        if commit:
            self.db.refresh(credits)
        logger.info(f"Initialized {plan_credits} credits for user {user_id}")
        return credits

    def remaining(self, user_id: int) -> int:
        credits = self.get_or_create(user_id)
        return max(0, credits.total_credits - credits.used_credits)

    def has_enough(self, user_id: int, action: str) -> bool:
        return self.remaining(user_id) >= credit_cost(action)

    def use(self, user_id: int, action: str, description: Optional[str] = None) -> int:
        """
        Charge the cost of an action.

        The balance check and the increment are a single conditional UPDATE,
        so concurrent requests cannot overdraw the balance.

        Returns:
            Credits remaining after the charge

        Raises:
            InsufficientCreditsError: The balance does not cover the cost
        """
        cost = credit_cost(action)
        if cost == 0:
            return self.remaining(user_id)

        self.get_or_create(user_id)
        updated = (
            self.db.query(UserCredits)
            .filter(
                UserCredits.user_id == user_id,
                UserCredits.total_credits - UserCredits.used_credits >= cost,
            )
            .update(
                {
                    UserCredits.used_credits: UserCredits.used_credits + cost,
                    UserCredits.updated_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
        )
        if not updated:
            self.db.rollback()
            raise InsufficientCreditsError(action, cost, self.remaining(user_id))

        self.db.add(CreditLog(
            user_id=user_id,
            action_type=action,
            credits_used=cost,
            description=description or action.replace("_", " "),
        ))
        self.db.commit()

        remaining = self.remaining(user_id)
        logger.info(f"User {user_id} used {cost} credits for {action} ({remaining} remaining)")
        return remaining

    def refund(self, user_id: int, action: str, description: Optional[str] = None) -> int:
        """Return the cost of an action that did not complete"""
        cost = credit_cost(action)
        if cost == 0:
            return self.remaining(user_id)

        credits = self.get_or_create(user_id)
        credits.used_credits = max(0, credits.used_credits - cost)
        self.db.add(CreditLog(
            user_id=user_id,
            action_type="manual_adjustment",
            credits_used=-cost,
            description=description or f"Refund for failed {action.replace('_', ' ')}",
        ))
        self.db.commit()
        logger.info(f"Refunded {cost} credits to user {user_id} for {action}")
        return max(0, credits.total_credits - credits.used_credits)

    def log(self, user_id: int, action: str, credits_used: int, description: Optional[str] = None) -> CreditLog:
        entry = CreditLog(
            user_id=user_id,
            action_type=action,
            credits_used=credits_used,
            description=description,
        )
        self.db.add(entry)
        self.db.commit()
        return entry

    def history(self, user_id: int, limit: int = 50) -> List[CreditLog]:
        return (
            self.db.query(CreditLog)
            .filter(CreditLog.user_id == user_id)
            .order_by(CreditLog.created_at.desc(), CreditLog.id.desc())
            .limit(limit)
            .all()
        )

    def update_total(self, user_id: int, new_total: int, commit: bool = True) -> UserCredits:
        """Move a user to a new plan allowance (usage is kept)"""
        credits = self.get_or_create(user_id, new_total, commit=commit)
        credits.total_credits = new_total
        credits.reset_date = next_reset_date()
        self.db.add(CreditLog(
            user_id=user_id,
            action_type="plan_upgrade",
            credits_used=0,
            description=f"Plan credits set to {new_total}",
        ))
        self._save(commit)
        logger.info(f"Set total credits for user {user_id} to {new_total}")
        return credits

    def reset(self, user_id: int, new_total: Optional[int] = None, commit: bool = True) -> UserCredits:
        """Start a new billing period: usage back to zero"""
        credits = self.get_or_create(user_id, commit=commit)
        if new_total is not None:
            credits.total_credits = new_total
        credits.used_credits = 0
        credits.reset_date = next_reset_date()
        self.db.add(CreditLog(
            user_id=user_id,
            action_type="plan_renewal",
            credits_used=0,
            description=f"Credits reset to {credits.total_credits}",
        ))
        self._save(commit)
        logger.info(f"Reset credits for user {user_id}")
        return credits

    def purchase(self, user_id: int, amount: int, payment_id: Optional[str] = None) -> Tuple[int, int]:
        """
        Add purchased credits.

        Returns:
            (new_total, remaining)
        """
        if amount <= 0:
            raise ValueError("Credit amount must be positive")

        credits = self.get_or_create(user_id)
        credits.total_credits += amount
        description = f"Purchased {amount} credits"
        if payment_id:
            description += f" (payment {payment_id})"
        self.db.add(CreditLog(
            user_id=user_id,
            action_type="purchase",
            credits_used=0,
            description=description,
        ))
        self.db.commit()
        logger.info(f"User {user_id} purchased {amount} credits")
        return credits.total_credits, max(0, credits.total_credits - credits.used_credits)

    def adjust(self, user_id: int, amount: int, reason: Optional[str] = None) -> UserCredits:
        """Admin adjustment of the total allowance; negative amounts remove credits"""
        credits = self.get_or_create(user_id)
        credits.total_credits = max(0, credits.total_credits + amount)
        self.db.add(CreditLog(
            user_id=user_id,
            action_type="manual_adjustment",
            credits_used=0,
            description=reason or f"Manual adjustment of {amount} credits",
        ))
        self.db.commit()
        logger.info(f"Adjusted credits for user {user_id} by {amount}")
        return credits

    def status(self, user_id: int) -> Dict[str, Any]:
        credits = self.get_or_create(user_id)
        total = credits.total_credits or 0
        used = credits.used_credits or 0
        return {
            "totalCredits": total,
            "usedCredits": used,
            "remainingCredits": max(0, total - used),
            "resetDate": credits.reset_date.isoformat() if credits.reset_date else None,
            "percentUsed": round(used / total * 100, 1) if total else 0,
        }
