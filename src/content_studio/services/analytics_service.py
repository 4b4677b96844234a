"""
Analytics Service - Admin time series and platform metrics
"""
from sqlalchemy import func
from sqlalchemy.orm import Session
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List, Iterable
import math
import logging

from ..db.models import User, GeneratedContent, GeneratedImage, UserCredits, Subscription, Payment, SubscriptionStatus
from .credits_service import price_for_plan

logger = logging.getLogger(__name__)

TIME_RANGES = ("daily", "weekly", "monthly", "yearly")
MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# Checked in order; the first match wins
CONTENT_CATEGORIES = (
    ("Blog Posts", ("blog", "post")),
    ("Twitter Threads", ("twitter", "thread")),
    ("Instagram", ("instagram",)),
    ("LinkedIn", ("linkedin",)),
    ("Emails", ("email", "newsletter")),
    ("Ads", ("ad", "advertisement")),
)


def week_number(value: datetime) -> int:
    """Week of year, weeks starting on Sunday with Jan 1 in week 1"""
    jan1 = datetime(value.year, 1, 1)
    day_of_year = (value.date() - jan1.date()).days
    jan1_weekday = (jan1.weekday() + 1) % 7
    return math.ceil((day_of_year + jan1_weekday + 1) / 7)


def _shift_month(value: datetime, months: int):
    index = value.year * 12 + value.month - 1 + months
    return index // 12, index % 12 + 1


def period_key(value: datetime, time_range: str) -> str:
    if time_range == "daily":
        return value.strftime("%Y-%m-%d")
    if time_range == "weekly":
        return f"Week {week_number(value)}"
    if time_range == "monthly":
        return f"{MONTH_NAMES[value.month - 1]} {value.year}"
    return str(value.year)


def empty_buckets(time_range: str, now: datetime) -> Dict[str, float]:
    """Zero-filled buckets for a range, oldest first"""
    buckets: Dict[str, float] = {}
    if time_range == "daily":
        for i in range(29, -1, -1):
            buckets[period_key(now - timedelta(days=i), time_range)] = 0
    elif time_range == "weekly":
        for i in range(11, -1, -1):
            buckets[period_key(now - timedelta(days=i * 7), time_range)] = 0
    elif time_range == "monthly":
        for i in range(11, -1, -1):
            year, month = _shift_month(now, -i)
            buckets[f"{MONTH_NAMES[month - 1]} {year}"] = 0
    else:
        for i in range(4, -1, -1):
            buckets[str(now.year - i)] = 0
    return buckets


def window_start(time_range: str, now: datetime) -> datetime:
    """Start of the oldest bucket for a range"""
    if time_range == "daily":
        start = now - timedelta(days=29)
    elif time_range == "weekly":
        start = now - timedelta(weeks=11)
        # Weeks start on Sunday
        start -= timedelta(days=(start.weekday() + 1) % 7)
    elif time_range == "monthly":
        year, month = _shift_month(now, -11)
        return datetime(year, month, 1)
    else:
        return datetime(now.year - 4, 1, 1)
    return datetime(start.year, start.month, start.day)


def bucket_time_series(
    rows: Iterable[Dict[str, Any]],
    time_range: str,
    now: Optional[datetime] = None,
    value_field: Optional[str] = None,
    date_field: str = "created_at",
) -> List[Dict[str, Any]]:
    """
    Group rows into time buckets.

    Unknown ranges are treated as yearly. Rows older than the window or
    whose period is not one of the buckets are dropped. Without
    value_field rows are counted, otherwise value_field is summed.

    Returns:
        [{"name": period, "value": n}, ...] oldest first
    """
    now = now or datetime.utcnow()
    if time_range not in TIME_RANGES:
        time_range = "yearly"
    buckets = empty_buckets(time_range, now)
    start = window_start(time_range, now)

    for row in rows:
        created = row.get(date_field)
        if created is None or created < start:
            continue
        key = period_key(created, time_range)
        if key not in buckets:
            continue
        if value_field:
            buckets[key] += row.get(value_field) or 0
        else:
            buckets[key] += 1

    return [{"name": name, "value": value} for name, value in buckets.items()]


def classify_title(title: Optional[str]) -> str:
    lowered = (title or "").lower()
    if lowered:
        for category, keywords in CONTENT_CATEGORIES:
            if any(keyword in lowered for keyword in keywords):
                return category
    return "Other"


def content_distribution(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Count documents per content category, largest first"""
    counts: Dict[str, int] = {}
    for row in rows:
        category = classify_title(row.get("title"))
        counts[category] = counts.get(category, 0) + 1
    result = [{"name": name, "value": value} for name, value in counts.items()]
    result.sort(key=lambda item: item["value"], reverse=True)
    return result


def combine_for_comparison(
    users: List[Dict[str, Any]],
    content: List[Dict[str, Any]],
    revenue: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    user_map = {item["name"]: item["value"] for item in users}
    content_map = {item["name"]: item["value"] for item in content}
    revenue_map = {item["name"]: item["value"] for item in revenue}
    periods = set(user_map) | set(content_map) | set(revenue_map)
    return [
        {
            "name": period,
            "users": user_map.get(period, 0),
            "content": content_map.get(period, 0),
            "revenue": revenue_map.get(period, 0),
        }
        for period in sorted(periods)
    ]


def calculate_trend(series: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Change between the last two buckets"""
    if len(series) < 2:
        return {"percentage": 0, "direction": "neutral"}
    previous, current = series[-2]["value"], series[-1]["value"]
    if previous == current:
        return {"percentage": 0, "direction": "neutral"}
    direction = "up" if current > previous else "down"
    if previous == 0:
        return {"percentage": 100, "direction": direction}
    return {"percentage": round(abs(current - previous) / previous * 100), "direction": direction}


class AnalyticsService:
    """Aggregates for the admin dashboard"""

    def __init__(self, db: Session):
        self.db = db

    def _user_rows(self) -> List[Dict[str, Any]]:
        return [{"created_at": created} for (created,) in self.db.query(User.created_at).all()]

    def _content_rows(self) -> List[Dict[str, Any]]:
        return [
            {"created_at": created, "title": title}
            for created, title in self.db.query(GeneratedContent.created_at, GeneratedContent.title).all()
        ]

    def _revenue_rows(self) -> List[Dict[str, Any]]:
        rows = [
            {"created_at": created, "amount": float(price)}
            for created, price in self.db.query(Subscription.created_at, Subscription.price)
            .filter(Subscription.price.isnot(None), Subscription.payment_provider.in_(("stripe", "paddle")))
            .all()
        ]
        rows.extend(
            {"created_at": created, "amount": float(amount)}
            for created, amount in self.db.query(Payment.created_at, Payment.amount)
            .filter(Payment.provider == "fatora", Payment.status == "succeeded")
            .all()
        )
        return rows

    def analytics(self, time_range: str = "yearly", now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.utcnow()
        content_rows = self._content_rows()
        user_growth = bucket_time_series(self._user_rows(), time_range, now)
        content_creation = bucket_time_series(content_rows, time_range, now)
        revenue = bucket_time_series(self._revenue_rows(), time_range, now, value_field="amount")
        return {
            "userGrowth": user_growth,
            "contentCreation": content_creation,
            "revenue": revenue,
            "contentDistribution": content_distribution(content_rows),
            "comparativeData": combine_for_comparison(user_growth, content_creation, revenue),
        }

    def _active_subscriptions(self):
        return self.db.query(Subscription).filter(Subscription.status == SubscriptionStatus.ACTIVE.value)

    def _plan_counts(self) -> Dict[str, int]:
        plans = {"Free": 0, "Pro": 0, "Business": 0}
        for (plan,) in self.db.query(Subscription.plan).all():
            plan = plan or "Free"
            plans[plan] = plans.get(plan, 0) + 1
        return plans

    def _estimated_revenue(self) -> float:
        total = 0.0
        for (plan,) in self._active_subscriptions().with_entities(Subscription.plan).all():
            if plan in ("Pro", "Business"):
                total += price_for_plan(plan)
        return round(total, 2)

    def dashboard_metrics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Totals and charts for the admin landing page"""
        now = now or datetime.utcnow()
        months = [_shift_month(now, -i) for i in range(11, -1, -1)]
        content_by_month = {month: 0 for month in months}
        start = datetime(*months[0], 1)
        for (created,) in self.db.query(GeneratedContent.created_at).filter(GeneratedContent.created_at >= start).all():
            key = (created.year, created.month)
            if key in content_by_month:
                content_by_month[key] += 1

        return {
            "totalUsers": self.db.query(func.count(User.id)).scalar() or 0,
            "totalContent": self.db.query(func.count(GeneratedContent.id)).scalar() or 0,
            "totalRevenue": self._estimated_revenue(),
            "activeUsers": self._active_subscriptions().count(),
            "contentChartData": [
                {"name": MONTH_NAMES[month - 1], "value": content_by_month[(year, month)]}
                for year, month in months
            ],
            "planChartData": [{"name": name, "value": value} for name, value in self._plan_counts().items()],
        }

    def metrics(self, time_range: str = "yearly", now: Optional[datetime] = None) -> Dict[str, Any]:
        """Headline numbers with period-over-period trends"""
        now = now or datetime.utcnow()
        user_growth = bucket_time_series(self._user_rows(), time_range, now)
        content_creation = bucket_time_series(self._content_rows(), time_range, now)
        revenue_series = bucket_time_series(self._revenue_rows(), time_range, now, value_field="amount")
        active_rows = [
            {"created_at": created}
            for (created,) in self._active_subscriptions().with_entities(Subscription.created_at).all()
        ]
        active_series = bucket_time_series(active_rows, time_range, now)

        total_credits, used_credits = self.db.query(
            func.coalesce(func.sum(UserCredits.total_credits), 0),
            func.coalesce(func.sum(UserCredits.used_credits), 0),
        ).one()
        content_total = (
            (self.db.query(func.count(GeneratedContent.id)).scalar() or 0)
            + (self.db.query(func.count(GeneratedImage.id)).scalar() or 0)
        )

        def headline(value, series):
            trend = calculate_trend(series)
            return {"value": value, "trend": trend["percentage"], "trendDirection": trend["direction"]}

        return {
            "totalUsers": headline(self.db.query(func.count(User.id)).scalar() or 0, user_growth),
            "activeUsers": headline(len(active_rows), active_series),
            "contentCreated": headline(content_total, content_creation),
            "revenue": headline(self._estimated_revenue(), revenue_series),
            "planDistribution": [{"name": name, "value": value} for name, value in self._plan_counts().items()],
            "timeSeriesData": {
                "userGrowth": user_growth,
                "contentCreation": content_creation,
                "revenue": revenue_series,
                "activeUsers": active_series,
            },
            "creditUsage": {
                "total": int(total_credits),
                "used": int(used_credits),
                "percentage": round(used_credits / total_credits * 100) if total_credits else 0,
            },
        }
