"""
Tests for admin analytics
"""
from datetime import datetime, timedelta

from content_studio.db.models import GeneratedContent, Payment, Subscription
from content_studio.services.analytics_service import (
    AnalyticsService,
    bucket_time_series,
    calculate_trend,
    classify_title,
    combine_for_comparison,
    content_distribution,
    week_number,
)

NOW = datetime(2026, 6, 15, 12, 0)


class TestBucketing:
    """Test time bucketing"""

    def test_week_number(self):
        # 2026-01-01 is a Thursday; weeks start on Sunday
        assert week_number(datetime(2026, 1, 1)) == 1
        assert week_number(datetime(2026, 1, 3)) == 1
        assert week_number(datetime(2026, 1, 4)) == 2

    def test_yearly_buckets(self):
        rows = [
            {"created_at": datetime(2026, 2, 1)},
            {"created_at": datetime(2026, 5, 1)},
            {"created_at": datetime(2024, 7, 1)},
            {"created_at": datetime(2010, 1, 1)},
        ]
        series = bucket_time_series(rows, "yearly", NOW)
        assert [b["name"] for b in series] == ["2022", "2023", "2024", "2025", "2026"]
        assert series[-1]["value"] == 2
        assert series[2]["value"] == 1
        # Out of range rows are dropped
        assert sum(b["value"] for b in series) == 3

    def test_unknown_range_is_yearly(self):
        assert bucket_time_series([], "hourly", NOW) == bucket_time_series([], "yearly", NOW)

    def test_monthly_buckets_cross_year(self):
        series = bucket_time_series([{"created_at": datetime(2025, 7, 3)}], "monthly", NOW)
        assert len(series) == 12
        assert series[0] == {"name": "Jul 2025", "value": 1}
        assert series[-1]["name"] == "Jun 2026"

    def test_daily_buckets(self):
        rows = [{"created_at": NOW - timedelta(days=1)}, {"created_at": NOW - timedelta(days=30)}]
        series = bucket_time_series(rows, "daily", NOW)
        assert len(series) == 30
        assert series[-1]["name"] == "2026-06-15"
        assert series[-2]["value"] == 1
        assert sum(b["value"] for b in series) == 1

    def test_weekly_buckets(self):
        series = bucket_time_series([{"created_at": NOW}], "weekly", NOW)
        assert len(series) == 12
        assert series[-1] == {"name": f"Week {week_number(NOW)}", "value": 1}

    def test_weekly_ignores_same_week_last_year(self):
        year_old = datetime(2025, 6, 16)
        assert week_number(year_old) == week_number(NOW)
        series = bucket_time_series([{"created_at": year_old}], "weekly", NOW)
        assert sum(b["value"] for b in series) == 0

    def test_weekly_window_starts_on_sunday(self):
        # Eleven weeks before NOW is Monday 2026-03-30
        rows = [{"created_at": datetime(2026, 3, 29, 0, 30)}, {"created_at": datetime(2026, 3, 28, 23, 0)}]
        series = bucket_time_series(rows, "weekly", NOW)
        assert series[0]["value"] == 1
        assert sum(b["value"] for b in series) == 1

    def test_summed_values(self):
        rows = [
            {"created_at": datetime(2026, 3, 1), "amount": 19.99},
            {"created_at": datetime(2026, 4, 1), "amount": 29.0},
            {"created_at": datetime(2026, 4, 2), "amount": None},
        ]
        series = bucket_time_series(rows, "yearly", NOW, value_field="amount")
        assert round(series[-1]["value"], 2) == 48.99


class TestDistribution:
    """Test content classification"""

    def test_classify_title(self):
        assert classify_title("SEO Blog: Caching") == "Blog Posts"
        assert classify_title("Twitter Thread: Launch") == "Twitter Threads"
        assert classify_title("Instagram Caption") == "Instagram"
        assert classify_title("Newsletter: June") == "Emails"
        assert classify_title("Facebook Ad Copy") == "Ads"
        assert classify_title("Notes") == "Other"
        assert classify_title(None) == "Other"

    def test_first_match_wins(self):
        assert classify_title("LinkedIn Post") == "Blog Posts"

    def test_distribution_sorted(self):
        rows = [{"title": "Blog one"}, {"title": "Blog two"}, {"title": "Welcome Email"}]
        assert content_distribution(rows) == [
            {"name": "Blog Posts", "value": 2},
            {"name": "Emails", "value": 1},
        ]

    def test_combine_for_comparison(self):
        combined = combine_for_comparison(
            [{"name": "2025", "value": 3}],
            [{"name": "2025", "value": 7}, {"name": "2026", "value": 1}],
            [{"name": "2026", "value": 19.99}],
        )
        assert combined == [
            {"name": "2025", "users": 3, "content": 7, "revenue": 0},
            {"name": "2026", "users": 0, "content": 1, "revenue": 19.99},
        ]


class TestTrend:
    """Test period-over-period trend"""

    def test_up(self):
        trend = calculate_trend([{"value": 10}, {"value": 15}])
        assert trend == {"percentage": 50, "direction": "up"}

    def test_down(self):
        trend = calculate_trend([{"value": 20}, {"value": 5}])
        assert trend == {"percentage": 75, "direction": "down"}

    def test_from_zero(self):
        assert calculate_trend([{"value": 0}, {"value": 4}]) == {"percentage": 100, "direction": "up"}

    def test_flat_and_short(self):
        assert calculate_trend([{"value": 3}, {"value": 3}])["direction"] == "neutral"
        assert calculate_trend([{"value": 3}]) == {"percentage": 0, "direction": "neutral"}


class TestAnalyticsService:
    """Test database aggregates"""

    def _seed(self, db, user, other):
        now = datetime.utcnow()
        db.add_all([
            GeneratedContent(user_id=user.id, title="SEO Blog: A", content="a b c", created_at=now),
            GeneratedContent(user_id=user.id, title="Welcome Email", content="hi", created_at=now),
            Subscription(user_id=user.id, plan="Pro", status="active", payment_provider="stripe", price=19.99),
            Subscription(user_id=other.id, plan="Free", status="inactive", price=0),
            Payment(user_id=other.id, provider="fatora", order_id="order_1_2", amount=29, status="succeeded"),
            Payment(user_id=other.id, provider="fatora", order_id="order_2_2", amount=99, status="pending"),
        ])
        db.commit()

    def test_analytics(self, db_session, test_user, other_user):
        self._seed(db_session, test_user, other_user)
        data = AnalyticsService(db_session).analytics("yearly")

        assert data["userGrowth"][-1]["value"] == 2
        assert data["contentCreation"][-1]["value"] == 2
        # Stripe price plus the succeeded Fatora payment
        assert round(data["revenue"][-1]["value"], 2) == 48.99
        assert {d["name"] for d in data["contentDistribution"]} == {"Blog Posts", "Emails"}
        assert data["comparativeData"][-1]["content"] == 2

    def test_dashboard_metrics(self, db_session, test_user, other_user):
        self._seed(db_session, test_user, other_user)
        data = AnalyticsService(db_session).dashboard_metrics()

        assert data["totalUsers"] == 2
        assert data["totalContent"] == 2
        assert data["activeUsers"] == 1
        assert data["totalRevenue"] == 19.99
        assert len(data["contentChartData"]) == 12
        assert data["contentChartData"][-1]["value"] == 2
        plans = {p["name"]: p["value"] for p in data["planChartData"]}
        assert plans == {"Free": 1, "Pro": 1, "Business": 0}

    def test_metrics(self, db_session, test_user, other_user):
        self._seed(db_session, test_user, other_user)
        data = AnalyticsService(db_session).metrics("monthly")

        assert data["totalUsers"]["value"] == 2
        assert data["totalUsers"]["trendDirection"] == "up"
        assert data["contentCreated"]["value"] == 2
        assert data["activeUsers"]["value"] == 1
        assert data["creditUsage"] == {"total": 2000, "used": 0, "percentage": 0}
        assert set(data["timeSeriesData"]) == {"userGrowth", "contentCreation", "revenue", "activeUsers"}
