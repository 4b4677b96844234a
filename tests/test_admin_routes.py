"""
Tests for admin panel routes
"""
import pytest

from content_studio.db.models import AdminSettings, GeneratedContent, Subscription, User
from content_studio.services.settings_service import DEFAULT_SETTINGS


@pytest.fixture
def documents(db_session, test_user, other_user):
    rows = [
        GeneratedContent(user_id=test_user.id, title="SEO Blog: Caching", content="cache " * 60),
        GeneratedContent(user_id=other_user.id, title="Welcome Email", content="hello there"),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


class TestAdminAccess:
    """Test admin guard"""

    def test_non_admin_forbidden(self, client, auth_headers):
        response = client.get("/api/admin/users", headers=auth_headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"

    def test_anonymous_unauthorized(self, client):
        assert client.get("/api/admin/dashboard-metrics").status_code == 401


class TestAnalyticsRoutes:
    """Test analytics endpoints"""

    def test_dashboard_metrics(self, client, admin_headers, documents):
        data = client.get("/api/admin/dashboard-metrics", headers=admin_headers).json()
        assert data["totalUsers"] == 3
        assert data["totalContent"] == 2

    def test_analytics(self, client, admin_headers, documents):
        data = client.get("/api/admin/analytics", headers=admin_headers, params={"timeRange": "monthly"}).json()
        assert len(data["userGrowth"]) == 12
        assert sum(d["value"] for d in data["contentDistribution"]) == 2

    def test_metrics(self, client, admin_headers):
        data = client.get("/api/admin/metrics", headers=admin_headers, params={"timeRange": "daily"}).json()
        assert len(data["timeSeriesData"]["userGrowth"]) == 30
        assert data["totalUsers"]["value"] == 1


class TestUserRoutes:
    """Test user management"""

    def test_list_users(self, client, admin_headers, test_user, db_session):
        db_session.add(Subscription(user_id=test_user.id, plan="Pro", status="active"))
        db_session.commit()

        data = client.get("/api/admin/users", headers=admin_headers).json()

        assert data["total"] == 2
        users = {u["email"]: u for u in data["users"]}
        assert users[test_user.email]["plan"] == "Pro"
        assert users["admin@example.com"]["plan"] == "Free"
        assert users[test_user.email]["credits"] == {"total": 1000, "used": 0}

    def test_search_users(self, client, admin_headers, test_user, other_user):
        data = client.get("/api/admin/users", headers=admin_headers, params={"search": "other"}).json()
        assert [u["email"] for u in data["users"]] == ["other@example.com"]

    def test_search_percent_is_literal(self, client, admin_headers, test_user, other_user):
        data = client.get("/api/admin/users", headers=admin_headers, params={"search": "%"}).json()
        assert data["users"] == []

    def test_toggle_admin(self, client, db_session, admin_headers, test_user):
        response = client.post("/api/admin/toggle-admin", headers=admin_headers, json={
            "userId": test_user.id, "isAdmin": False,
        })
        assert response.json()["user"]["is_admin"] is True
        db_session.refresh(test_user)
        assert test_user.is_admin is True

    def test_cannot_demote_self(self, client, admin_headers, admin_user):
        response = client.post("/api/admin/toggle-admin", headers=admin_headers, json={
            "userId": admin_user.id, "isAdmin": True,
        })
        assert response.status_code == 400

    def test_toggle_unknown_user(self, client, admin_headers):
        response = client.post("/api/admin/toggle-admin", headers=admin_headers, json={"userId": 99999, "isAdmin": False})
        assert response.status_code == 404

    def test_recent_users(self, client, admin_headers, test_user):
        users = client.get("/api/admin/recent-users", headers=admin_headers).json()["users"]
        assert {u["email"] for u in users} == {"admin@example.com", test_user.email}


class TestContentRoutes:
    """Test content moderation"""

    def test_list_with_preview(self, client, admin_headers, documents):
        data = client.get("/api/admin/content", headers=admin_headers).json()
        assert data["total"] == 2
        blog = next(c for c in data["content"] if c["title"] == "SEO Blog: Caching")
        assert len(blog["preview"]) == 200
        assert blog["userEmail"] == "test@example.com"

    def test_search_by_email(self, client, admin_headers, documents):
        data = client.get("/api/admin/content", headers=admin_headers, params={"search": "other@"}).json()
        assert [c["title"] for c in data["content"]] == ["Welcome Email"]

    def test_recent_content(self, client, admin_headers, documents):
        assert len(client.get("/api/admin/recent-content", headers=admin_headers).json()["content"]) == 2

    def test_get_and_delete(self, client, db_session, admin_headers, documents):
        content_id = documents[1].id
        response = client.get(f"/api/admin/content/{content_id}", headers=admin_headers)
        assert response.json()["content"]["content"] == "hello there"

        assert client.delete(f"/api/admin/content/{content_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/admin/content/{content_id}", headers=admin_headers).status_code == 404

    def test_delete_by_post(self, client, db_session, admin_headers, documents):
        content_id = documents[0].id
        response = client.post("/api/admin/content/delete", headers=admin_headers, json={"id": content_id})
        assert response.status_code == 200
        assert db_session.query(GeneratedContent).filter(GeneratedContent.id == content_id).first() is None

    def test_delete_missing(self, client, admin_headers):
        assert client.delete("/api/admin/content/99999", headers=admin_headers).status_code == 404


class TestBillingRoutes:
    """Test billing overview and credit adjustments"""

    @pytest.fixture
    def subscriptions(self, db_session, test_user, other_user):
        db_session.add_all([
            Subscription(user_id=test_user.id, plan="Pro", status="active", payment_provider="stripe",
                         stripe_customer_id="cus_abc", price=19.99),
            Subscription(user_id=other_user.id, plan="Business", status="past_due", payment_provider="paddle",
                         paddle_customer_id="ctm_xyz", price=49.99),
        ])
        db_session.commit()

    def test_overview(self, client, admin_headers, subscriptions):
        data = client.get("/api/admin/billing", headers=admin_headers, params={"sortBy": "price", "sortOrder": "asc"}).json()
        assert data["total"] == 2
        assert [s["plan"] for s in data["subscriptions"]] == ["Pro", "Business"]
        assert data["subscriptions"][0]["credits"] == {"total": 1000, "used": 0, "remaining": 1000}
        assert {s["plan"]: s["count"] for s in data["planStats"]} == {"Pro": 1, "Business": 1}
        assert data["creditStats"] == {"total_credits": 3000, "used_credits": 0}

    def test_filters(self, client, admin_headers, subscriptions):
        data = client.get("/api/admin/billing", headers=admin_headers, params={
            "status": "past_due", "plan": "all", "provider": "paddle",
        }).json()
        assert [s["userEmail"] for s in data["subscriptions"]] == ["other@example.com"]

    def test_search_customer_id(self, client, admin_headers, subscriptions):
        data = client.get("/api/admin/billing", headers=admin_headers, params={"search": "cus_abc"}).json()
        assert data["total"] == 1

    def test_invalid_sort(self, client, admin_headers):
        response = client.get("/api/admin/billing", headers=admin_headers, params={"sortBy": "password"})
        assert response.status_code == 400

    def test_adjust_credits(self, client, admin_headers, test_user):
        response = client.post(f"/api/admin/billing/{test_user.id}/credits", headers=admin_headers, json={
            "amount": 500, "reason": "Support goodwill",
        })
        assert response.json() == {
            "success": True, "totalCredits": 1500, "usedCredits": 0, "remainingCredits": 1500,
        }

    def test_adjust_zero(self, client, admin_headers, test_user):
        response = client.post(f"/api/admin/billing/{test_user.id}/credits", headers=admin_headers, json={"amount": 0})
        assert response.status_code == 400

    def test_adjust_unknown_user(self, client, admin_headers):
        response = client.post("/api/admin/billing/99999/credits", headers=admin_headers, json={"amount": 5})
        assert response.status_code == 404


class TestSettingsRoutes:
    """Test admin settings"""

    def test_defaults(self, client, admin_headers):
        assert client.get("/api/admin/settings", headers=admin_headers).json() == DEFAULT_SETTINGS

    def test_save_creates_new_version(self, client, db_session, admin_headers):
        first = {"security": {"minPasswordLength": 12}, "api": {"rateLimit": 50}}
        second = {"security": {"minPasswordLength": 14}, "api": {"rateLimit": 10}}
        client.post("/api/admin/settings", headers=admin_headers, json=first)
        client.post("/api/admin/settings", headers=admin_headers, json=second)

        assert client.get("/api/admin/settings", headers=admin_headers).json() == second
        assert db_session.query(AdminSettings).count() == 2

    def test_invalid_json(self, client, admin_headers):
        headers = dict(admin_headers, **{"content-type": "application/json"})
        response = client.post("/api/admin/settings", headers=headers, content=b"{not json")
        assert response.status_code == 400

    def test_non_object(self, client, admin_headers):
        response = client.post("/api/admin/settings", headers=admin_headers, json=[1, 2])
        assert response.status_code == 400
