from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from deliverybi.core.application import create_application
from deliverybi.core.security import create_access_token, create_refresh_token
from deliverybi.domain.models import Company, PromotionalCampaign, Restaurant, SalesProjection
from deliverybi.services.dependencies import (
    get_ads_service,
    get_campaign_service,
    get_catalog_service,
    get_controlling_service,
    get_customer_service,
    get_daily_alerts_service,
    get_heatmap_service,
    get_objective_service,
    get_sales_projection_service,
)


def _auth(user_id="user-lucia", roles=("consultant",), companies=("1", "2")):
    token = create_access_token(user_id=user_id, roles=list(roles), companies=list(companies))
    return {"Authorization": f"Bearer {token}"}


ADMIN = dict(user_id="user-admin", roles=("admin",), companies=())


@pytest.fixture
def app():
    application = create_application()
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    # sin context manager: el lifespan (comprobación de base de datos) no se ejecuta
    return TestClient(app)


class TestHealthAndRoot:
    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_root(self, client):
        assert client.get("/").json()["docs"] == "/docs"

    def test_unknown_route(self, client):
        assert client.get("/no-existe").status_code == 404


class TestAuth:
    def test_login_and_me(self, client):
        response = client.post("/auth/login", json={"email": "lucia@deliverybi.es", "password": "consultora123"})
        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["companies"] == ["1", "2"]

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.json()["email"] == "lucia@deliverybi.es"

    def test_wrong_password(self, client):
        response = client.post("/auth/login", json={"email": "lucia@deliverybi.es", "password": "nope"})
        assert response.status_code == 401

    def test_refresh(self, client):
        token = create_refresh_token(user_id="user-jordi")
        response = client.post("/auth/refresh", json={"refresh_token": token})
        assert response.status_code == 200
        assert response.json()["user"]["roles"] == ["manager"]

    def test_access_token_is_not_a_refresh_token(self, client):
        token = create_access_token(user_id="user-jordi", roles=["manager"], companies=["1"])
        assert client.post("/auth/refresh", json={"refresh_token": token}).status_code == 401

    def test_missing_token(self, client):
        assert client.get("/auth/me").status_code in (401, 403)


@pytest.fixture
def catalog(app):
    service = MagicMock()
    service.get_companies.return_value = [Company(id="1", external_id=1, name="Grupo Sabor", slug="grupo-sabor")]
    app.dependency_overrides[get_catalog_service] = lambda: service
    return service


class TestCatalogScope:
    def test_consultant_gets_assigned_companies(self, client, catalog):
        response = client.get("/catalog/companies", headers=_auth())
        assert response.status_code == 200
        assert response.json()[0]["slug"] == "grupo-sabor"
        catalog.get_companies.assert_called_once_with(["1", "2"])

    def test_company_outside_scope(self, client, catalog):
        response = client.get("/catalog/companies?companies=9", headers=_auth())
        assert response.status_code == 403
        catalog.get_companies.assert_not_called()

    def test_admin_without_selection_sees_all(self, client, catalog):
        client.get("/catalog/companies", headers=_auth(**ADMIN))
        catalog.get_companies.assert_called_once_with(None)

    def test_user_without_companies(self, client, catalog):
        response = client.get("/catalog/companies", headers=_auth(companies=()))
        assert response.status_code == 403


class TestControllingParams:
    def test_unknown_sort_column(self, client):
        response = client.get("/controlling/sort/next?column=nope", headers=_auth())
        assert response.status_code == 400

    def test_sort_cycle(self, client):
        response = client.get(
            "/controlling/sort/next?column=ventas&current_column=ventas&current_direction=desc",
            headers=_auth(),
        )
        assert response.json() == {"column": "ventas", "direction": "asc"}


class TestHeatmapEndpoint:
    @pytest.fixture
    def heatmap(self, app):
        service = MagicMock()
        service.get_heatmap.return_value = {"metric": "orders", "max": 3, "matrix": []}
        app.dependency_overrides[get_heatmap_service] = lambda: service
        return service

    def test_etag_and_not_modified(self, client, heatmap):
        url = "/heatmap?metric=orders&start=2026-02-02&end=2026-02-08"
        first = client.get(url, headers=_auth())
        assert first.status_code == 200
        etag = first.headers["ETag"]
        assert first.headers["Vary"] == "Authorization"

        second = client.get(url, headers={**_auth(), "If-None-Match": etag})
        assert second.status_code == 304

        filters = heatmap.get_heatmap.call_args.args[0]
        assert filters.company_ids == ["1", "2"]

    @pytest.mark.parametrize(
        "query",
        [
            "start=2026-02-08&end=2026-02-02",
            "start=2026-02-02",
            "start=ayer&end=2026-02-02",
            "channels=deliveroo",
            "preset=yesterday",
            "preset=last_7_dayz",
        ],
    )
    def test_bad_filters(self, client, heatmap, query):
        assert client.get(f"/heatmap?{query}", headers=_auth()).status_code == 400
        heatmap.get_heatmap.assert_not_called()

    def test_known_preset(self, client, heatmap):
        assert client.get("/heatmap?preset=last_30_days", headers=_auth()).status_code == 200
        filters = heatmap.get_heatmap.call_args.args[0]
        assert (filters.end_date - filters.start_date).days == 29


class TestSharedObjective:
    def test_public_endpoint_needs_no_auth(self, client, app):
        service = MagicMock()
        service.resolve_shared.return_value = {"objective": {"id": "o1"}, "progress": {}, "view_count": 1}
        app.dependency_overrides[get_objective_service] = lambda: service

        response = client.get("/share/objective/abc?email=ana@cliente.com")

        assert response.status_code == 200
        service.resolve_shared.assert_called_once_with("abc", email="ana@cliente.com")


class TestDailyCron:
    @pytest.fixture
    def daily(self, app):
        service = MagicMock()
        service.run = AsyncMock(return_value=(200, {"message": "No anomalies", "count": 0}))
        app.dependency_overrides[get_daily_alerts_service] = lambda: service
        return service

    def test_requires_secret(self, client, daily):
        assert client.post("/alerts/daily").status_code == 401
        assert client.post("/alerts/daily", headers={"Authorization": "Bearer otro"}).status_code == 401
        daily.run.assert_not_awaited()

    def test_runs_with_secret(self, client, daily):
        response = client.post("/alerts/daily", headers={"Authorization": "Bearer cron-test-secret"})
        assert response.status_code == 200
        assert response.json()["count"] == 0

    def test_failure_status_is_forwarded(self, client, daily):
        daily.run.return_value = (500, {"errors": ["Orders: timeout"]})
        response = client.post("/alerts/daily", headers={"Authorization": "Bearer cron-test-secret"})
        assert response.status_code == 500
        assert response.json() == {"errors": ["Orders: timeout"]}


class TestAlertTesting:
    @pytest.fixture
    def daily(self, app):
        service = MagicMock()
        service.dry_run.return_value = {"summary": {"total": 0}, "grouped": {}}
        service.send_test = AsyncMock(return_value=(500, {"error": "SLACK_WEBHOOK_URL not configured"}))
        app.dependency_overrides[get_daily_alerts_service] = lambda: service
        return service

    def test_dry_run_requires_secret(self, client, daily):
        assert client.get("/alerts/test").status_code == 401
        daily.dry_run.assert_not_called()

    def test_dry_run(self, client, daily):
        headers = {"Authorization": "Bearer cron-test-secret"}
        assert client.get("/alerts/test", headers=headers).json()["summary"] == {"total": 0}
        assert client.post("/alerts/test", headers=headers).status_code == 200

    def test_send_test_requires_login(self, client, daily):
        assert client.post("/alerts/send-test", json={}).status_code in (401, 403)

    def test_send_test_forwards_status(self, client, daily):
        response = client.post(
            "/alerts/send-test", json={"consultant_name": "Lucía Pérez"}, headers=_auth()
        )
        assert response.status_code == 500
        daily.send_test.assert_awaited_once_with("Lucía Pérez", "slack")

    def test_send_test_rejects_unknown_channel(self, client, daily):
        response = client.post("/alerts/send-test", json={"channel": "sms"}, headers=_auth())
        assert response.status_code == 422


def _campaign(restaurant_id="100"):
    return PromotionalCampaign(
        id="c1",
        restaurant_id=restaurant_id,
        platform="glovo",
        campaign_type="descuento",
        start_date="2026-02-01",
        end_date="2026-02-10",
    )


class TestCampaignScope:
    @pytest.fixture
    def campaigns(self, app, catalog):
        catalog.get_restaurants.return_value = [
            Restaurant(id="100", external_id=100, company_id="1", brand_id="10", name="Gran Via", all_ids=["100", "101"]),
        ]
        service = MagicMock()
        service.list_campaigns.return_value = [_campaign()]
        service.get.return_value = _campaign()
        service.cancel.return_value = _campaign()
        service.list_for_restaurant.return_value = []
        app.dependency_overrides[get_campaign_service] = lambda: service
        return service

    def test_list_is_limited_to_own_restaurants(self, client, campaigns, catalog):
        response = client.get("/campaigns", headers=_auth())
        assert response.status_code == 200
        assert campaigns.list_campaigns.call_args.kwargs["restaurant_ids"] == ["100", "101"]
        catalog.get_restaurants.assert_called_once_with(["1", "2"])

    def test_list_other_company_restaurant(self, client, campaigns):
        response = client.get("/campaigns?restaurants=900", headers=_auth())
        assert response.status_code == 403
        campaigns.list_campaigns.assert_not_called()

    def test_get_campaign_of_other_company(self, client, campaigns):
        campaigns.get.return_value = _campaign("900")
        assert client.get("/campaigns/c1", headers=_auth()).status_code == 403
        assert client.post("/campaigns/c1/cancel", headers=_auth()).status_code == 403
        assert client.patch("/campaigns/c1", json={"name": "x"}, headers=_auth()).status_code == 403
        campaigns.cancel.assert_not_called()
        campaigns.update.assert_not_called()

    def test_delete_of_other_company(self, client, campaigns):
        campaigns.get.return_value = _campaign("900")
        manager = dict(user_id="user-jordi", roles=("manager",), companies=("1",))
        assert client.delete("/campaigns/c1", headers=_auth(**manager)).status_code == 403
        campaigns.delete.assert_not_called()

    def test_create_for_other_company(self, client, campaigns):
        payload = {
            "restaurant_id": "900",
            "platform": "glovo",
            "campaign_type": "descuento",
            "start_date": "2026-02-01",
            "end_date": "2026-02-10",
        }
        assert client.post("/campaigns", json=payload, headers=_auth()).status_code == 403
        campaigns.create.assert_not_called()

    def test_own_restaurant_alias_is_allowed(self, client, campaigns):
        response = client.get("/campaigns/restaurant/101", headers=_auth())
        assert response.status_code == 200
        campaigns.list_for_restaurant.assert_called_once_with("101")

    def test_admin_is_not_restricted(self, client, campaigns, catalog):
        campaigns.get.return_value = _campaign("900")
        assert client.get("/campaigns/c1", headers=_auth(**ADMIN)).status_code == 200
        assert client.get("/campaigns", headers=_auth(**ADMIN)).status_code == 200
        assert campaigns.list_campaigns.call_args.kwargs["restaurant_ids"] is None
        catalog.get_restaurants.assert_not_called()


class TestCustomers:
    @pytest.fixture
    def customers(self, app):
        service = MagicMock()
        service.get_metrics.return_value = {"current": {}, "previous": {}, "changes": {}}
        service.get_cohorts.return_value = []
        service.get_churn_risk.return_value = []
        app.dependency_overrides[get_customer_service] = lambda: service
        return service

    def test_metrics_use_scoped_filters(self, client, customers):
        response = client.get("/customers/metrics?start=2026-02-01&end=2026-02-07&channels=glovo", headers=_auth())
        assert response.status_code == 200
        filters = customers.get_metrics.call_args.args[0]
        assert filters.company_ids == ["1", "2"]
        assert filters.channel_ids == ["glovo"]

    def test_other_company_is_forbidden(self, client, customers):
        assert client.get("/customers/metrics?companies=9", headers=_auth()).status_code == 403
        customers.get_metrics.assert_not_called()

    def test_cohort_granularity(self, client, customers):
        assert client.get("/customers/cohorts?granularity=week", headers=_auth()).status_code == 200
        assert customers.get_cohorts.call_args.args[1] == "week"
        assert client.get("/customers/cohorts?granularity=day", headers=_auth()).status_code == 422

    def test_churn_limit(self, client, customers):
        client.get("/customers/churn-risk?limit=5", headers=_auth())
        assert customers.get_churn_risk.call_args.kwargs["limit"] == 5
        assert client.get("/customers/churn-risk?limit=0", headers=_auth()).status_code == 422

    def test_requires_login(self, client, customers):
        assert client.get("/customers/base-trend").status_code in (401, 403)


class TestAds:
    def test_overview(self, app, client):
        service = MagicMock()
        service.get_overview.return_value = {"scorecards": [], "daily": []}
        app.dependency_overrides[get_ads_service] = lambda: service

        response = client.get("/ads/overview?preset=last_30_days", headers=_auth())

        assert response.status_code == 200
        assert response.headers["etag"]
        assert service.get_overview.call_args.args[0].company_ids == ["1", "2"]


class TestControllingDetail:
    @pytest.fixture
    def controlling(self, app):
        service = MagicMock()
        service.get_detail_segments.return_value = [{"week_label": "26/01", "new_customers": 1}]
        app.dependency_overrides[get_controlling_service] = lambda: service
        return service

    @pytest.fixture
    def ads(self, app):
        service = MagicMock()
        service.get_row_heatmap.return_value = {"matrix": []}
        app.dependency_overrides[get_ads_service] = lambda: service
        return service

    def test_segments(self, client, controlling):
        response = client.get("/controlling/detail/brand::1::10/segments", headers=_auth())
        assert response.status_code == 200
        assert response.json()["row_id"] == "brand::1::10"
        assert controlling.get_detail_segments.call_args.args[0].brand_id == "10"

    def test_invalid_row_id(self, client, controlling):
        assert client.get("/controlling/detail/store::1/segments", headers=_auth()).status_code == 400

    def test_row_of_other_company(self, client, controlling, ads):
        assert client.get("/controlling/detail/company-9/segments", headers=_auth()).status_code == 403
        assert client.get("/controlling/detail/address::9::900/ads-heatmap", headers=_auth()).status_code == 403
        controlling.get_detail_segments.assert_not_called()
        ads.get_row_heatmap.assert_not_called()

    def test_ads_heatmap(self, client, ads):
        response = client.get("/controlling/detail/channel::1::100::E22BC362/ads-heatmap", headers=_auth())
        assert response.status_code == 200
        assert response.json()["row_id"] == "channel::1::100::E22BC362"


class TestSalesProjections:
    @pytest.fixture
    def projections(self, app):
        service = MagicMock()
        service.get_by_scope.return_value = None
        app.dependency_overrides[get_sales_projection_service] = lambda: service
        return service

    def test_missing_projection_is_null(self, client, projections):
        response = client.get("/sales-projections?company_id=1&brand_id=10", headers=_auth())
        assert response.status_code == 200
        assert response.json() is None
        projections.get_by_scope.assert_called_once_with("1", "10", None)

    def test_scope(self, client, projections):
        assert client.get("/sales-projections?company_id=9", headers=_auth()).status_code == 403
        payload = {"company_id": "9", "target_revenue": {"glovo": 100}}
        assert client.put("/sales-projections", json=payload, headers=_auth()).status_code == 403
        projections.upsert.assert_not_called()

    def test_upsert_sends_only_given_fields(self, client, projections):
        projections.upsert.return_value = SalesProjection(id="sp1", company_id="1")
        payload = {"company_id": "1", "config": {"maxAdsPercent": 10}}

        response = client.put("/sales-projections", json=payload, headers=_auth())

        assert response.status_code == 200
        data, user_id = projections.upsert.call_args.args
        assert user_id == "user-lucia"
        assert set(data) == {"company_id", "config"}
        assert data["config"]["maxAdsPercent"] == 10

    def test_invalid_config(self, client, projections):
        payload = {"company_id": "1", "config": {"maxAdsPercent": 120}}
        assert client.put("/sales-projections", json=payload, headers=_auth()).status_code == 422

    def test_targets_of_other_company(self, client, projections):
        projections.get.return_value = SalesProjection(id="sp1", company_id="9")
        response = client.patch("/sales-projections/sp1/targets", json={"target_ads": {}}, headers=_auth())
        assert response.status_code == 403
        projections.update_targets.assert_not_called()
        assert client.delete("/sales-projections/sp1", headers=_auth()).status_code == 403
