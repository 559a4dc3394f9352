from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from deliverybi.core.ai import AIIntegrationError
from deliverybi.domain.models import (
    AlertPreference,
    Company,
    ConsultantProfile,
    OrderAnomaly,
    ReviewAnomaly,
)
from deliverybi.infra.slack_client import SlackError
from deliverybi.services.alert_preferences_service import (
    AlertPreferencesService,
    is_tracking,
    with_defaults,
)
from deliverybi.services.alert_preview import (
    SEVERITY_ATTENTION,
    SEVERITY_CRITICAL,
    SEVERITY_URGENT,
    Thresholds,
    compute_urgency_score,
    get_date_label,
    get_first_name,
    get_next_send_label,
    get_relative_time,
    get_severity,
    hash_string,
)
from deliverybi.services.daily_alerts import (
    UNASSIGNED_KEY,
    DailyAlertsService,
    build_fallback_message,
    build_test_message,
    group_anomalies_by_consultant,
    groups_to_dict,
    groups_to_json,
)


def _order(company_id="1", deviation=-30.0, **kwargs):
    return OrderAnomaly(
        company_id=company_id,
        company_name="Grupo Sabor",
        store_name="Burger Lab",
        address_name="Gran Via 1",
        channel="glovo",
        yesterday_orders=14,
        avg_orders_baseline=20.0,
        orders_deviation_pct=deviation,
        **kwargs,
    )


def _review(company_id="2"):
    return ReviewAnomaly(
        company_id=company_id,
        company_name="Pizza Nostra",
        store_name="Nostra",
        address_name="Diagonal 50",
        channel="ubereats",
        anomaly_type="rating_drop",
        yesterday_avg_rating=3.1,
        baseline_avg_rating=4.4,
        yesterday_negative_count=3,
    )


def _pref(company_id="1", **kwargs):
    return AlertPreference(id=f"p-{company_id}", consultant_id="u1", company_id=company_id, **kwargs)


class TestPreviewHelpers:
    def test_hash_string(self):
        assert hash_string("") == 5381
        assert hash_string("a") == 177670

    @pytest.mark.parametrize(
        "score,expected",
        [(0, SEVERITY_ATTENTION), (29, SEVERITY_ATTENTION), (30, SEVERITY_URGENT), (60, SEVERITY_CRITICAL)],
    )
    def test_severity_bands(self, score, expected):
        assert get_severity(score) == expected

    def test_next_send_skips_weekend(self):
        friday = datetime(2026, 2, 6, 9, 0)
        assert get_next_send_label("weekdays", friday) == "lun 9 feb · 08:30 CET"
        assert get_next_send_label("daily", friday) == "sab 7 feb · 08:30 CET"
        assert get_next_send_label("weekly", friday) == "lun 9 feb · 08:30 CET"

    def test_date_label_is_yesterday(self):
        assert get_date_label(datetime(2026, 2, 4)) == "martes 3 feb"

    def test_first_name(self):
        assert get_first_name(None) == "Consultor"
        assert get_first_name("Laura Pérez") == "Laura"

    def test_relative_time(self):
        now = datetime(2026, 2, 4, 12, 0, tzinfo=timezone.utc)
        assert get_relative_time(None, now) is None
        assert get_relative_time("2026-02-04T11:59:55Z", now) == "ahora"
        assert get_relative_time("2026-02-04T11:59:30Z", now) == "hace 30s"
        assert get_relative_time("2026-02-04T11:45:00Z", now) == "hace 15 min"
        assert get_relative_time("2026-02-04T09:00:00Z", now) == "hace 3h"


class TestUrgencyScore:
    def test_always_deviating_categories(self):
        pref = _pref(orders_enabled=False)
        result = compute_urgency_score(Thresholds(), pref, "Grupo Sabor")
        assert [d.label for d in result.deviations] == ["Resenas", "Ads ROAS", "Promos"]
        assert 11 <= result.score <= 49

    def test_is_deterministic(self):
        pref = _pref()
        first = compute_urgency_score(Thresholds(), pref, "Grupo Sabor")
        assert compute_urgency_score(Thresholds(), pref, "Grupo Sabor") == first

    def test_disabled_preference_scores_zero(self):
        pref = _pref(orders_enabled=False, reviews_enabled=False, ads_enabled=False, promos_enabled=False)
        result = compute_urgency_score(Thresholds(), pref, "Grupo Sabor")
        assert result.score == 0
        assert result.deviations == []
        assert is_tracking(pref) is False


class TestAlertPreferences:
    def test_with_defaults_fills_flags_only(self):
        values = with_defaults({"consultant_id": 7, "company_id": 3, "ads_enabled": False})
        assert values["consultant_id"] == "7"
        assert values["ads_enabled"] is False
        assert values["orders_enabled"] is True
        assert values["email_enabled"] is False
        assert values["orders_threshold"] is None

    def test_bulk_upsert_empty(self):
        repo = MagicMock()
        assert AlertPreferencesService(repo).bulk_upsert([]) == []
        repo.bulk_upsert.assert_not_called()

    def test_build_preview_sorted_by_score(self):
        repo = MagicMock()
        repo.list_by_consultant.return_value = [
            _pref("1"),
            _pref("2", orders_enabled=False, ads_enabled=False, promos_enabled=False),
            _pref("3", orders_enabled=False, reviews_enabled=False, ads_enabled=False, promos_enabled=False),
        ]
        companies = [
            Company(id="1", external_id=1, name="Grupo Sabor", slug="grupo-sabor"),
            Company(id="2", external_id=2, name="Pizza Nostra", slug="pizza-nostra"),
            Company(id="3", external_id=3, name="Sin Alertas", slug="sin-alertas"),
            Company(id="4", external_id=4, name="Sin Preferencia", slug="sin-preferencia"),
        ]

        preview = AlertPreferencesService(repo).build_preview("u1", companies, now=datetime(2026, 2, 4))

        assert preview.date_label == "martes 3 feb"
        assert preview.monitored_count == 2
        assert {a.company_id for a in preview.alerts} == {"1", "2"}
        scores = [a.score for a in preview.alerts]
        assert scores == sorted(scores, reverse=True)


class TestGrouping:
    def test_anomalies_go_to_every_assigned_consultant(self):
        profiles = [
            ConsultantProfile(id="u1", email="ana@x.com", full_name="Ana", assigned_company_ids=["1"]),
            ConsultantProfile(
                id="u2", email="leo@x.com", full_name="Leo", assigned_company_ids=["1"], slack_user_id="U02"
            ),
        ]
        groups = group_anomalies_by_consultant(profiles, [_order()], [_review()], [], [])

        assert set(groups) == {"u1", "u2", UNASSIGNED_KEY}
        assert len(groups["u1"].orders) == 1
        assert groups[UNASSIGNED_KEY].consultant.name == "Sin asignar"
        assert groups[UNASSIGNED_KEY].reviews[0].company_id == "2"

    def test_fallback_message(self):
        profiles = [
            ConsultantProfile(
                id="u2", email="leo@x.com", full_name="Leo", assigned_company_ids=["1"], slack_user_id="U02"
            )
        ]
        groups = group_anomalies_by_consultant(
            profiles, [_order(), _order(deviation=-20.0)], [_review()], [], []
        )
        text = build_fallback_message(groups, "martes 3 feb 2026")

        assert text.startswith("*Alertas diarias — martes 3 feb 2026*")
        assert "<@U02>" in text
        assert "*Sin asignar*" in text
        assert text.count(":red_circle:") == 1
        assert text.count(":large_yellow_circle:") == 1
        assert "*Resenas:*" in text
        assert "*Publicidad:*" not in text

    def test_groups_to_json_empty(self):
        assert groups_to_json({}) == ""


@pytest.fixture
def alert_repo():
    repo = MagicMock()
    repo.get_order_anomalies.return_value = [_order()]
    repo.get_review_anomalies.return_value = []
    repo.get_ads_anomalies.return_value = []
    repo.get_promo_anomalies.return_value = []
    repo.get_consultant_profiles.return_value = [
        ConsultantProfile(id="u1", email="ana@x.com", full_name="Ana", assigned_company_ids=["1"])
    ]
    return repo


class TestDailyAlerts:
    @pytest.mark.asyncio
    async def test_sends_fallback_when_ai_unavailable(self, alert_repo):
        with patch(
            "deliverybi.services.daily_alerts.send_slack_message", new=AsyncMock(return_value=True)
        ) as send, patch(
            "deliverybi.services.daily_alerts.format_alert_message",
            new=AsyncMock(side_effect=AIIntegrationError("sin clave")),
        ):
            status_code, body = await DailyAlertsService(alert_repo).run(datetime(2026, 2, 4, 8, 30))

        assert status_code == 200
        assert body["message"] == "Alerts sent"
        assert body["order_anomalies"] == 1
        text = send.await_args.args[0]
        assert "*Alertas diarias — martes 3 feb 2026*" in text
        assert "*Ana*" in text

    @pytest.mark.asyncio
    async def test_uses_ai_text(self, alert_repo):
        with patch(
            "deliverybi.services.daily_alerts.send_slack_message", new=AsyncMock(return_value=True)
        ) as send, patch(
            "deliverybi.services.daily_alerts.format_alert_message",
            new=AsyncMock(return_value="resumen"),
        ):
            await DailyAlertsService(alert_repo).run(datetime(2026, 2, 4, 8, 30))

        send.assert_awaited_once_with("resumen")

    @pytest.mark.asyncio
    async def test_no_anomalies(self, alert_repo):
        alert_repo.get_order_anomalies.return_value = []
        with patch("deliverybi.services.daily_alerts.send_slack_message", new=AsyncMock(return_value=True)) as send:
            status_code, body = await DailyAlertsService(alert_repo).run(datetime(2026, 2, 4, 8, 30))

        assert (status_code, body) == (200, {"message": "No anomalies", "count": 0})
        assert ":large_green_circle:" in send.await_args.args[0]
        alert_repo.get_consultant_profiles.assert_not_called()

    @pytest.mark.asyncio
    async def test_all_rpcs_failing(self, alert_repo):
        error = OperationalError("select", {}, Exception("timeout"))
        for method in ("get_order_anomalies", "get_review_anomalies", "get_ads_anomalies", "get_promo_anomalies"):
            getattr(alert_repo, method).side_effect = error

        with patch("deliverybi.services.daily_alerts.send_slack_message", new=AsyncMock(return_value=True)) as send:
            status_code, body = await DailyAlertsService(alert_repo).run(datetime(2026, 2, 4, 8, 30))

        assert status_code == 500
        assert [e.split(":")[0] for e in body["errors"]] == ["Orders", "Reviews", "Ads", "Promos"]
        assert send.await_args.args[0].startswith(":warning:")

    @pytest.mark.asyncio
    async def test_partial_failure_still_sends(self, alert_repo):
        alert_repo.get_ads_anomalies.side_effect = OperationalError("select", {}, Exception("timeout"))
        with patch(
            "deliverybi.services.daily_alerts.send_slack_message", new=AsyncMock(return_value=True)
        ) as send, patch(
            "deliverybi.services.daily_alerts.format_alert_message",
            new=AsyncMock(return_value="resumen"),
        ):
            status_code, body = await DailyAlertsService(alert_repo).run(datetime(2026, 2, 4, 8, 30))

        assert status_code == 200
        assert body["ads_anomalies"] == 0
        assert send.await_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [SlackError(500, "webhook caído"), httpx.ConnectError("sin red")],
    )
    async def test_slack_failure_is_not_raised(self, alert_repo, error):
        with patch(
            "deliverybi.services.daily_alerts.send_slack_message", new=AsyncMock(side_effect=error)
        ), patch(
            "deliverybi.services.daily_alerts.format_alert_message",
            new=AsyncMock(return_value="resumen"),
        ):
            status_code, _ = await DailyAlertsService(alert_repo).run(datetime(2026, 2, 4, 8, 30))

        assert status_code == 200


class TestDryRun:
    def test_summary_and_grouping(self, alert_repo):
        alert_repo.get_review_anomalies.return_value = [_review()]
        with patch("deliverybi.services.daily_alerts.send_slack_message", new=AsyncMock()) as send:
            body = DailyAlertsService(alert_repo).dry_run(datetime(2026, 2, 4, 8, 30, tzinfo=timezone.utc))

        send.assert_not_called()
        assert body["timestamp"] == "2026-02-04T08:30:00+00:00"
        assert body["errors"] is None
        assert body["summary"] == {
            "order_anomalies": 1,
            "review_anomalies": 1,
            "ads_anomalies": 0,
            "promo_anomalies": 0,
            "total": 2,
            "consultants": 2,
        }
        assert body["raw"]["orders"][0]["company_id"] == "1"
        assert body["grouped"]["u1"]["consultant"] == "Ana"
        assert body["grouped"][UNASSIGNED_KEY]["reviews"][0]["anomaly_type"] == "rating_drop"

    def test_profile_failure_leaves_everything_unassigned(self, alert_repo):
        alert_repo.get_consultant_profiles.side_effect = OperationalError("select", {}, Exception("timeout"))
        body = DailyAlertsService(alert_repo).dry_run()

        assert list(body["grouped"]) == [UNASSIGNED_KEY]

    def test_rpc_errors_are_reported(self, alert_repo):
        alert_repo.get_promo_anomalies.side_effect = OperationalError("select", {}, Exception("timeout"))
        body = DailyAlertsService(alert_repo).dry_run()

        assert body["errors"][0].startswith("Promos:")
        assert body["summary"]["total"] == 1

    def test_groups_to_dict_keeps_empty_groups(self):
        assert groups_to_dict({}) == {}


class TestSendTest:
    def test_message(self):
        text = build_test_message("Ana", "martes 3 feb 2026")
        assert text.startswith(":test_tube: *Alerta de prueba — martes 3 feb 2026*")
        assert "Buenos dias, *Ana* :wave:" in text

    @pytest.mark.asyncio
    async def test_email_channel_is_acknowledged(self, alert_repo):
        status_code, body = await DailyAlertsService(alert_repo).send_test("Ana López", channel="email")
        assert status_code == 200
        assert body["channel"] == "email"

    @pytest.mark.asyncio
    async def test_missing_webhook(self, alert_repo):
        with patch("deliverybi.services.daily_alerts.settings", MagicMock(SLACK_WEBHOOK_URL="")):
            status_code, body = await DailyAlertsService(alert_repo).send_test("Ana")
        assert (status_code, body) == (500, {"error": "SLACK_WEBHOOK_URL not configured"})

    @pytest.mark.asyncio
    async def test_sends_to_webhook(self, alert_repo):
        with patch(
            "deliverybi.services.daily_alerts.settings", MagicMock(SLACK_WEBHOOK_URL="https://hooks.slack.test/x")
        ), patch(
            "deliverybi.services.daily_alerts.send_slack_message", new=AsyncMock(return_value=True)
        ) as send:
            status_code, body = await DailyAlertsService(alert_repo).send_test(
                "Ana López", now=datetime(2026, 2, 4, 8, 30)
            )

        assert (status_code, body) == (200, {"ok": True, "channel": "slack"})
        text = send.await_args.args[0]
        assert "Alerta de prueba" in text
        assert "*Ana*" in text

    @pytest.mark.asyncio
    async def test_webhook_failure(self, alert_repo):
        with patch(
            "deliverybi.services.daily_alerts.settings", MagicMock(SLACK_WEBHOOK_URL="https://hooks.slack.test/x")
        ), patch(
            "deliverybi.services.daily_alerts.send_slack_message",
            new=AsyncMock(side_effect=SlackError(500, "webhook caído")),
        ):
            status_code, body = await DailyAlertsService(alert_repo).send_test("Ana")

        assert (status_code, body) == (502, {"error": "Slack webhook failed"})
