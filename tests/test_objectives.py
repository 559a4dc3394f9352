from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from deliverybi.core.security import create_share_token, decode_share_token
from deliverybi.domain.models import ObjectiveShareLink, ObjectiveSnapshot, StrategicObjective
from deliverybi.services.objectives import (
    ObjectiveService,
    calculate_expected_progress,
    calculate_health_status,
    calculate_progress,
    calculate_simple_progress,
    calculate_trend,
    calculate_velocity,
    calculate_will_complete,
    get_objective_progress,
    get_share_link_url,
    is_email_allowed,
    is_share_link_valid,
)


def _objective(**kwargs):
    values = dict(
        id="o1",
        company_id="1",
        title="Subir ventas en Glovo",
        category="finanzas",
        objective_type_id="ventas",
        kpi_current_value=160.0,
        kpi_target_value=200.0,
        baseline_value=100.0,
        baseline_date=date(2026, 1, 1),
        evaluation_date=date(2026, 3, 2),
    )
    values.update(kwargs)
    return StrategicObjective(**values)


def _snapshots():
    return [
        ObjectiveSnapshot("o1", date(2026, 1, 31), 160.0),
        ObjectiveSnapshot("o1", date(2026, 1, 1), 100.0),
    ]


class TestProgressMaths:
    def test_simple_progress(self):
        assert calculate_simple_progress(None, 100) == 0
        assert calculate_simple_progress(50, 0) == 0
        assert calculate_simple_progress(50, 200) == 25
        assert calculate_simple_progress(300, 200) == 100

    @pytest.mark.parametrize(
        "current,baseline,target,direction,expected",
        [
            (150, 100, 200, "increase", 50),
            (50, 100, 200, "increase", 0),
            (30, 40, 20, "decrease", 50),
            (103, 90, 100, "maintain", 100),
            (115, 90, 100, "maintain", 50),
            (140, 90, 100, "maintain", 0),
            (100, 100, 100, "increase", 100),
        ],
    )
    def test_progress(self, current, baseline, target, direction, expected):
        assert calculate_progress(current, baseline, target, direction) == pytest.approx(expected)

    def test_expected_progress(self):
        assert calculate_expected_progress(10, 0) == 100
        assert calculate_expected_progress(15, 60) == 25
        assert calculate_expected_progress(90, 60) == 100

    @pytest.mark.parametrize(
        "progress,expected,status,health",
        [
            (120, 50, "in_progress", "exceeded"),
            (100, 50, "in_progress", "completed"),
            (45, 50, "in_progress", "on_track"),
            (40, 50, "in_progress", "at_risk"),
            (20, 50, "in_progress", "off_track"),
            (0, 0, "pending", "off_track"),
            (50, 80, "completed", "completed"),
        ],
    )
    def test_health(self, progress, expected, status, health):
        assert calculate_health_status(progress, expected, status) == health

    def test_velocity_and_trend(self):
        assert calculate_velocity(_snapshots()[:1]) is None
        velocity = calculate_velocity(_snapshots())
        assert velocity == pytest.approx(2.0)
        assert calculate_trend(velocity, "increase") == "up"
        assert calculate_trend(velocity, "decrease") == "down"
        assert calculate_trend(0.001, "increase") == "stable"

    def test_will_complete(self):
        assert calculate_will_complete(None, 10, "increase") is False
        assert calculate_will_complete(8, 10, "decrease") is True
        assert calculate_will_complete(10.4, 10, "maintain") is True

    def test_objective_progress(self):
        progress = get_objective_progress(_objective(), snapshots=_snapshots(), today=date(2026, 1, 31))
        assert progress.days_elapsed == 30
        assert progress.days_remaining == 30
        assert progress.progress_percentage == pytest.approx(60)
        assert progress.expected_progress == pytest.approx(50)
        assert progress.health_status == "on_track"
        assert progress.projected_value == pytest.approx(220)
        assert progress.will_complete is True
        assert progress.trend == "up"

    def test_objective_without_target(self):
        progress = get_objective_progress(_objective(kpi_target_value=None), today=date(2026, 1, 31))
        assert progress.progress_percentage is None
        assert progress.health_status == "off_track"


class TestShareLinkRules:
    def test_validity(self):
        now = datetime(2026, 2, 4, tzinfo=timezone.utc)
        assert is_share_link_valid(ObjectiveShareLink("l1", "o1", "t"), now) == (True, None)
        assert is_share_link_valid(ObjectiveShareLink("l1", "o1", "t", is_active=False), now)[0] is False
        expired = ObjectiveShareLink("l1", "o1", "t", expires_at=datetime(2026, 2, 3))
        assert is_share_link_valid(expired, now) == (False, "El enlace ha caducado.")

    def test_email_allow_list(self):
        open_link = ObjectiveShareLink("l1", "o1", "t")
        assert is_email_allowed(open_link, "x@y.com")
        restricted = ObjectiveShareLink("l1", "o1", "t", allowed_emails=["Ana@Cliente.com"])
        assert is_email_allowed(restricted, "ana@cliente.com")
        assert not is_email_allowed(restricted, "otro@cliente.com")

    def test_url(self):
        assert get_share_link_url("abc").endswith("/shared/objective/abc")


@pytest.fixture
def repo():
    repo = MagicMock()
    repo.get.return_value = _objective()
    repo.get_snapshots.return_value = _snapshots()
    return repo


class TestObjectiveService:
    def test_missing_objective(self, repo):
        repo.get.return_value = None
        with pytest.raises(HTTPException) as exc:
            ObjectiveService(repo).get("nope")
        assert exc.value.status_code == 404

    def test_completing_sets_timestamp(self, repo):
        repo.update.return_value = _objective(status="completed")
        ObjectiveService(repo).update("o1", {"status": "completed"})
        data = repo.update.call_args.args[1]
        assert isinstance(data["completed_at"], datetime)

    def test_delete_missing(self, repo):
        repo.delete.return_value = False
        with pytest.raises(HTTPException) as exc:
            ObjectiveService(repo).delete("o1")
        assert exc.value.status_code == 404

    def test_progress(self, repo):
        progress = ObjectiveService(repo).get_progress("o1", today=date(2026, 1, 31))
        assert progress.health_status == "on_track"
        repo.get_snapshots.assert_called_once_with("o1")

    def test_second_share_link_conflicts(self, repo):
        repo.get_share_link_by_objective.return_value = ObjectiveShareLink("l1", "o1", "t")
        with pytest.raises(HTTPException) as exc:
            ObjectiveService(repo).create_share_link("o1")
        assert exc.value.status_code == 409
        repo.create_share_link.assert_not_called()

    def test_create_share_link(self, repo):
        repo.get_share_link_by_objective.return_value = None
        repo.create_share_link.side_effect = lambda oid, token, exp, emails: ObjectiveShareLink(
            "l1", oid, token, expires_at=exp, allowed_emails=list(emails or [])
        )
        link = ObjectiveService(repo).create_share_link("o1", allowed_emails=["ana@cliente.com"])
        assert link.token
        assert link.allowed_emails == ["ana@cliente.com"]

    def test_regenerate_keeps_expiry(self, repo):
        expires = datetime.now(timezone.utc) + timedelta(days=3)
        repo.get_share_link_by_objective.return_value = ObjectiveShareLink("l1", "o1", "old", expires_at=expires)
        repo.update_share_link.return_value = ObjectiveShareLink("l1", "o1", "new", expires_at=expires)
        ObjectiveService(repo).regenerate_share_link("o1")
        link_id, data = repo.update_share_link.call_args.args
        assert link_id == "l1"
        assert data["token"] != "old"


class TestResolveShared:
    def _link(self, token, **kwargs):
        return ObjectiveShareLink("l1", "o1", token, view_count=4, **kwargs)

    def test_public_view(self, repo):
        token = create_share_token(objective_id="o1")
        repo.get_share_link_by_token.return_value = self._link(token)
        data = ObjectiveService(repo).resolve_shared(token, today=date(2026, 1, 31))
        assert data["objective"]["id"] == "o1"
        assert data["progress"]["health_status"] == "on_track"
        assert data["view_count"] == 5
        repo.increment_share_link_view.assert_called_once_with(token)

    def test_unknown_link(self, repo):
        token = create_share_token(objective_id="o1")
        repo.get_share_link_by_token.return_value = None
        with pytest.raises(HTTPException) as exc:
            ObjectiveService(repo).resolve_shared(token)
        assert exc.value.status_code == 404

    def test_token_for_other_objective(self, repo):
        token = create_share_token(objective_id="o2")
        repo.get_share_link_by_token.return_value = self._link(token)
        with pytest.raises(HTTPException) as exc:
            ObjectiveService(repo).resolve_shared(token)
        assert exc.value.status_code == 404

    @pytest.mark.parametrize(
        "link_kwargs",
        [{"is_active": False}, {"expires_at": datetime(2026, 1, 1, tzinfo=timezone.utc)}],
    )
    def test_inactive_or_expired(self, repo, link_kwargs):
        token = create_share_token(objective_id="o1")
        repo.get_share_link_by_token.return_value = self._link(token, **link_kwargs)
        with pytest.raises(HTTPException) as exc:
            ObjectiveService(repo).resolve_shared(token, now=datetime(2026, 2, 4, tzinfo=timezone.utc))
        assert exc.value.status_code == 410
        repo.increment_share_link_view.assert_not_called()

    def test_email_not_allowed(self, repo):
        token = create_share_token(objective_id="o1")
        repo.get_share_link_by_token.return_value = self._link(token, allowed_emails=["ana@cliente.com"])
        with pytest.raises(HTTPException) as exc:
            ObjectiveService(repo).resolve_shared(token, email="otro@cliente.com")
        assert exc.value.status_code == 403

    def test_bad_signature(self, repo):
        with pytest.raises(HTTPException) as exc:
            ObjectiveService(repo).resolve_shared("no-es-un-jwt")
        assert exc.value.status_code == 401

    def test_email_required_when_link_is_restricted(self, repo):
        token = create_share_token(objective_id="o1")
        repo.get_share_link_by_token.return_value = self._link(token, allowed_emails=["ana@cliente.com"])
        for email in (None, ""):
            with pytest.raises(HTTPException) as exc:
                ObjectiveService(repo).resolve_shared(token, email=email)
            assert exc.value.status_code == 403
        repo.increment_share_link_view.assert_not_called()

    def test_allowed_email_is_case_insensitive(self, repo):
        token = create_share_token(objective_id="o1")
        repo.get_share_link_by_token.return_value = self._link(token, allowed_emails=["ana@cliente.com"])
        data = ObjectiveService(repo).resolve_shared(token, email="Ana@Cliente.com", today=date(2026, 1, 31))
        assert data["view_count"] == 5


class TestShareTokenExpiry:
    def test_token_has_no_exp(self):
        claims = decode_share_token(create_share_token(objective_id="o1"))
        assert claims.objective_id == "o1"
        assert claims.exp is None

    def test_expired_link_is_gone_not_unauthorized(self, repo):
        repo.get_share_link_by_objective.return_value = None
        repo.create_share_link.side_effect = lambda oid, token, exp, emails: ObjectiveShareLink(
            "l1", oid, token, expires_at=exp
        )
        past = datetime.now(timezone.utc) - timedelta(days=1)
        link = ObjectiveService(repo).create_share_link("o1", expires_at=past)
        repo.get_share_link_by_token.return_value = link

        with pytest.raises(HTTPException) as exc:
            ObjectiveService(repo).resolve_shared(link.token)
        assert exc.value.status_code == 410

    def test_extending_expiry_revives_link(self, repo):
        token = create_share_token(objective_id="o1")
        past = datetime.now(timezone.utc) - timedelta(days=1)
        repo.get_share_link_by_token.return_value = ObjectiveShareLink("l1", "o1", token, expires_at=past)
        with pytest.raises(HTTPException):
            ObjectiveService(repo).resolve_shared(token)

        future = datetime.now(timezone.utc) + timedelta(days=30)
        repo.get_share_link_by_token.return_value = ObjectiveShareLink("l1", "o1", token, expires_at=future)
        data = ObjectiveService(repo).resolve_shared(token, today=date(2026, 1, 31))
        assert data["objective"]["id"] == "o1"

    def test_link_without_expiry_outlives_any_token_age(self, repo):
        token = create_share_token(objective_id="o1")
        repo.get_share_link_by_token.return_value = ObjectiveShareLink("l1", "o1", token, expires_at=None)
        data = ObjectiveService(repo).resolve_shared(
            token, now=datetime(2030, 1, 1, tzinfo=timezone.utc), today=date(2026, 1, 31)
        )
        assert data["view_count"] == 1
