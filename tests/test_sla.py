"""Priority and SLA arithmetic."""

from datetime import datetime, timedelta, timezone

import pytest

from civic.models import Priority, SLAStage
from civic.sla import (classify_sla_stage, compute_sla_deadline, current_sla_stage, higher_priority,
                       priority_from_score, score_from_severity, sla_hours_for)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestDeadlines:
    @pytest.mark.parametrize("priority,hours", [("critical", 4), ("high", 8), ("medium", 24), ("low", 48)])
    def test_hours_per_priority(self, priority, hours):
        assert compute_sla_deadline(priority, NOW) == NOW + timedelta(hours=hours)

    def test_accepts_enum(self):
        assert compute_sla_deadline(Priority.CRITICAL, NOW) == NOW + timedelta(hours=4)

    def test_unknown_priority_uses_medium_budget(self):
        assert sla_hours_for("urgent") == 24
        assert sla_hours_for(None) == 24

    def test_defaults_to_now(self):
        before = datetime.now(timezone.utc)
        deadline = compute_sla_deadline("high")
        assert before + timedelta(hours=8) <= deadline <= datetime.now(timezone.utc) + timedelta(hours=8)


class TestStageClassification:
    def test_on_track_with_plenty_of_time(self):
        assert classify_sla_stage(NOW + timedelta(hours=20), "medium", NOW) == SLAStage.ON_TRACK

    def test_at_risk_under_a_quarter_remaining(self):
        # medium window is 24h; a quarter is 6h
        assert classify_sla_stage(NOW + timedelta(hours=5, minutes=59), "medium", NOW) == SLAStage.AT_RISK

    def test_exactly_a_quarter_is_on_track(self):
        assert classify_sla_stage(NOW + timedelta(hours=6), "medium", NOW) == SLAStage.ON_TRACK

    def test_critical_at_risk_threshold_is_one_hour(self):
        assert classify_sla_stage(NOW + timedelta(minutes=59), "critical", NOW) == SLAStage.AT_RISK
        assert classify_sla_stage(NOW + timedelta(minutes=61), "critical", NOW) == SLAStage.ON_TRACK

    def test_deadline_now_is_not_breached(self):
        assert classify_sla_stage(NOW, "low", NOW) == SLAStage.AT_RISK

    def test_past_deadline_is_breached(self):
        assert classify_sla_stage(NOW - timedelta(seconds=1), "low", NOW) == SLAStage.BREACHED

    def test_naive_deadline_treated_as_utc(self):
        naive = (NOW + timedelta(hours=1)).replace(tzinfo=None)
        assert classify_sla_stage(naive, "high", NOW) == SLAStage.AT_RISK


class TestCurrentStage:
    def test_open_ticket_is_recomputed(self):
        ticket = {"status": "open", "priority": "high", "sla_deadline": NOW - timedelta(hours=1),
                  "sla_stage": "on_track"}
        assert current_sla_stage(ticket, NOW) == "breached"

    def test_resolved_ticket_keeps_frozen_stage(self):
        ticket = {"status": "resolved", "priority": "high", "sla_deadline": NOW - timedelta(hours=1),
                  "sla_stage": "on_track"}
        assert current_sla_stage(ticket, NOW) == "on_track"


class TestScores:
    @pytest.mark.parametrize("score,priority", [
        (100, Priority.CRITICAL), (80, Priority.CRITICAL), (79, Priority.HIGH), (60, Priority.HIGH),
        (59, Priority.MEDIUM), (40, Priority.MEDIUM), (39, Priority.LOW), (0, Priority.LOW),
    ])
    def test_priority_from_score(self, score, priority):
        assert priority_from_score(score) == priority

    @pytest.mark.parametrize("severity,score", [
        ("Critical", 90), ("High", 75), ("Medium", 50), ("Low", 25), ("HIGH", 75), ("unknown", 50), (None, 50),
    ])
    def test_score_from_severity(self, severity, score):
        assert score_from_severity(severity) == score

    def test_higher_priority(self):
        assert higher_priority("low", "critical") == "critical"
        assert higher_priority(Priority.HIGH, "medium") == "high"
