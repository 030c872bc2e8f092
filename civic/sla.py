"""Priority and SLA arithmetic.

SLA windows are measured from the moment a ticket is created (or, for
citizen reports, from the time the citizen filed the report). A ticket is
``at_risk`` once less than a quarter of its window remains and
``breached`` once the deadline has passed.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from .models import Priority, SLAStage, TERMINAL_STATUSES

SLA_HOURS = {
    Priority.CRITICAL.value: 4,
    Priority.HIGH.value: 8,
    Priority.MEDIUM.value: 24,
    Priority.LOW.value: 48,
}
DEFAULT_SLA_HOURS = SLA_HOURS[Priority.MEDIUM.value]
AT_RISK_FRACTION = 0.25

PRIORITY_ORDER = [Priority.LOW.value, Priority.MEDIUM.value, Priority.HIGH.value, Priority.CRITICAL.value]

SEVERITY_SCORES = {"critical": 90, "high": 75, "medium": 50, "low": 25}
DEFAULT_SEVERITY_SCORE = 50


def _value(priority) -> str:
    return priority.value if isinstance(priority, Priority) else str(priority)


def sla_hours_for(priority) -> int:
    return SLA_HOURS.get(_value(priority), DEFAULT_SLA_HOURS)


def compute_sla_deadline(priority, start: Optional[datetime] = None) -> datetime:
    start = start or datetime.now(timezone.utc)
    return start + timedelta(hours=sla_hours_for(priority))


def classify_sla_stage(deadline: datetime, priority, now: Optional[datetime] = None) -> SLAStage:
    now = now or datetime.now(timezone.utc)
    remaining = (as_utc(deadline) - as_utc(now)).total_seconds()
    if remaining < 0:
        return SLAStage.BREACHED
    if remaining < sla_hours_for(priority) * AT_RISK_FRACTION * 3600:
        return SLAStage.AT_RISK
    return SLAStage.ON_TRACK


def current_sla_stage(ticket: dict, now: Optional[datetime] = None) -> str:
    """Live stage for open tickets; terminal tickets keep the stage recorded at resolution."""
    if ticket.get("status") in TERMINAL_STATUSES and ticket.get("sla_stage"):
        return ticket["sla_stage"]
    return classify_sla_stage(ticket["sla_deadline"], ticket.get("priority"), now).value


def priority_from_score(score: int) -> Priority:
    if score >= 80: return Priority.CRITICAL
    if score >= 60: return Priority.HIGH
    if score >= 40: return Priority.MEDIUM
    return Priority.LOW


def score_from_severity(severity) -> int:
    if severity is None:
        return DEFAULT_SEVERITY_SCORE
    value = severity.value if hasattr(severity, "value") else str(severity)
    return SEVERITY_SCORES.get(value.strip().lower(), DEFAULT_SEVERITY_SCORE)


def higher_priority(a, b) -> str:
    return max(_value(a), _value(b), key=PRIORITY_ORDER.index)


def as_utc(dt: datetime) -> datetime:
    # Mongo hands back naive datetimes unless tzas_utc is set; treat them as UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
