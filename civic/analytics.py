# Dashboard KPIs and per-ward statistics computed from ticket documents

from datetime import datetime
from typing import List, Optional

from .config import now_utc
from .models import Priority, TeamStatus, TERMINAL_STATUSES
from .sla import as_utc

UNKNOWN_WARD = "Unknown Ward"


def _minutes(start: datetime, end: datetime) -> float:
    return (as_utc(end) - as_utc(start)).total_seconds() / 60

def _resolved_in_time(ticket: dict) -> bool:
    resolved_at = ticket.get("resolved_at")
    if ticket.get("status") not in TERMINAL_STATUSES or not resolved_at:
        return False
    return as_utc(resolved_at) <= as_utc(ticket["sla_deadline"])

def compliance_rate(tickets: List[dict]) -> float:
    if not tickets:
        return 0.0
    compliant = sum(1 for t in tickets if _resolved_in_time(t))
    return round(compliant / len(tickets) * 100, 1)

def kpi_summary(tickets: List[dict], teams: List[dict], now: Optional[datetime] = None) -> dict:
    now = now or now_utc()
    open_tickets = [t for t in tickets if t.get("status") not in TERMINAL_STATUSES]

    response_times = [_minutes(t["created_at"], t["assigned_at"]) for t in tickets if t.get("assigned_at")]
    resolution_hours = [_minutes(t["created_at"], t["resolved_at"]) / 60
                        for t in tickets
                        if t.get("status") in TERMINAL_STATUSES and t.get("resolved_at")]

    return {
        "critical_load": sum(1 for t in open_tickets if t.get("priority") == Priority.CRITICAL.value),
        "sla_breaches": sum(1 for t in open_tickets if as_utc(t["sla_deadline"]) < as_utc(now)),
        "active_workforce": {
            "online": sum(1 for team in teams if team.get("status") != TeamStatus.OFFLINE.value),
            "total": len(teams),
        },
        "avg_response_time": round(sum(response_times) / len(response_times)) if response_times else 0,
        "avg_resolution_time": round(sum(resolution_hours) / len(resolution_hours), 1) if resolution_hours else 0.0,
        "sla_compliance_rate": compliance_rate(tickets),
    }

def ward_stats(tickets: List[dict]) -> List[dict]:
    wards = {}
    for ticket in tickets:
        ward = (ticket.get("location") or {}).get("ward") or UNKNOWN_WARD
        wards.setdefault(ward, []).append(ticket)

    stats = []
    for index, (ward, items) in enumerate(wards.items(), start=1):
        resolved = [t for t in items if t.get("status") in TERMINAL_STATUSES]
        hours = [_minutes(t["created_at"], t["resolved_at"]) / 60 for t in resolved if t.get("resolved_at")]
        stats.append({
            "ward_id": f"WARD-{index}",
            "ward_name": ward,
            "total_issues": len(items),
            "resolved_issues": len(resolved),
            "avg_resolution_time": round(sum(hours) / len(hours)) if hours else 0,
            "sla_compliance_rate": compliance_rate(items),
        })
    return sorted(stats, key=lambda s: s["sla_compliance_rate"], reverse=True)
