"""Ticket lifecycle bookkeeping.

Everything here is pure: builders return documents and field updates, and
the API layer decides what to persist. Tickets are stored with their id in
``_id``; ``ticket_to_response`` maps them back for the wire.
"""

import secrets
import string
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .config import new_id, now_utc
from .departments import department_for_category, department_label, department_from_label, dispatch_department
from .models import (CitizenReport, TicketCreate, TicketUpdate, TicketStatus, TeamStatus,
                     TERMINAL_STATUSES)
from .security import sanitize_coordinate, sanitize_text, sanitize_url
from .sla import (classify_sla_stage, compute_sla_deadline, current_sla_stage, higher_priority,
                  priority_from_score, score_from_severity, sla_hours_for)

TICKET_NUMBER_START = 1000
UNKNOWN_WARD = "Unknown Ward"
# Citizen reports without usable geolocation
DEFAULT_COORDINATES = {"lat": 28.6139, "lng": 77.2090}

SYSTEM_ACTOR = {"name": "System", "role": "super_admin"}


class TicketConflict(Exception):
    """The requested change contradicts the ticket's or team's current state."""


class TicketRuleError(Exception):
    """The request is well-formed but breaks a routing rule."""


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
def new_ticket_id(now: Optional[datetime] = None) -> str:
    now = now or now_utc()
    suffix = "".join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(9))
    return f"TKT-{int(now.timestamp() * 1000)}-{suffix}"

def activity_entry(action: str, actor: dict, details: Optional[str] = None,
                   timestamp: Optional[datetime] = None) -> dict:
    return {
        "id": new_id(),
        "timestamp": timestamp or now_utc(),
        "action": action,
        "actor": actor.get("name") or actor.get("email") or "Unknown",
        "actor_role": actor.get("role") or "unknown",
        "details": details,
    }

def build_ticket(data: TicketCreate, ticket_number: int, actor: dict,
                 now: Optional[datetime] = None) -> dict:
    now = now or now_utc()
    deadline = compute_sla_deadline(data.priority, now)
    department = department_for_category(data.category, data.type)

    log = [activity_entry("Ticket created", actor, timestamp=now)]
    if department:
        log.append(activity_entry(f"Auto-routed to {department_label(department)}", SYSTEM_ACTOR,
                                  details=f"Category: {data.category}", timestamp=now))

    location = data.location.model_dump()
    location["address"] = sanitize_text(location["address"], 500)
    location["ward"] = sanitize_text(location["ward"], 100)

    return {
        "_id": new_ticket_id(now),
        "ticket_number": ticket_number,
        "type": sanitize_text(data.type, 100),
        "category": data.category.strip(),
        "description": sanitize_text(data.description, 5000),
        "status": TicketStatus.OPEN.value,
        "priority": data.priority.value,
        "priority_score": data.priority_score,
        "location": location,
        "report_count": 1,
        "sla_deadline": deadline,
        "sla_stage": classify_sla_stage(deadline, data.priority, now).value,
        "created_at": now,
        "updated_at": now,
        "assigned_team": None,
        "assigned_team_id": None,
        "assigned_department": department,
        "assigned_at": None,
        "resolved_at": None,
        "citizen_name": sanitize_text(data.citizen_name, 100) if data.citizen_name else None,
        "citizen_phone": data.citizen_phone,
        "image_url": sanitize_url(data.image_url) if data.image_url else None,
        "ai_assessment": None,
        "source": "portal",
        "activity_log": log,
        "internal_notes": [],
    }

def parse_location(location: str, lat=None, lng=None) -> dict:
    """Turn "Area, Ward, District, City, ..." into a ticket location.

    Coordinates fall back to the city centre when missing or out of range.
    """
    parts = [p.strip() for p in location.split(",")]
    ward = UNKNOWN_WARD
    if len(parts) >= 3:
        ward = parts[1] or parts[2] or UNKNOWN_WARD
    coords = sanitize_coordinate(lat, lng) or DEFAULT_COORDINATES
    return {"ward": sanitize_text(ward, 100), "address": sanitize_text(location.strip(), 500), **coords}

def report_to_ticket(report: CitizenReport, ticket_number: int,
                     reported_at: Optional[datetime] = None) -> dict:
    reported_at = reported_at or now_utc()
    score = score_from_severity(report.severity)
    priority = priority_from_score(score)
    deadline = compute_sla_deadline(priority, reported_at)
    department = department_for_category(report.category)

    assessment = None
    if report.ai_verified:
        assessment = {
            "severity": report.severity.value,
            "reason": sanitize_text(report.summary or report.description[:50], 500),
            "suggested_department": report.category,
            "suggested_skill": "General",
            "estimated_time": f"{sla_hours_for(priority)} hours",
        }

    log = [activity_entry("Ticket created from citizen report", SYSTEM_ACTOR, timestamp=reported_at)]
    if department:
        log.append(activity_entry(f"Auto-routed to {department_label(department)}", SYSTEM_ACTOR,
                                  details=f"Category: {report.category}", timestamp=reported_at))

    return {
        "_id": new_ticket_id(reported_at),
        "ticket_number": ticket_number,
        "type": report.category.strip(),
        "category": report.category.strip(),
        "description": sanitize_text(report.description, 5000),
        "status": TicketStatus.OPEN.value,
        "priority": priority.value,
        "priority_score": score,
        "location": parse_location(report.location, report.lat, report.lng),
        "report_count": 1,
        "sla_deadline": deadline,
        "sla_stage": classify_sla_stage(deadline, priority, reported_at).value,
        "created_at": reported_at,
        "updated_at": reported_at,
        "assigned_team": None,
        "assigned_team_id": None,
        "assigned_department": department,
        "assigned_at": None,
        "resolved_at": None,
        "citizen_name": sanitize_text(report.citizen_name, 100) if report.citizen_name else None,
        "citizen_phone": report.citizen_phone,
        "image_url": sanitize_url(report.image_url) if report.image_url else None,
        "ai_assessment": assessment,
        "source": "citizen",
        "activity_log": log,
        "internal_notes": [],
    }

def ticket_to_response(ticket: dict, now: Optional[datetime] = None) -> dict:
    out = {k: v for k, v in ticket.items() if k != "_id"}
    out["id"] = ticket["_id"]
    out["sla_stage"] = current_sla_stage(ticket, now)
    return out

# ---------------------------------------------------------------------------
# Duplicate reports
# ---------------------------------------------------------------------------
def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()

def find_duplicate(candidates: List[dict], category: str, address: str) -> Optional[dict]:
    """Oldest open ticket reporting the same category at the same address."""
    matches = [t for t in candidates
               if t.get("status") not in TERMINAL_STATUSES
               and _norm(t.get("category")) == _norm(category)
               and _norm((t.get("location") or {}).get("address")) == _norm(address)]
    if not matches:
        return None
    return min(matches, key=lambda t: t["created_at"])

def merge_duplicate(existing: dict, incoming: dict, now: Optional[datetime] = None) -> Tuple[Dict, dict]:
    """Fields to set on ``existing`` and the activity entry recording the merge."""
    now = now or now_utc()
    fields = {"report_count": existing.get("report_count", 1) + 1, "updated_at": now}
    priority = higher_priority(existing["priority"], incoming["priority"])
    score = max(existing.get("priority_score", 0), incoming.get("priority_score", 0))
    if score != existing.get("priority_score"):
        fields["priority_score"] = score
    if priority != existing["priority"]:
        fields["priority"] = priority
        fields["sla_deadline"] = compute_sla_deadline(priority, existing["created_at"])
    entry = activity_entry("Duplicate report merged", SYSTEM_ACTOR,
                           details=f"Reports: {fields['report_count']}", timestamp=now)
    return fields, entry

# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------
def build_action_description(updates: dict, existing: dict) -> str:
    actions = []
    if updates.get("status") and updates["status"] != existing.get("status"):
        actions.append(f"Status changed from {existing.get('status')} to {updates['status']}")
    if updates.get("assigned_team") and updates["assigned_team"] != existing.get("assigned_team"):
        actions.append(f"Assigned to {updates['assigned_team']}")
    if updates.get("assigned_department") and updates["assigned_department"] != existing.get("assigned_department"):
        actions.append(f"Department changed to {updates['assigned_department']}")
    if updates.get("priority_score") is not None and updates["priority_score"] != existing.get("priority_score"):
        actions.append(f"Priority score updated to {updates['priority_score']}")
    if updates.get("ai_assessment"):
        actions.append("AI assessment applied")
    return "; ".join(actions) if actions else "Ticket updated"

def apply_update(existing: dict, update: TicketUpdate, actor: dict,
                 now: Optional[datetime] = None) -> Tuple[Dict, dict]:
    """Resolve a PATCH into fields to set and the activity entry describing it.

    Entering a terminal status stamps ``resolved_at`` and freezes the SLA
    stage; leaving one clears ``resolved_at``.
    """
    now = now or now_utc()
    updates = update.model_dump(exclude_unset=True, mode="json")
    fields: Dict = {k: v for k, v in updates.items()}

    if "priority" in fields and fields["priority"] and fields["priority"] != existing.get("priority"):
        fields["sla_deadline"] = compute_sla_deadline(fields["priority"], existing["created_at"])

    new_status = fields.get("status")
    was_terminal = existing.get("status") in TERMINAL_STATUSES
    if new_status and new_status != existing.get("status"):
        if new_status in TERMINAL_STATUSES and not was_terminal:
            fields["resolved_at"] = now
            deadline = fields.get("sla_deadline", existing["sla_deadline"])
            priority = fields.get("priority") or existing.get("priority")
            fields["sla_stage"] = classify_sla_stage(deadline, priority, now).value
        elif new_status not in TERMINAL_STATUSES and was_terminal:
            fields["resolved_at"] = None

    fields["updated_at"] = now
    entry = activity_entry(build_action_description(updates, existing), actor, timestamp=now)
    return fields, entry

def enters_terminal(existing: dict, fields: dict) -> bool:
    return (existing.get("status") not in TERMINAL_STATUSES
            and fields.get("status") in TERMINAL_STATUSES)

def note_entry(content: str, author: dict, now: Optional[datetime] = None) -> dict:
    return {
        "id": new_id(),
        "timestamp": now or now_utc(),
        "author": author.get("name") or author.get("email") or "Unknown",
        "content": sanitize_text(content, 2000),
    }

# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------
def check_dispatch(ticket: dict, team: dict) -> str:
    """Validate a dispatch and return the department it routes to."""
    if ticket.get("status") in TERMINAL_STATUSES:
        raise TicketConflict(f"Ticket is {ticket['status']} and cannot be dispatched")
    department = dispatch_department(ticket)
    if department_from_label(team.get("department")) != department:
        raise TicketRuleError(
            f"Team {team.get('name')} does not serve {department_label(department)}")
    if team.get("status") == TeamStatus.OFFLINE.value:
        raise TicketConflict(f"Team {team.get('name')} is offline")
    capacity = team.get("capacity") or {}
    if capacity.get("current", 0) >= capacity.get("max", 0):
        raise TicketConflict(f"Team {team.get('name')} is at capacity")
    return department

def dispatch_fields(ticket: dict, team: dict, department: str, actor: dict,
                    now: Optional[datetime] = None) -> Tuple[Dict, dict]:
    now = now or now_utc()
    fields = {
        "assigned_team": team["name"],
        "assigned_team_id": team["_id"],
        "assigned_department": department,
        "status": TicketStatus.ASSIGNED.value,
        "assigned_at": now,
        "updated_at": now,
    }
    description = build_action_description(
        {"status": fields["status"], "assigned_team": team["name"], "assigned_department": department}, ticket)
    return fields, activity_entry(description, actor, timestamp=now)

def team_claim_fields(team: dict, ticket: dict) -> Dict:
    """Fields set alongside the capacity increment when a team takes a ticket."""
    capacity = team.get("capacity") or {}
    fields = {
        "current_task": f"#{ticket.get('ticket_number')} {ticket.get('category')}",
        "current_task_location": (ticket.get("location") or {}).get("address"),
    }
    if capacity.get("current", 0) + 1 >= capacity.get("max", 1):
        fields["status"] = TeamStatus.BUSY.value
    return fields

def team_release_fields(team: dict) -> Dict:
    capacity = team.get("capacity") or {}
    current = max(0, capacity.get("current", 0) - 1)
    fields = {"capacity.current": current}
    if current == 0:
        fields["current_task"] = None
        fields["current_task_location"] = None
    if team.get("status") == TeamStatus.BUSY.value and current < capacity.get("max", 1):
        fields["status"] = TeamStatus.AVAILABLE.value
    return fields
