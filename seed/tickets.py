# Seed data: tickets across every department, status and priority
#
# Tickets go through the same builders the API uses: created, dispatched to
# a team, then moved along the status flow, with timestamps back-dated so
# the dashboard shows a mix of on-track, at-risk, breached and resolved work.

from datetime import timedelta

from civic.audit import emit_feed_event
from civic.config import now_utc
from civic.departments import department_label
from civic.models import FeedType, TicketCreate, TicketLocation, TicketUpdate
from civic.store import TICKETS, TEAMS
from civic.tickets import (TICKET_NUMBER_START, apply_update, build_ticket, check_dispatch, dispatch_fields,
                           enters_terminal, team_claim_fields, team_release_fields)

SEED_ACTOR = {"_id": "seed", "name": "Kavya Menon", "role": "dispatcher"}

WARDS = {
    "central":    ("Ward 4 - Central",           12.9716, 77.5946),
    "market":     ("Ward 7 - Market District",   12.9784, 77.5868),
    "north":      ("Ward 2 - Residential North", 12.9890, 77.5920),
    "industrial": ("Ward 5 - Industrial",        12.9580, 77.6150),
    "green":      ("Ward 3 - Green Belt",        12.9650, 77.5790),
    "commercial": ("Ward 6 - Commercial",        12.9750, 77.6070),
}

# ---------------------------------------------------------------------------
# Raw ticket definitions
#   hours_ago   - creation time relative to now
#   team        - dispatched team (None leaves the ticket open)
#   status      - final status after dispatch
#   done_after  - hours from creation to the final status change
# ---------------------------------------------------------------------------
TICKETS_RAW = [
    {"type": "Pothole", "category": "Roads & Infrastructure", "priority": "critical", "score": 92,
     "description": "Large pothole near school entrance causing traffic hazard. Multiple vehicles damaged.",
     "ward": "central", "address": "123 Main Street, Near City Public School",
     "hours_ago": 2, "team": None, "status": "open", "reports": 4},

    {"type": "Garbage Pile", "category": "Sanitation", "priority": "high", "score": 78,
     "description": "Overflowing garbage bins at the vegetable market entrance, strong smell.",
     "ward": "market", "address": "Market Road, Gate 2",
     "hours_ago": 5, "team": "Sanitation Team A", "status": "assigned"},

    {"type": "Street Light", "category": "Electrical", "priority": "medium", "score": 55,
     "description": "Five street lights not working along the park road for a week.",
     "ward": "north", "address": "14th Cross, Park Road",
     "hours_ago": 20, "team": "Electrical Team A", "status": "in_progress", "done_after": 4},

    {"type": "Water Leak", "category": "Water Supply", "priority": "critical", "score": 88,
     "description": "Main supply pipe burst, water flooding the street and supply cut to 40 homes.",
     "ward": "industrial", "address": "Industrial Estate, Phase 2",
     "hours_ago": 6, "team": "Water Team A", "status": "on_site", "done_after": 2},

    {"type": "Tree Fall", "category": "Parks & Gardens", "priority": "high", "score": 70,
     "description": "Tree fell across the footpath after last night's storm.",
     "ward": "green", "address": "Lakeview Park, East Gate",
     "hours_ago": 30, "team": "Parks Team C", "status": "resolved", "done_after": 6},

    {"type": "Drainage Block", "category": "Drainage", "priority": "medium", "score": 48,
     "description": "Storm drain blocked with silt, water pooling after every rain.",
     "ward": "commercial", "address": "Brigade Lane, Opp. Mall",
     "hours_ago": 50, "team": "Drainage Team A", "status": "resolved", "done_after": 30},

    {"type": "Pothole", "category": "Road Issues", "priority": "low", "score": 30,
     "description": "Small pothole developing near the bus stop.",
     "ward": "north", "address": "Bus Stand Road, Stop 3",
     "hours_ago": 60, "team": None, "status": "open"},

    {"type": "Street Light", "category": "Street Light", "priority": "high", "score": 65,
     "description": "Junction light flickering, dark stretch near the school at night.",
     "ward": "central", "address": "Main Street & 5th Avenue",
     "hours_ago": 7, "team": "Electrical Team B", "status": "assigned"},

    {"type": "Water Leak", "category": "Water Leak", "priority": "medium", "score": 45,
     "description": "Slow leak from the valve chamber on the footpath.",
     "ward": "market", "address": "Market Road, Near Clock Tower",
     "hours_ago": 72, "team": "Water Team B", "status": "closed", "done_after": 20},

    {"type": "Garbage Pile", "category": "Garbage Pile", "priority": "low", "score": 25,
     "description": "Construction debris dumped on the corner plot.",
     "ward": "green", "address": "Green Belt Road, Plot 22",
     "hours_ago": 10, "team": None, "status": "open"},

    {"type": "Medical Waste", "category": "Healthcare", "priority": "high", "score": 74,
     "description": "Clinic waste bags left outside the health centre.",
     "ward": "commercial", "address": "Health Centre Road",
     "hours_ago": 9, "team": "Sanitation Team A", "status": "in_progress", "done_after": 3},

    {"type": "Road Damage", "category": "Roads & Infrastructure", "priority": "medium", "score": 52,
     "description": "Road surface cracked after pipeline work, not restored.",
     "ward": "industrial", "address": "Factory Lane, Unit 9",
     "hours_ago": 40, "team": "Road Team B", "status": "resolved", "done_after": 12},
]

# ---------------------------------------------------------------------------
# Import function
# ---------------------------------------------------------------------------
def _advance(store, ticket: dict, fields: dict, entry: dict) -> dict:
    store.push(TICKETS, ticket["_id"], "activity_log", entry, fields)
    return store.get(TICKETS, ticket["_id"])

async def import_tickets(store, team_ids: dict[str, str]) -> list[dict]:
    """Insert seed tickets, dispatching and progressing them through the status flow."""
    print("\n  Importing tickets...")
    now = now_utc()
    inserted = []
    for raw in TICKETS_RAW:
        created = now - timedelta(hours=raw["hours_ago"])
        ward, lat, lng = WARDS[raw["ward"]]
        data = TicketCreate(
            type=raw["type"], category=raw["category"], description=raw["description"],
            priority=raw["priority"], priority_score=raw["score"],
            location=TicketLocation(ward=ward, address=raw["address"], lat=lat, lng=lng))
        number = store.next_sequence("ticket_number", TICKET_NUMBER_START)
        ticket = build_ticket(data, number, SEED_ACTOR, now=created)
        if raw.get("reports"):
            ticket["report_count"] = raw["reports"]
        store.insert(TICKETS, ticket)
        if ticket["assigned_department"]:
            emit_feed_event(store, FeedType.AUTO_ASSIGN,
                            f"Ticket #{number} auto-routed to {department_label(ticket['assigned_department'])}",
                            ticket["_id"])

        if raw["team"]:
            team = store.get(TEAMS, team_ids[raw["team"]])
            department = check_dispatch(ticket, team)
            store.increment(TEAMS, team["_id"], "capacity.current", 1, team_claim_fields(team, ticket))
            fields, entry = dispatch_fields(ticket, team, department, SEED_ACTOR,
                                            now=created + timedelta(minutes=25))
            fields["capacity_team_id"] = team["_id"]
            ticket = _advance(store, ticket, fields, entry)

        if raw["status"] not in ("open", "assigned"):
            when = created + timedelta(hours=raw["done_after"])
            fields, entry = apply_update(ticket, TicketUpdate(status=raw["status"]), SEED_ACTOR, now=when)
            if enters_terminal(ticket, fields):
                team = store.get(TEAMS, ticket["capacity_team_id"])
                store.update(TEAMS, team["_id"], team_release_fields(team))
                fields["capacity_team_id"] = None
                emit_feed_event(store, FeedType.RESOLUTION, f"Ticket #{number} marked {raw['status']}",
                                ticket["_id"])
            ticket = _advance(store, ticket, fields, entry)

        inserted.append(ticket)
        print(f"    #{number}  {raw['category']:24s}  {ticket['status']:12s}  {ticket['priority']}")
    print(f"  => {len(inserted)} tickets created")
    return inserted
