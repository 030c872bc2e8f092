# Civic Intel Dispatch: grievance tickets, field teams, SLA tracking and audit trail
# FastAPI + MongoDB + OpenAI

import asyncio
import logging
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordBearer
from starlette.requests import Request
from starlette.middleware.base import BaseHTTPMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from civic import ai
from civic.analytics import kpi_summary, ward_stats
from civic.audit import client_ip, create_audit_log, emit_feed_event
from civic.config import (LOG_LEVEL, STORE_BACKEND, MONGODB_URL, MONGODB_DB, CORS_ORIGINS, RATE_LIMITS,
                          DEFAULT_ADMIN_EMAIL, DEFAULT_ADMIN_PASSWORD, DEFAULT_ADMIN_NAME, new_id, now_utc)
from civic.departments import department_label
from civic.models import (
    Role, Department, Priority, TicketStatus, FeedType, SLAStage, TERMINAL_STATUSES,
    LoginRequest, PortalUserCreate, PortalUserResponse, TokenResponse,
    TicketCreate, TicketUpdate, NoteCreate, DispatchRequest, TicketResponse, CitizenReport, SweepResponse,
    TeamCreate, TeamUpdate, TeamResponse, AuditLogResponse, AuditLogPage, SystemFeedItem,
    KPIResponse, WardStats, AssessmentRequest, AssessmentResponse, AIAssessment,
    VerifyComplaintRequest, VerifyComplaintResponse, ConfirmationRequest, ConfirmationResponse, ComplaintReceipt,
)
from civic.rbac import can_access_ticket, has_permission, ticket_scope
from civic.security import (hash_password, verify_password, create_access_token, decode_access_token,
                            revoke_token, is_revoked, sanitize_email, sanitize_id, sanitize_text)
from civic.sla import classify_sla_stage
from civic.store import (DocumentStore, create_store, TICKETS, TEAMS, PORTAL_USERS, AUDIT_LOGS,
                         SYSTEM_FEED, COUNTERS)
from civic.tickets import (TICKET_NUMBER_START, SYSTEM_ACTOR, TicketConflict, TicketRuleError,
                           activity_entry, apply_update, build_ticket, check_dispatch, dispatch_fields,
                           enters_terminal, find_duplicate, merge_duplicate, note_entry, parse_location,
                           report_to_ticket, team_claim_fields, team_release_fields, ticket_to_response)

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

# ---------------------------------------------------------------------------
# App, rate limiting, middleware
# ---------------------------------------------------------------------------
def rate_limit_key(request: Request) -> str:
    return client_ip(request)

app = FastAPI(title="Civic Intel Dispatch")
limiter = Limiter(key_func=rate_limit_key, default_limits=[RATE_LIMITS["default"]])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        return response

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware, allow_origins=CORS_ORIGINS, allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"], allow_headers=["Authorization", "Content-Type"])

store: Optional[DocumentStore] = None
executor = ThreadPoolExecutor(max_workers=10)

async def run_db(fn, *args):
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(executor, fn, *args)

# ---------------------------------------------------------------------------
# Startup / Shutdown
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    global store
    store = await run_db(create_store, STORE_BACKEND, MONGODB_URL, MONGODB_DB)
    logger.info("Store backend: %s | AI configured: %s", STORE_BACKEND, ai.is_configured())
    await run_db(ensure_default_admin, store)
    yield
    store.close()

app.router.lifespan_context = lifespan

def ensure_default_admin(db: DocumentStore) -> None:
    """Create the bootstrap super admin when configured and missing."""
    if not DEFAULT_ADMIN_EMAIL or not DEFAULT_ADMIN_PASSWORD:
        return
    if db.find_one(PORTAL_USERS, {"email": DEFAULT_ADMIN_EMAIL}):
        return
    db.insert(PORTAL_USERS, {
        "_id": new_id(), "name": DEFAULT_ADMIN_NAME, "email": DEFAULT_ADMIN_EMAIL,
        "hashed_password": hash_password(DEFAULT_ADMIN_PASSWORD),
        "role": Role.SUPER_ADMIN.value, "department": None, "ward_assignment": None,
        "is_active": True, "created_at": now_utc(), "last_login": None,
    })
    logger.info("Created default super admin %s", DEFAULT_ADMIN_EMAIL)

# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
async def get_store():
    return store

async def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db=Depends(get_store)):
    if token is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if is_revoked(token):
        raise HTTPException(status_code=401, detail="Token has been revoked")
    payload = decode_access_token(token)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = await run_db(db.get, PORTAL_USERS, payload["sub"])
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Account disabled")
    return user

def require_role(*roles):
    async def role_checker(user=Depends(get_current_user)):
        if user.get("role") not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return role_checker

def require_permission(permission: str):
    async def permission_checker(user=Depends(get_current_user)):
        if not has_permission(user.get("role"), permission):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return permission_checker

def user_to_response(user: dict) -> PortalUserResponse:
    return PortalUserResponse(
        id=str(user["_id"]), name=user["name"], email=user["email"], role=user["role"],
        department=user.get("department"), ward_assignment=user.get("ward_assignment"),
        is_active=user.get("is_active", True), created_at=user.get("created_at"),
        last_login=user.get("last_login"))

def team_to_response(team: dict) -> TeamResponse:
    return TeamResponse(**{k: v for k, v in team.items() if k != "_id"}, id=team["_id"])

def clean_id(value: str, param_name: str = "id") -> str:
    """Reject ids carrying anything beyond [A-Za-z0-9_-]."""
    cleaned = sanitize_id(value)
    if not cleaned or cleaned != value:
        raise HTTPException(status_code=400, detail=f"Invalid {param_name} format")
    return cleaned

async def load_ticket(db: DocumentStore, ticket_id: str) -> dict:
    ticket = await run_db(db.get, TICKETS, clean_id(ticket_id, "ticket_id"))
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket

async def load_team(db: DocumentStore, team_id: str) -> dict:
    team = await run_db(db.get, TEAMS, clean_id(team_id, "team_id"))
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return team

async def release_team(db: DocumentStore, team_id: Optional[str]) -> None:
    if not team_id:
        return
    team = await run_db(db.get, TEAMS, team_id)
    if team:
        await run_db(db.update, TEAMS, team_id, team_release_fields(team))

def audit(db: DocumentStore, request: Request, user: dict, action: str, target_type: str, target_id: str,
          old_value=None, new_value=None):
    return run_db(lambda: create_audit_log(db, user, action, target_type, target_id,
                                           old_value, new_value, client_ip(request)))

def feed(db: DocumentStore, feed_type: FeedType, message: str, ticket_id: Optional[str] = None):
    return run_db(emit_feed_event, db, feed_type, message, ticket_id)

def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))

# ---------------------------------------------------------------------------
# HEALTH
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "healthy", "system": "Civic Intel Dispatch", "timestamp": now_utc()}

@app.get("/api/status")
async def api_status():
    return {"status": "ok", "store": STORE_BACKEND, "ai_configured": ai.is_configured(),
            "timestamp": now_utc()}

# ---------------------------------------------------------------------------
# AUTH ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/auth/login", response_model=TokenResponse)
@limiter.limit(RATE_LIMITS["auth"])
async def login(request: Request, form: LoginRequest, db=Depends(get_store)):
    email = sanitize_email(form.email)
    if not email:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user = await run_db(db.find_one, PORTAL_USERS, {"email": email})
    if not user or not verify_password(form.password, user["hashed_password"]):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Account disabled")
    user["last_login"] = now_utc()
    await run_db(db.update, PORTAL_USERS, user["_id"], {"last_login": user["last_login"]})
    token = create_access_token({"sub": user["_id"], "role": user["role"]})
    return TokenResponse(access_token=token, user=user_to_response(user))

@app.get("/auth/me", response_model=PortalUserResponse)
async def get_me(user=Depends(get_current_user)):
    return user_to_response(user)

@app.post("/auth/logout")
async def logout(token: Optional[str] = Depends(oauth2_scheme)):
    if token:
        revoke_token(token)
    return {"detail": "Logged out successfully"}

# ---------------------------------------------------------------------------
# TICKET ENDPOINTS
# ---------------------------------------------------------------------------
@app.get("/api/tickets", response_model=List[TicketResponse])
async def list_tickets(status: Optional[TicketStatus] = None, priority: Optional[Priority] = None,
                       department: Optional[Department] = None, ward: Optional[str] = None,
                       limit: int = 50, user=Depends(get_current_user), db=Depends(get_store)):
    limit = clamp(limit, 1, 100)
    where = ticket_scope(user)
    filters = {}
    if status:
        filters["status"] = status.value
    if priority:
        filters["priority"] = priority.value
    if department:
        filters["assigned_department"] = department.value
    if ward:
        filters["location.ward"] = sanitize_text(ward, 100)
    for key, value in filters.items():
        # A filter can only narrow a department head's scope
        if key in where and where[key] != value:
            return []
        where[key] = value
    tickets = await run_db(lambda: db.find(TICKETS, where, order_by="created_at", descending=True, limit=limit))
    now = now_utc()
    return [TicketResponse(**ticket_to_response(t, now)) for t in tickets]

@app.post("/api/tickets", response_model=TicketResponse)
@limiter.limit(RATE_LIMITS["ticket_create"])
async def create_ticket(request: Request, data: TicketCreate,
                        user=Depends(require_permission("write")), db=Depends(get_store)):
    try:
        number = await run_db(db.next_sequence, "ticket_number", TICKET_NUMBER_START)
        ticket = build_ticket(data, number, user)
        await run_db(db.insert, TICKETS, ticket)
    except Exception as e:
        logger.error("Error creating ticket: %s", e)
        raise HTTPException(status_code=500, detail="Failed to create ticket")

    await audit(db, request, user, "ticket_created", "ticket", ticket["_id"],
                new_value={"ticket_number": number, "category": ticket["category"], "priority": ticket["priority"]})
    if ticket["assigned_department"]:
        await feed(db, FeedType.AUTO_ASSIGN,
                   f"Ticket #{number} auto-routed to {department_label(ticket['assigned_department'])}",
                   ticket["_id"])
    logger.info("Ticket %s (#%d) created by %s", ticket["_id"], number, user["email"])
    return TicketResponse(**ticket_to_response(ticket))

@app.get("/api/tickets/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: str, user=Depends(get_current_user), db=Depends(get_store)):
    ticket = await load_ticket(db, ticket_id)
    if not can_access_ticket(user, ticket).can_read:
        raise HTTPException(status_code=403, detail="Forbidden: No access to this ticket")
    return TicketResponse(**ticket_to_response(ticket))

@app.patch("/api/tickets/{ticket_id}", response_model=TicketResponse)
@limiter.limit(RATE_LIMITS["ticket_update"])
async def update_ticket(request: Request, ticket_id: str, update: TicketUpdate,
                        user=Depends(get_current_user), db=Depends(get_store)):
    ticket = await load_ticket(db, ticket_id)
    if not can_access_ticket(user, ticket).can_write:
        raise HTTPException(status_code=403, detail="Forbidden: Insufficient permissions to update this ticket")
    if not update.model_dump(exclude_unset=True):
        raise HTTPException(status_code=400, detail="No fields to update")

    fields, entry = apply_update(ticket, update, user)
    resolving = enters_terminal(ticket, fields)
    if resolving:
        fields["capacity_team_id"] = None
    await run_db(db.push, TICKETS, ticket["_id"], "activity_log", entry, fields)

    if resolving:
        await release_team(db, ticket.get("capacity_team_id"))
        await feed(db, FeedType.RESOLUTION, f"Ticket #{ticket['ticket_number']} marked {fields['status']}",
                   ticket["_id"])
    await audit(db, request, user, "ticket_updated", "ticket", ticket["_id"],
                old_value={"status": ticket.get("status"), "assigned_team": ticket.get("assigned_team"),
                           "priority_score": ticket.get("priority_score")},
                new_value=update.model_dump(exclude_unset=True, mode="json"))
    updated = await run_db(db.get, TICKETS, ticket["_id"])
    return TicketResponse(**ticket_to_response(updated))

@app.delete("/api/tickets/{ticket_id}")
async def delete_ticket(request: Request, ticket_id: str,
                        user=Depends(require_role(Role.SUPER_ADMIN.value)), db=Depends(get_store)):
    ticket = await load_ticket(db, ticket_id)
    await run_db(db.delete, TICKETS, ticket["_id"])
    if ticket.get("status") not in TERMINAL_STATUSES:
        await release_team(db, ticket.get("capacity_team_id"))
    await audit(db, request, user, "ticket_deleted", "ticket", ticket["_id"],
                old_value={"ticket_number": ticket.get("ticket_number"), "status": ticket.get("status")})
    logger.info("Ticket %s deleted by %s", ticket["_id"], user["email"])
    return {"detail": f"Ticket {ticket['_id']} deleted"}

@app.post("/api/tickets/{ticket_id}/notes", response_model=TicketResponse)
async def add_note(request: Request, ticket_id: str, note: NoteCreate,
                   user=Depends(get_current_user), db=Depends(get_store)):
    ticket = await load_ticket(db, ticket_id)
    if not can_access_ticket(user, ticket).can_write:
        raise HTTPException(status_code=403, detail="Forbidden: Insufficient permissions to update this ticket")
    now = now_utc()
    entry = note_entry(note.content, user, now)
    await run_db(db.push, TICKETS, ticket["_id"], "internal_notes", entry, {"updated_at": now})
    await run_db(db.push, TICKETS, ticket["_id"], "activity_log",
                 activity_entry("Internal note added", user, timestamp=now))
    await audit(db, request, user, "ticket_note_added", "ticket", ticket["_id"], new_value={"note_id": entry["id"]})
    updated = await run_db(db.get, TICKETS, ticket["_id"])
    return TicketResponse(**ticket_to_response(updated))

@app.post("/api/tickets/{ticket_id}/dispatch", response_model=TicketResponse)
async def dispatch_ticket(request: Request, ticket_id: str, req: DispatchRequest,
                          user=Depends(require_permission("assign")), db=Depends(get_store)):
    ticket = await load_ticket(db, ticket_id)
    team = await load_team(db, req.team_id)
    if ticket.get("capacity_team_id") == team["_id"]:
        raise HTTPException(status_code=409, detail="Ticket is already dispatched to this team")
    try:
        department = check_dispatch(ticket, team)
    except TicketConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TicketRuleError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await release_team(db, ticket.get("capacity_team_id"))
    await run_db(db.increment, TEAMS, team["_id"], "capacity.current", 1, team_claim_fields(team, ticket))

    fields, entry = dispatch_fields(ticket, team, department, user)
    fields["capacity_team_id"] = team["_id"]
    await run_db(db.push, TICKETS, ticket["_id"], "activity_log", entry, fields)

    await audit(db, request, user, "ticket_dispatched", "ticket", ticket["_id"],
                old_value={"status": ticket.get("status"), "assigned_team": ticket.get("assigned_team")},
                new_value={"team_id": team["_id"], "assigned_team": team["name"], "department": department})
    await feed(db, FeedType.AUTO_ASSIGN,
               f"Ticket #{ticket['ticket_number']} dispatched to {team['name']} ({team['department']})",
               ticket["_id"])
    updated = await run_db(db.get, TICKETS, ticket["_id"])
    return TicketResponse(**ticket_to_response(updated))

@app.post("/api/sla/sweep", response_model=SweepResponse)
async def sla_sweep(user=Depends(require_permission("assign")), db=Depends(get_store)):
    tickets = await run_db(db.find, TICKETS)
    now = now_utc()
    checked = changed = at_risk = breached = 0
    for ticket in tickets:
        if ticket.get("status") in TERMINAL_STATUSES:
            continue
        checked += 1
        stage = classify_sla_stage(ticket["sla_deadline"], ticket.get("priority"), now)
        if stage == SLAStage.AT_RISK:
            at_risk += 1
        elif stage == SLAStage.BREACHED:
            breached += 1
        if stage.value == ticket.get("sla_stage"):
            continue
        changed += 1
        entry = activity_entry(f"SLA stage changed to {stage.value}", SYSTEM_ACTOR, timestamp=now)
        await run_db(db.push, TICKETS, ticket["_id"], "activity_log", entry, {"sla_stage": stage.value})
        if stage == SLAStage.AT_RISK:
            await feed(db, FeedType.SLA_WARNING,
                       f"Ticket #{ticket['ticket_number']} is at risk of breaching its SLA", ticket["_id"])
        elif stage == SLAStage.BREACHED:
            await feed(db, FeedType.ESCALATION,
                       f"Ticket #{ticket['ticket_number']} breached its SLA", ticket["_id"])
    logger.info("SLA sweep by %s: %d checked, %d changed", user["email"], checked, changed)
    return SweepResponse(checked=checked, changed=changed, at_risk=at_risk, breached=breached)

# ---------------------------------------------------------------------------
# TEAM ENDPOINTS
# ---------------------------------------------------------------------------
@app.get("/api/teams", response_model=List[TeamResponse])
async def list_teams(user=Depends(get_current_user), db=Depends(get_store)):
    where = {}
    if user.get("role") == Role.DEPARTMENT_HQ.value:
        where["department"] = department_label(user.get("department")) or "__none__"
    teams = await run_db(lambda: db.find(TEAMS, where, order_by="name"))
    return [team_to_response(t) for t in teams]

@app.post("/api/teams", response_model=TeamResponse)
async def create_team(request: Request, data: TeamCreate,
                      user=Depends(require_permission("admin")), db=Depends(get_store)):
    if data.capacity.current > data.capacity.max:
        raise HTTPException(status_code=400, detail="capacity.current cannot exceed capacity.max")
    team = data.model_dump(mode="json")
    team.update({
        "_id": new_id(),
        "name": sanitize_text(data.name, 100),
        "department": department_label(data.department.value),
        "shift_end": data.shift_end,
        "current_task": None,
        "current_task_location": None,
    })
    await run_db(db.insert, TEAMS, team)
    await audit(db, request, user, "team_created", "team", team["_id"],
                new_value={"name": team["name"], "department": team["department"]})
    return team_to_response(team)

@app.get("/api/teams/{team_id}", response_model=TeamResponse)
async def get_team(team_id: str, user=Depends(get_current_user), db=Depends(get_store)):
    return team_to_response(await load_team(db, team_id))

@app.patch("/api/teams/{team_id}", response_model=TeamResponse)
async def update_team(request: Request, team_id: str, update: TeamUpdate,
                      user=Depends(require_permission("assign")), db=Depends(get_store)):
    team = await load_team(db, team_id)
    fields = update.model_dump(exclude_unset=True, mode="json")
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")
    if update.capacity and update.capacity.current > update.capacity.max:
        raise HTTPException(status_code=400, detail="capacity.current cannot exceed capacity.max")
    for key in ("current_task", "current_task_location"):
        if fields.get(key):
            fields[key] = sanitize_text(fields[key], 500)
    await run_db(db.update, TEAMS, team["_id"], fields)
    await audit(db, request, user, "team_updated", "team", team["_id"],
                old_value={"status": team.get("status"), "current_task": team.get("current_task")},
                new_value=fields)
    return team_to_response(await run_db(db.get, TEAMS, team["_id"]))

# ---------------------------------------------------------------------------
# AUDIT / FEED
# ---------------------------------------------------------------------------
@app.get("/api/audit-logs", response_model=AuditLogPage)
async def list_audit_logs(limit: int = 50, action: Optional[str] = None, target_type: Optional[str] = None,
                          user=Depends(require_role(Role.SUPER_ADMIN.value)), db=Depends(get_store)):
    limit = clamp(limit, 1, 200)
    where = {}
    if action:
        where["action"] = sanitize_id(action, 50)
    if target_type:
        where["target_type"] = sanitize_id(target_type, 50)
    logs = await run_db(lambda: db.find(AUDIT_LOGS, where, order_by="timestamp", descending=True, limit=limit))
    return AuditLogPage(
        logs=[AuditLogResponse(**{k: v for k, v in log.items() if k != "_id"}, id=log["_id"]) for log in logs],
        meta={"count": len(logs), "limit": limit})

@app.get("/api/system-feed", response_model=List[SystemFeedItem])
async def system_feed(user=Depends(get_current_user), db=Depends(get_store)):
    items = await run_db(lambda: db.find(SYSTEM_FEED, order_by="timestamp", descending=True, limit=50))
    return [SystemFeedItem(**{k: v for k, v in i.items() if k != "_id"}, id=i["_id"]) for i in items]

# ---------------------------------------------------------------------------
# ANALYTICS
# ---------------------------------------------------------------------------
@app.get("/api/analytics/kpi", response_model=KPIResponse)
async def get_kpis(user=Depends(get_current_user), db=Depends(get_store)):
    where = ticket_scope(user)
    team_where = {}
    if user.get("role") == Role.DEPARTMENT_HQ.value:
        team_where["department"] = department_label(user.get("department")) or "__none__"
    tickets = await run_db(db.find, TICKETS, where)
    teams = await run_db(db.find, TEAMS, team_where)
    return KPIResponse(**kpi_summary(tickets, teams))

@app.get("/api/analytics/wards", response_model=List[WardStats])
async def get_ward_stats(user=Depends(get_current_user), db=Depends(get_store)):
    tickets = await run_db(db.find, TICKETS, ticket_scope(user))
    return [WardStats(**s) for s in ward_stats(tickets)]

# ---------------------------------------------------------------------------
# PORTAL USER MANAGEMENT
# ---------------------------------------------------------------------------
@app.get("/api/portal-users", response_model=List[PortalUserResponse])
async def list_portal_users(user=Depends(require_permission("admin")), db=Depends(get_store)):
    users = await run_db(lambda: db.find(PORTAL_USERS, order_by="created_at", descending=True))
    return [user_to_response(u) for u in users]

@app.post("/api/portal-users", response_model=PortalUserResponse)
async def create_portal_user(request: Request, data: PortalUserCreate,
                             user=Depends(require_permission("admin")), db=Depends(get_store)):
    email = sanitize_email(data.email)
    if not email:
        raise HTTPException(status_code=400, detail="Invalid email address")
    if data.role == Role.DEPARTMENT_HQ and not data.department:
        raise HTTPException(status_code=400, detail="department is required for department_hq users")
    if data.role == Role.WARD_OFFICER and not (data.ward_assignment or "").strip():
        raise HTTPException(status_code=400, detail="ward_assignment is required for ward_officer users")
    if len(data.password.encode("utf-8")) > 72:
        raise HTTPException(status_code=400, detail="Password cannot exceed 72 bytes")
    existing = await run_db(db.find_one, PORTAL_USERS, {"email": email})
    if existing:
        raise HTTPException(status_code=409, detail="A user with this email already exists")
    user_doc = {
        "_id": new_id(), "name": sanitize_text(data.name, 100), "email": email,
        "hashed_password": hash_password(data.password), "role": data.role.value,
        "department": data.department.value if data.department else None,
        "ward_assignment": sanitize_text(data.ward_assignment.strip(), 100) if data.ward_assignment else None,
        "is_active": True, "created_at": now_utc(), "last_login": None,
    }
    await run_db(db.insert, PORTAL_USERS, user_doc)
    await audit(db, request, user, "portal_user_created", "portal_user", user_doc["_id"],
                new_value={"email": email, "role": user_doc["role"], "department": user_doc["department"]})
    logger.info("Admin %s created portal user %s (%s)", user["email"], email, user_doc["role"])
    return user_to_response(user_doc)

@app.delete("/api/portal-users/{user_id}")
async def delete_portal_user(request: Request, user_id: str,
                             user=Depends(require_permission("admin")), db=Depends(get_store)):
    user_id = clean_id(user_id, "user_id")
    if str(user["_id"]) == user_id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")
    target = await run_db(db.get, PORTAL_USERS, user_id)
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    await run_db(db.delete, PORTAL_USERS, user_id)
    await audit(db, request, user, "portal_user_deleted", "portal_user", user_id,
                old_value={"email": target["email"], "role": target["role"]})
    logger.info("Admin %s deleted portal user %s", user["email"], target["email"])
    return {"detail": f"User '{target['email']}' deleted"}

# ---------------------------------------------------------------------------
# ADMIN DATA
# ---------------------------------------------------------------------------
CLEARABLE = [TICKETS, TEAMS, AUDIT_LOGS, SYSTEM_FEED, COUNTERS]

@app.get("/api/admin/clear-data")
async def data_counts(user=Depends(require_permission("admin")), db=Depends(get_store)):
    counts = {}
    for name in (TICKETS, TEAMS, PORTAL_USERS, AUDIT_LOGS, SYSTEM_FEED):
        counts[name] = await run_db(db.count, name)
    return {"counts": counts}

@app.delete("/api/admin/clear-data")
async def clear_data(request: Request, user=Depends(require_permission("admin")), db=Depends(get_store)):
    deleted = {}
    for name in CLEARABLE:
        deleted[name] = await run_db(db.delete_all, name)
    # Written after the wipe so the clear itself stays on record
    await audit(db, request, user, "data_cleared", "system", "all", old_value=deleted)
    logger.warning("Admin %s cleared operational data: %s", user["email"], deleted)
    return {"detail": "Operational data cleared", "deleted": deleted}

# ---------------------------------------------------------------------------
# AI ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/api/ai/assess-ticket", response_model=AssessmentResponse)
@limiter.limit(RATE_LIMITS["ai_assessment"])
async def assess_ticket(request: Request, req: AssessmentRequest,
                        user=Depends(require_permission("ai_assess")), db=Depends(get_store)):
    if not ai.is_configured():
        raise HTTPException(status_code=503, detail="AI service not configured")
    try:
        assessment = await ai.assess_ticket(req.type, req.category, req.description, req.address)
    except Exception as e:
        logger.error("AI assessment error: %s", e)
        raise HTTPException(status_code=500, detail="Assessment failed. Please try again later.")

    ticket_id = sanitize_id(req.ticket_id)
    ticket = await run_db(db.get, TICKETS, ticket_id) if ticket_id else None
    if ticket:
        entry = activity_entry("AI assessment applied", {"name": "AI Assistant", "role": user["role"]},
                               details=f"Requested by {user['name']}")
        await run_db(db.push, TICKETS, ticket_id, "activity_log", entry,
                     {"ai_assessment": assessment, "updated_at": now_utc()})
    await audit(db, request, user, "ai_assessment_requested", "ticket", ticket_id or req.ticket_id,
                new_value=assessment)
    return AssessmentResponse(assessment=AIAssessment(**assessment))

# ---------------------------------------------------------------------------
# CITIZEN INTAKE (no auth)
# ---------------------------------------------------------------------------
@app.post("/api/complaints", response_model=ComplaintReceipt)
@limiter.limit(RATE_LIMITS["citizen_intake"])
async def submit_complaint(request: Request, report: CitizenReport, db=Depends(get_store)):
    citizen = {"_id": "citizen", "name": report.citizen_name or "Citizen", "role": "citizen"}
    now = now_utc()
    try:
        incoming = report_to_ticket(report, 0, now)
        address = parse_location(report.location)["address"]
        # Category and address match case-insensitively, so filtering happens in find_duplicate
        candidates = await run_db(db.find, TICKETS)
        duplicate = find_duplicate(candidates, incoming["category"], address)

        if duplicate:
            fields, entry = merge_duplicate(duplicate, incoming, now)
            await run_db(db.push, TICKETS, duplicate["_id"], "activity_log", entry, fields)
        else:
            incoming["ticket_number"] = await run_db(db.next_sequence, "ticket_number", TICKET_NUMBER_START)
            await run_db(db.insert, TICKETS, incoming)
    except Exception as e:
        logger.error("Error filing citizen complaint: %s", e)
        raise HTTPException(status_code=500, detail="Failed to file complaint")

    if duplicate:
        await feed(db, FeedType.DUPLICATE_FLAGGED,
                   f"Duplicate report merged into ticket #{duplicate['ticket_number']} "
                   f"({fields['report_count']} reports)", duplicate["_id"])
        await audit(db, request, citizen, "complaint_merged", "ticket", duplicate["_id"],
                    old_value={"report_count": duplicate.get("report_count", 1)},
                    new_value={"report_count": fields["report_count"]})
        return ComplaintReceipt(ticket_id=duplicate["_id"], ticket_number=duplicate["ticket_number"],
                                merged=True, report_count=fields["report_count"], status=duplicate["status"])

    if incoming["assigned_department"]:
        await feed(db, FeedType.AUTO_ASSIGN,
                   f"Ticket #{incoming['ticket_number']} auto-routed to "
                   f"{department_label(incoming['assigned_department'])}", incoming["_id"])
    await audit(db, request, citizen, "complaint_received", "ticket", incoming["_id"],
                new_value={"ticket_number": incoming["ticket_number"], "category": incoming["category"],
                           "priority": incoming["priority"]})
    return ComplaintReceipt(ticket_id=incoming["_id"], ticket_number=incoming["ticket_number"],
                            merged=False, report_count=1, status=incoming["status"])

@app.post("/api/verify-complaint", response_model=VerifyComplaintResponse)
@limiter.limit(RATE_LIMITS["citizen_intake"])
async def verify_complaint(request: Request, req: VerifyComplaintRequest):
    if not (req.location and req.description and req.category):
        raise HTTPException(status_code=400, detail="Missing required fields: location, description, or category.")
    result = await ai.verify_complaint(req.location, req.description, req.category)
    return VerifyComplaintResponse(**result)

@app.post("/api/analyze-confirmation", response_model=ConfirmationResponse)
@limiter.limit(RATE_LIMITS["citizen_intake"])
async def analyze_confirmation(request: Request, req: ConfirmationRequest):
    if not req.user_response.strip():
        raise HTTPException(status_code=400, detail="user_response is required")
    result = await ai.analyze_confirmation(req.user_response, req.current_complaint)
    return ConfirmationResponse(**result)

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
