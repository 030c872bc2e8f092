# Enums and request/response models shared by the API and seed data

from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Department(str, Enum):
    ROADS_INFRASTRUCTURE = "roads_infrastructure"
    SANITATION = "sanitation"
    ELECTRICAL = "electrical"
    PARKS_GARDENS = "parks_gardens"
    WATER_SUPPLY = "water_supply"
    DRAINAGE = "drainage"

class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class TicketStatus(str, Enum):
    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    ON_SITE = "on_site"
    RESOLVED = "resolved"
    CLOSED = "closed"

class SLAStage(str, Enum):
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"

class TeamStatus(str, Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"

class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    DISPATCHER = "dispatcher"
    WARD_OFFICER = "ward_officer"
    ANALYST = "analyst"
    DEPARTMENT_HQ = "department_hq"

class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

class FeedType(str, Enum):
    AUTO_ASSIGN = "auto_assign"
    DUPLICATE_FLAGGED = "duplicate_flagged"
    SLA_WARNING = "sla_warning"
    ESCALATION = "escalation"
    RESOLUTION = "resolution"

class Intent(str, Enum):
    CONFIRM = "CONFIRM"
    CANCEL = "CANCEL"
    UPDATE = "UPDATE"

TERMINAL_STATUSES = {TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value}

# ---------------------------------------------------------------------------
# Shared pieces
# ---------------------------------------------------------------------------
class TicketLocation(BaseModel):
    ward: str = Field(..., min_length=1, max_length=100)
    address: str = Field(..., min_length=1, max_length=500)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

class AIAssessment(BaseModel):
    severity: str
    reason: str
    suggested_department: str
    suggested_skill: str
    estimated_time: str

class ActivityLogEntry(BaseModel):
    id: str
    timestamp: datetime
    action: str
    actor: str
    actor_role: str
    details: Optional[str] = None

class InternalNote(BaseModel):
    id: str
    timestamp: datetime
    author: str
    content: str

# ---------------------------------------------------------------------------
# Auth / portal users
# ---------------------------------------------------------------------------
class LoginRequest(BaseModel):
    email: str = Field(..., max_length=254)
    password: str = Field(..., max_length=72)

class PortalUserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=8, max_length=72)
    role: Role
    department: Optional[Department] = None
    ward_assignment: Optional[str] = Field(None, max_length=100)

class PortalUserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: Role
    department: Optional[Department] = None
    ward_assignment: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: PortalUserResponse

# ---------------------------------------------------------------------------
# Tickets
# ---------------------------------------------------------------------------
class TicketCreate(BaseModel):
    type: str = Field(..., min_length=1, max_length=100)
    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=5000)
    priority: Priority = Priority.MEDIUM
    priority_score: int = Field(50, ge=0, le=100)
    location: TicketLocation
    citizen_name: Optional[str] = Field(None, max_length=100)
    citizen_phone: Optional[str] = Field(None, max_length=20)
    image_url: Optional[str] = Field(None, max_length=2048)

    @field_validator("image_url")
    @classmethod
    def validate_image_url(cls, v):
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("image_url must be an http(s) URL")
        return v

class TicketUpdate(BaseModel):
    status: Optional[TicketStatus] = None
    priority: Optional[Priority] = None
    priority_score: Optional[int] = Field(None, ge=0, le=100)
    assigned_team: Optional[str] = Field(None, max_length=100)
    assigned_team_id: Optional[str] = Field(None, max_length=100)
    assigned_department: Optional[Department] = None
    ai_assessment: Optional[AIAssessment] = None

class NoteCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)

class DispatchRequest(BaseModel):
    team_id: str = Field(..., min_length=1, max_length=100)

class TicketResponse(BaseModel):
    id: str
    ticket_number: int
    type: str
    category: str
    description: str
    status: TicketStatus
    priority: Priority
    priority_score: int
    location: TicketLocation
    report_count: int = 1
    sla_deadline: datetime
    sla_stage: SLAStage
    created_at: datetime
    updated_at: datetime
    assigned_team: Optional[str] = None
    assigned_team_id: Optional[str] = None
    assigned_department: Optional[Department] = None
    assigned_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    citizen_name: Optional[str] = None
    citizen_phone: Optional[str] = None
    image_url: Optional[str] = None
    ai_assessment: Optional[AIAssessment] = None
    source: str = "portal"
    activity_log: List[ActivityLogEntry] = Field(default_factory=list)
    internal_notes: List[InternalNote] = Field(default_factory=list)

class CitizenReport(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=5000)
    summary: Optional[str] = Field(None, max_length=500)
    location: str = Field(..., min_length=1, max_length=500)
    severity: Severity = Severity.MEDIUM
    image_url: Optional[str] = Field(None, max_length=2048)
    ai_verified: bool = False
    citizen_name: Optional[str] = Field(None, max_length=100)
    citizen_phone: Optional[str] = Field(None, max_length=20)
    # Browser geolocation, when the citizen shared it
    lat: Optional[float] = None
    lng: Optional[float] = None

class SweepResponse(BaseModel):
    checked: int
    changed: int
    at_risk: int
    breached: int

# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------
class Capacity(BaseModel):
    current: int = Field(0, ge=0, le=100)
    max: int = Field(..., ge=1, le=100)

class TeamMember(BaseModel):
    id: str
    name: str
    role: str
    phone: str

class GeoPoint(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    department: Department
    status: TeamStatus = TeamStatus.AVAILABLE
    shift_end: Optional[datetime] = None
    capacity: Capacity
    location: Optional[GeoPoint] = None
    members: List[TeamMember] = Field(default_factory=list)

class TeamUpdate(BaseModel):
    status: Optional[TeamStatus] = None
    current_task: Optional[str] = Field(None, max_length=500)
    current_task_location: Optional[str] = Field(None, max_length=500)
    capacity: Optional[Capacity] = None

class TeamResponse(BaseModel):
    id: str
    name: str
    department: str
    status: TeamStatus
    current_task: Optional[str] = None
    current_task_location: Optional[str] = None
    shift_end: Optional[datetime] = None
    capacity: Capacity
    location: Optional[GeoPoint] = None
    members: List[TeamMember] = Field(default_factory=list)

# ---------------------------------------------------------------------------
# Audit / feed / analytics
# ---------------------------------------------------------------------------
class AuditLogResponse(BaseModel):
    id: str
    timestamp: datetime
    user_id: str
    user_name: str
    action: str
    target_type: str
    target_id: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    ip_address: str

class AuditLogPage(BaseModel):
    logs: List[AuditLogResponse]
    meta: Dict[str, int]

class SystemFeedItem(BaseModel):
    id: str
    timestamp: datetime
    type: FeedType
    message: str
    ticket_id: Optional[str] = None

class Workforce(BaseModel):
    online: int
    total: int

class KPIResponse(BaseModel):
    critical_load: int
    sla_breaches: int
    active_workforce: Workforce
    avg_response_time: int
    avg_resolution_time: float
    sla_compliance_rate: float

class WardStats(BaseModel):
    ward_id: str
    ward_name: str
    total_issues: int
    resolved_issues: int
    avg_resolution_time: int
    sla_compliance_rate: float

# ---------------------------------------------------------------------------
# AI
# ---------------------------------------------------------------------------
class AssessmentRequest(BaseModel):
    ticket_id: str = Field(..., min_length=1, max_length=100)
    type: str = Field(..., min_length=1, max_length=100)
    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=5000)
    address: str = Field(..., min_length=1, max_length=500)

class VerifyComplaintRequest(BaseModel):
    location: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = Field(None, max_length=5000)
    category: Optional[str] = Field(None, max_length=100)

class VerifyComplaintResponse(BaseModel):
    is_valid: bool
    feedback: str
    severity: Optional[Severity] = None
    summary: Optional[str] = None

class ConfirmationRequest(BaseModel):
    user_response: str = Field(..., max_length=2000)
    current_complaint: Dict[str, Any] = Field(default_factory=dict)

class ConfirmationResponse(BaseModel):
    intent: Intent
    updated_severity: Optional[Severity] = None
    updated_summary: Optional[str] = None
    feedback: str

class AssessmentResponse(BaseModel):
    assessment: AIAssessment

class ComplaintReceipt(BaseModel):
    ticket_id: str
    ticket_number: int
    merged: bool
    report_count: int
    status: TicketStatus
