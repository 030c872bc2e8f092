"""Role-based access control for portal staff.

``ROLE_PERMISSIONS`` is the single source of truth for what each role may
do. Ticket-level checks layer ward and department ownership on top of it.
"""

from typing import NamedTuple, Optional

from .models import Role

ROLE_PERMISSIONS = {
    Role.SUPER_ADMIN.value: frozenset({"read", "write", "delete", "assign", "admin", "audit", "ai_assess"}),
    Role.DISPATCHER.value: frozenset({"read", "write", "assign", "ai_assess"}),
    Role.WARD_OFFICER.value: frozenset({"read", "write_own_ward"}),
    Role.ANALYST.value: frozenset({"read"}),
    Role.DEPARTMENT_HQ.value: frozenset({"read_department", "write_department"}),
}

class TicketAccess(NamedTuple):
    can_read: bool
    can_write: bool


NO_ACCESS = TicketAccess(False, False)


def has_permission(role: Optional[str], permission: str) -> bool:
    if not role:
        return False
    return permission in ROLE_PERMISSIONS.get(role, ())


def can_access_ticket(user: dict, ticket: dict) -> TicketAccess:
    role = user.get("role")
    if not role:
        return NO_ACCESS

    if role in (Role.SUPER_ADMIN.value, Role.DISPATCHER.value):
        return TicketAccess(True, True)

    if role == Role.ANALYST.value:
        return TicketAccess(True, False)

    if role == Role.WARD_OFFICER.value:
        ward = (ticket.get("location") or {}).get("ward")
        own_ward = ward is not None and ward == user.get("ward_assignment")
        return TicketAccess(True, own_ward)

    if role == Role.DEPARTMENT_HQ.value:
        own_department = (ticket.get("assigned_department") is not None
                          and ticket.get("assigned_department") == user.get("department"))
        return TicketAccess(own_department, own_department)

    return NO_ACCESS


def ticket_scope(user: dict) -> dict:
    """Equality filter restricting which tickets a user may list."""
    if user.get("role") == Role.DEPARTMENT_HQ.value:
        # A department head without a department sees nothing
        return {"assigned_department": user.get("department") or "__none__"}
    if user.get("role") in ROLE_PERMISSIONS:
        return {}
    return {"_id": "__none__"}
