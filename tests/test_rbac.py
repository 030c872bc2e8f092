"""Role matrix, ticket-level access and department routing."""

import pytest

from civic.departments import (department_for_category, department_from_label, department_label,
                               dispatch_department)
from civic.rbac import ROLE_PERMISSIONS, can_access_ticket, has_permission, ticket_scope

TICKET = {"location": {"ward": "Ward 4 - Central"}, "assigned_department": "roads_infrastructure"}


# ═══════════════════════════════════════════════════════════════════════════════
# PERMISSIONS
# ═══════════════════════════════════════════════════════════════════════════════

class TestPermissions:
    def test_super_admin_has_everything(self):
        for perm in ("read", "write", "delete", "assign", "admin", "audit", "ai_assess"):
            assert has_permission("super_admin", perm)

    def test_dispatcher(self):
        assert has_permission("dispatcher", "assign")
        assert has_permission("dispatcher", "ai_assess")
        assert not has_permission("dispatcher", "admin")
        assert not has_permission("dispatcher", "delete")

    def test_analyst_read_only(self):
        assert ROLE_PERMISSIONS["analyst"] == frozenset({"read"})
        assert not has_permission("analyst", "write")

    def test_department_hq(self):
        assert has_permission("department_hq", "read_department")
        assert not has_permission("department_hq", "read")

    @pytest.mark.parametrize("role", [None, "", "citizen"])
    def test_unknown_role_has_nothing(self, role):
        assert not has_permission(role, "read")


class TestTicketAccess:
    def test_full_access_roles(self):
        for role in ("super_admin", "dispatcher"):
            assert can_access_ticket({"role": role}, TICKET) == (True, True)

    def test_analyst(self):
        assert can_access_ticket({"role": "analyst"}, TICKET) == (True, False)

    def test_ward_officer_own_ward(self):
        user = {"role": "ward_officer", "ward_assignment": "Ward 4 - Central"}
        assert can_access_ticket(user, TICKET) == (True, True)

    def test_ward_officer_other_ward(self):
        user = {"role": "ward_officer", "ward_assignment": "Ward 7 - Market District"}
        assert can_access_ticket(user, TICKET) == (True, False)

    def test_ward_officer_without_assignment(self):
        user = {"role": "ward_officer"}
        assert can_access_ticket(user, {"location": {}}) == (True, False)

    def test_department_hq_own_department(self):
        user = {"role": "department_hq", "department": "roads_infrastructure"}
        assert can_access_ticket(user, TICKET) == (True, True)

    def test_department_hq_other_department(self):
        user = {"role": "department_hq", "department": "water_supply"}
        assert can_access_ticket(user, TICKET) == (False, False)

    def test_department_hq_unrouted_ticket(self):
        user = {"role": "department_hq", "department": "water_supply"}
        assert can_access_ticket(user, {"assigned_department": None}) == (False, False)

    def test_no_role(self):
        assert can_access_ticket({}, TICKET) == (False, False)
        assert can_access_ticket({"role": "citizen"}, TICKET) == (False, False)


class TestTicketScope:
    def test_department_hq_is_filtered(self):
        assert ticket_scope({"role": "department_hq", "department": "drainage"}) == {
            "assigned_department": "drainage"}

    def test_department_hq_without_department_matches_nothing(self):
        assert ticket_scope({"role": "department_hq"}) == {"assigned_department": "__none__"}

    def test_other_roles_unfiltered(self):
        assert ticket_scope({"role": "analyst"}) == {}

    def test_unknown_role_matches_nothing(self):
        assert ticket_scope({"role": "citizen"}) == {"_id": "__none__"}


# ═══════════════════════════════════════════════════════════════════════════════
# DEPARTMENT ROUTING
# ═══════════════════════════════════════════════════════════════════════════════

class TestDepartments:
    @pytest.mark.parametrize("category,department", [
        ("Pothole", "roads_infrastructure"), ("Road Issues", "roads_infrastructure"),
        ("Garbage Pile", "sanitation"), ("Healthcare", "sanitation"),
        ("Street Light", "electrical"), ("Tree Fall", "parks_gardens"),
        ("Water Leak", "water_supply"), ("Drainage Block", "drainage"),
    ])
    def test_category_mapping(self, category, department):
        assert department_for_category(category) == department

    def test_falls_back_to_type(self):
        assert department_for_category("Other", "Street Light") == "electrical"

    def test_unmapped_returns_none(self):
        assert department_for_category("Noise Complaint", "Other") is None

    def test_dispatch_prefers_assigned_department(self):
        assert dispatch_department({"assigned_department": "drainage", "category": "Pothole"}) == "drainage"

    def test_dispatch_uses_category(self):
        assert dispatch_department({"category": "Water Leak"}) == "water_supply"

    def test_dispatch_fallback_is_sanitation(self):
        assert dispatch_department({"category": "Noise Complaint", "type": "Other"}) == "sanitation"

    def test_labels_round_trip(self):
        assert department_label("parks_gardens") == "Parks & Gardens"
        assert department_from_label("Parks & Gardens") == "parks_gardens"
        assert department_from_label("Unknown") is None
        assert department_label(None) is None
