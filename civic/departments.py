# Department labels and category routing

from typing import Optional

from .models import Department

DEPARTMENT_LABELS = {
    Department.ROADS_INFRASTRUCTURE.value: "Roads & Infrastructure",
    Department.SANITATION.value: "Sanitation",
    Department.ELECTRICAL.value: "Electrical",
    Department.PARKS_GARDENS.value: "Parks & Gardens",
    Department.WATER_SUPPLY.value: "Water Supply",
    Department.DRAINAGE.value: "Drainage",
}

CATEGORY_TO_DEPARTMENT = {
    "Roads & Infrastructure": Department.ROADS_INFRASTRUCTURE.value,
    "Road Issues": Department.ROADS_INFRASTRUCTURE.value,
    "Pothole": Department.ROADS_INFRASTRUCTURE.value,
    "Sanitation": Department.SANITATION.value,
    "Garbage Pile": Department.SANITATION.value,
    "Healthcare": Department.SANITATION.value,
    "Electrical": Department.ELECTRICAL.value,
    "Street Light": Department.ELECTRICAL.value,
    "Parks & Gardens": Department.PARKS_GARDENS.value,
    "Tree Fall": Department.PARKS_GARDENS.value,
    "Water Supply": Department.WATER_SUPPLY.value,
    "Water Leak": Department.WATER_SUPPLY.value,
    "Drainage": Department.DRAINAGE.value,
    "Drainage Block": Department.DRAINAGE.value,
}

# Used when a ticket is dispatched and nothing else identifies its department
FALLBACK_DEPARTMENT = Department.SANITATION.value

_LABEL_TO_DEPARTMENT = {label: key for key, label in DEPARTMENT_LABELS.items()}


def department_label(department: Optional[str]) -> Optional[str]:
    if department is None:
        return None
    return DEPARTMENT_LABELS.get(department)


def department_from_label(label: Optional[str]) -> Optional[str]:
    if label is None:
        return None
    return _LABEL_TO_DEPARTMENT.get(label.strip())


def department_for_category(category: Optional[str], ticket_type: Optional[str] = None) -> Optional[str]:
    """Map a complaint category (or, failing that, its type) to a department key."""
    for key in (category, ticket_type):
        if key and key.strip() in CATEGORY_TO_DEPARTMENT:
            return CATEGORY_TO_DEPARTMENT[key.strip()]
    return None


def dispatch_department(ticket: dict) -> str:
    return (ticket.get("assigned_department")
            or department_for_category(ticket.get("category"), ticket.get("type"))
            or FALLBACK_DEPARTMENT)
