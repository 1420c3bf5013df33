"""Enumerated values shared by models, schemas and services."""
from __future__ import annotations

from typing import Dict, FrozenSet

# User roles
ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_PRODUCTION_MANAGER = "production_manager"
ROLE_SALES_MANAGER = "sales_manager"
ROLE_WAREHOUSE_MANAGER = "warehouse_manager"
ROLE_OPERATOR = "operator"
ROLE_SALES_REP = "sales_rep"
ROLE_USER = "user"

USER_ROLES = (
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_PRODUCTION_MANAGER,
    ROLE_SALES_MANAGER,
    ROLE_WAREHOUSE_MANAGER,
    ROLE_OPERATOR,
    ROLE_SALES_REP,
    ROLE_USER,
)

# Production order statuses
STATUS_PLANNED = "planned"
STATUS_RELEASED = "released"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

PRODUCTION_STATUSES = (
    STATUS_PLANNED,
    STATUS_RELEASED,
    STATUS_IN_PROGRESS,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
)
OPEN_STATUSES = (STATUS_PLANNED, STATUS_RELEASED, STATUS_IN_PROGRESS)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

# Forward moves follow the listed order one step at a time; cancelled is
# reachable from every open status and, like completed, is absorbing.
ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    STATUS_PLANNED: frozenset({STATUS_RELEASED, STATUS_CANCELLED}),
    STATUS_RELEASED: frozenset({STATUS_IN_PROGRESS, STATUS_CANCELLED}),
    STATUS_IN_PROGRESS: frozenset({STATUS_COMPLETED, STATUS_CANCELLED}),
    STATUS_COMPLETED: frozenset(),
    STATUS_CANCELLED: frozenset(),
}

PRIORITIES = ("low", "medium", "high", "urgent")

# Inventory
TXN_RECEIPT = "receipt"
TXN_ISSUE = "issue"
TXN_TRANSFER = "transfer"
TXN_ADJUSTMENT = "adjustment"
TXN_RETURN = "return"

TRANSACTION_TYPES = (TXN_RECEIPT, TXN_ISSUE, TXN_TRANSFER, TXN_ADJUSTMENT, TXN_RETURN)
# Types whose quantity is a positive magnitude; the sign comes from the type.
INBOUND_TYPES = (TXN_RECEIPT, TXN_RETURN)
OUTBOUND_TYPES = (TXN_ISSUE,)
# Types whose quantity is already a signed delta.
SIGNED_TYPES = (TXN_TRANSFER, TXN_ADJUSTMENT)

REF_PRODUCTION_ORDER = "production_order"
REF_MANUAL = "manual"
REFERENCE_TYPES = (REF_PRODUCTION_ORDER, "sales_order", "purchase_order", REF_MANUAL, "transfer")

ITEM_TYPES = ("raw_material", "finished_good", "work_in_progress", "component", "consumable")
PRODUCT_TYPES = ("finished_good", "raw_material", "work_in_progress", "component")


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())
