"""
Central constants: roles, the permission catalog, and route gating prefixes.
"""
from __future__ import annotations

ROLE_ADMIN = "admin"
ROLE_PROCESSOR = "processor"
ROLES = (ROLE_ADMIN, ROLE_PROCESSOR)

ROLE_NAMES = {
    ROLE_ADMIN: "Administrator",
    ROLE_PROCESSOR: "Loan Processor",
}

# (key, display name, roles holding it)
PERMISSIONS: tuple[tuple[str, str, tuple[str, ...]], ...] = (
    ("applications.view", "Applications: view", ROLES),
    ("applications.create", "Applications: create drafts", ROLES),
    ("applications.edit", "Applications: edit drafts", ROLES),
    ("applications.delete", "Applications: delete drafts", ROLES),
    ("applications.review", "Applications: review/approve/reject", (ROLE_ADMIN,)),
    ("loans.manage", "Loans: disburse/close", (ROLE_ADMIN,)),
    ("receipts.manage", "Receipts: issue/void", (ROLE_ADMIN,)),
    ("users.manage", "Users: roles and activation", (ROLE_ADMIN,)),
    ("audit.view", "Audit log: view", (ROLE_ADMIN,)),
    ("admin.view", "Admin: view panel", (ROLE_ADMIN,)),
)

# Anonymous requests under these prefixes are sent to login.
PROTECTED_PREFIXES = ("/dashboard", "/admin", "/applications", "/locations")

# Authenticated users visiting these are sent to the dashboard.
PUBLIC_AUTH_PATHS = ("/auth/login", "/auth/register", "/auth/reset-password")

UNGUARDED_PREFIXES = ("/static/", "/health", "/healthz")
