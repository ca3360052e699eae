from __future__ import annotations

from shared.errors import Forbidden

ROLES = ("member", "admin", "superadmin", "sysadmin")


def normalize_role(raw_role: str | None) -> str:
    role = str(raw_role or "").strip().lower()
    if role in {"owner"}:
        return "admin"
    if role in ROLES:
        return role
    return "member"


def is_tenant_admin(role: str) -> bool:
    return normalize_role(role) in {"admin", "superadmin", "sysadmin"}


def can_create_company(role: str) -> bool:
    return normalize_role(role) in {"sysadmin", "superadmin"}


def can_list_all_companies(role: str) -> bool:
    return normalize_role(role) == "superadmin"


def can_list_companies(role: str) -> bool:
    return normalize_role(role) in {"admin", "superadmin"}


def can_manage_tax_brackets(role: str) -> bool:
    return is_tenant_admin(role)


def require(allowed: bool, message: str = "Insufficient permissions") -> None:
    if not allowed:
        raise Forbidden(message)
