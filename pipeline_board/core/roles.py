from __future__ import annotations

from enum import Enum
from typing import Iterable


class Role(str, Enum):
    ADMIN = "Admin"
    SALES_EXECUTIVE = "Sales_Executive"
    RESUME_WRITER = "Resume_Writer"
    RECRUITER = "Recruiter"
    SENIOR_RECRUITER = "Senior_Recruiter"
    MARKETING_MANAGER = "Marketing_Manager"


# Roles that may move a client to any other department without completing
# the department's required actions first.
OVERRIDE_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.MARKETING_MANAGER})

# Marketing acknowledgment chain, highest tier first.
ACKNOWLEDGMENT_CHAIN: tuple[Role, ...] = (
    Role.MARKETING_MANAGER,
    Role.SENIOR_RECRUITER,
    Role.RECRUITER,
)

_ROLE_LOOKUP = {role.value.lower(): role for role in Role}


def normalize_role(raw: str | Role | None) -> Role | None:
    if raw is None:
        return None
    if isinstance(raw, Role):
        return raw
    normalized = raw.strip().lower().replace("-", "_").replace(" ", "_")
    if not normalized:
        return None
    return _ROLE_LOOKUP.get(normalized)


def is_override_role(role: Role | None) -> bool:
    return role in OVERRIDE_ROLES


def has_required_role(user_role: Role | None, required: Iterable[Role]) -> bool:
    if user_role is None:
        return False
    return user_role in {Role(r) for r in required}


def previous_acknowledgment_tier(role: Role | None) -> Role | None:
    """Role whose acknowledgment must exist before `role` may acknowledge."""
    if role not in ACKNOWLEDGMENT_CHAIN:
        return None
    index = ACKNOWLEDGMENT_CHAIN.index(role)
    if index == 0:
        return None
    return ACKNOWLEDGMENT_CHAIN[index - 1]
