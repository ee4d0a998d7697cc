from __future__ import annotations

from enum import Enum
from typing import Iterable

from pipeline_board.core.roles import Role, is_override_role


class Department(str, Enum):
    SALES = "Sales"
    RESUME = "Resume"
    MARKETING = "Marketing"
    COMPLETED = "Completed"
    BACKED_OUT = "BackedOut"
    REMARKETING = "ReMarketing"
    ON_HOLD = "OnHold"

    @property
    def label(self) -> str:
        return _LABELS.get(self, self.value)


# Board column order.
ALL_DEPARTMENTS: tuple[Department, ...] = (
    Department.SALES,
    Department.RESUME,
    Department.MARKETING,
    Department.COMPLETED,
    Department.BACKED_OUT,
    Department.REMARKETING,
    Department.ON_HOLD,
)

MARKETING_DEPARTMENTS: frozenset[Department] = frozenset({Department.MARKETING, Department.REMARKETING})

_LABELS = {
    Department.BACKED_OUT: "Backed Out",
    Department.REMARKETING: "ReMarketing",
    Department.ON_HOLD: "On Hold",
}

# Labels the backend has used for the same departments over time.
_ALIASES = {
    "sales": Department.SALES,
    "in_sales": Department.SALES,
    "resume": Department.RESUME,
    "resume_preparation": Department.RESUME,
    "marketing": Department.MARKETING,
    "completed": Department.COMPLETED,
    "placed": Department.COMPLETED,
    "backedout": Department.BACKED_OUT,
    "backed_out": Department.BACKED_OUT,
    "remarketing": Department.REMARKETING,
    "re_marketing": Department.REMARKETING,
    "onhold": Department.ON_HOLD,
    "on_hold": Department.ON_HOLD,
}


# Outbound moves per department for roles without override rights.
# A `None` role key means the move is open to every role.
STAGE_GRAPH: dict[Department, dict[Role | None, frozenset[Department]]] = {
    Department.SALES: {
        Role.SALES_EXECUTIVE: frozenset({Department.RESUME, Department.BACKED_OUT, Department.ON_HOLD}),
    },
    Department.RESUME: {
        Role.RESUME_WRITER: frozenset({Department.MARKETING, Department.BACKED_OUT, Department.ON_HOLD}),
    },
    Department.MARKETING: {
        Role.RECRUITER: frozenset({Department.COMPLETED, Department.BACKED_OUT, Department.ON_HOLD}),
        Role.SENIOR_RECRUITER: frozenset({Department.COMPLETED, Department.BACKED_OUT, Department.ON_HOLD}),
    },
    Department.COMPLETED: {
        None: frozenset({Department.REMARKETING}),
    },
    Department.BACKED_OUT: {
        None: frozenset({Department.REMARKETING}),
    },
    Department.REMARKETING: {
        Role.RECRUITER: frozenset({Department.COMPLETED, Department.BACKED_OUT, Department.ON_HOLD}),
        Role.SENIOR_RECRUITER: frozenset({Department.COMPLETED, Department.BACKED_OUT, Department.ON_HOLD}),
    },
    Department.ON_HOLD: {
        None: frozenset({Department.REMARKETING, Department.MARKETING, Department.BACKED_OUT}),
    },
}


def normalize_department(raw: str | Department | None) -> Department | None:
    if raw is None:
        return None
    if isinstance(raw, Department):
        return raw
    normalized = raw.strip().lower().replace("-", "_").replace(" ", "_")
    if not normalized:
        return None
    return _ALIASES.get(normalized)


def graph_destinations(current: str | Department | None, role: Role | None) -> frozenset[Department]:
    """Adjacency lookup only; required-action gating is applied by the caller."""
    department = normalize_department(current)
    if department is None:
        return frozenset()

    if is_override_role(role):
        return frozenset(d for d in ALL_DEPARTMENTS if d != department)

    edges = STAGE_GRAPH.get(department, {})
    targets = set(edges.get(None, frozenset()))
    if role is not None:
        targets |= edges.get(role, frozenset())
    targets.discard(department)
    return frozenset(targets)


def ordered(departments: Iterable[Department]) -> list[Department]:
    wanted = set(departments)
    return [d for d in ALL_DEPARTMENTS if d in wanted]
