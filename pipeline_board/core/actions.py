from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from pipeline_board.core.permissions import resolve_capabilities
from pipeline_board.core.roles import (
    ACKNOWLEDGMENT_CHAIN,
    Role,
    normalize_role,
    previous_acknowledgment_tier,
)
from pipeline_board.core.stage_machine import MARKETING_DEPARTMENTS, Department, normalize_department

ACKNOWLEDGED = "Acknowledged"
INITIAL_CALL_DONE = "Initial Call Done"
RESUME_COMPLETED = "Resume Completed"
ASSIGN_SENIOR_RECRUITER = "AssignSeniorRecruiter"
ASSIGN_RECRUITER = "AssignRecruiter"

NAMED_ACTIONS: tuple[str, ...] = (
    ACKNOWLEDGED,
    INITIAL_CALL_DONE,
    RESUME_COMPLETED,
    ASSIGN_SENIOR_RECRUITER,
    ASSIGN_RECRUITER,
)

# Assignments can be repeated (reassignment); every other action completes once.
REPEATABLE_ACTIONS = frozenset({ASSIGN_SENIOR_RECRUITER, ASSIGN_RECRUITER})


@dataclass(frozen=True)
class ActionKey:
    """Structured form of a completed-action string.

    The backend stores completed actions as plain strings. Acknowledgments are
    scoped by role and department (``Acknowledged-Recruiter-Marketing``) and
    senior recruiter assignments carry the recruiter id
    (``AssignSeniorRecruiter-42``); everything else is the bare action name.
    """

    action_type: str
    role: Role | None = None
    department: Department | None = None
    subject_id: int | None = None

    def encode(self) -> str:
        if self.action_type == ACKNOWLEDGED and self.role is not None and self.department is not None:
            return f"{ACKNOWLEDGED}-{self.role.value}-{self.department.value}"
        if self.subject_id is not None:
            return f"{self.action_type}-{self.subject_id}"
        return self.action_type

    @classmethod
    def parse(cls, raw: str) -> "ActionKey":
        value = (raw or "").strip()
        if value.startswith(f"{ACKNOWLEDGED}-"):
            parts = value.split("-")
            if len(parts) >= 3:
                # Legacy payloads spell roles with hyphens ("marketing-manager").
                role = normalize_role("-".join(parts[1:-1]))
                department = normalize_department(parts[-1])
                if role is not None and department is not None:
                    return cls(ACKNOWLEDGED, role=role, department=department)
            return cls(value)

        head, sep, tail = value.rpartition("-")
        if sep and head == ASSIGN_SENIOR_RECRUITER and tail.isdigit():
            return cls(ASSIGN_SENIOR_RECRUITER, subject_id=int(tail))
        return cls(value)

    def __str__(self) -> str:
        return self.encode()


def acknowledgment(role: Role, department: Department) -> ActionKey:
    return ActionKey(ACKNOWLEDGED, role=role, department=department)


def completed_keys(completed_actions: Iterable[str]) -> frozenset[ActionKey]:
    return frozenset(ActionKey.parse(item) for item in completed_actions if item)


def key_for_action(action: str, role: Role | None, department: Department) -> ActionKey:
    if action == ACKNOWLEDGED:
        if role is None:
            raise ValueError("Acknowledgments require a role")
        return acknowledgment(role, department)
    return ActionKey.parse(action)


def required_actions(department: str | Department | None, role: Role | None) -> tuple[ActionKey, ...]:
    """Actions that must be completed before a client may leave `department`."""
    dept = normalize_department(department)
    if dept is None or role is None:
        return ()

    if dept == Department.RESUME:
        return (
            acknowledgment(role, Department.RESUME),
            ActionKey(INITIAL_CALL_DONE),
            ActionKey(RESUME_COMPLETED),
        )

    # ReMarketing reuses the Marketing sign-off keys.
    if dept in MARKETING_DEPARTMENTS and role in ACKNOWLEDGMENT_CHAIN:
        return (acknowledgment(role, Department.MARKETING),)

    return ()


def all_required_actions_completed(
    completed_actions: Iterable[str],
    department: str | Department | None,
    role: Role | None,
) -> bool:
    done = completed_keys(completed_actions)
    return all(key in done for key in required_actions(department, role))


def action_prerequisites(action: str, department: str | Department | None, role: Role | None) -> tuple[ActionKey, ...]:
    dept = normalize_department(department)
    if dept is None:
        return ()

    if dept == Department.RESUME and role is not None:
        if action == INITIAL_CALL_DONE:
            return (acknowledgment(role, Department.RESUME),)
        if action == RESUME_COMPLETED:
            return (ActionKey(INITIAL_CALL_DONE),)

    if dept == Department.MARKETING and action == ACKNOWLEDGED:
        tier = previous_acknowledgment_tier(role)
        if tier is not None:
            return (acknowledgment(tier, dept),)

    if dept in MARKETING_DEPARTMENTS and action == ASSIGN_SENIOR_RECRUITER:
        return (acknowledgment(Role.MARKETING_MANAGER, dept),)

    return ()


def assigned_senior_recruiter_id(completed_actions: Iterable[str]) -> int | None:
    found: int | None = None
    for key in (ActionKey.parse(item) for item in completed_actions if item):
        if key.action_type == ASSIGN_SENIOR_RECRUITER and key.subject_id is not None:
            found = key.subject_id
    return found


def has_senior_recruiter_assigned(completed_actions: Iterable[str]) -> bool:
    return assigned_senior_recruiter_id(completed_actions) is not None


def is_action_completed(
    completed_actions: Iterable[str],
    action: str,
    department: str | Department | None,
    role: Role | None,
) -> bool:
    dept = normalize_department(department)
    if dept is None or (action == ACKNOWLEDGED and role is None):
        return False
    return key_for_action(action, role, dept) in completed_keys(completed_actions)


def is_action_disabled(
    completed_actions: Iterable[str],
    action: str,
    department: str | Department | None,
    role: Role | None,
) -> bool:
    dept = normalize_department(department)
    if dept is None:
        return True
    if action == ACKNOWLEDGED and role is None:
        return True

    completed = list(completed_actions)
    done = completed_keys(completed)

    if action not in REPEATABLE_ACTIONS and key_for_action(action, role, dept) in done:
        return True

    if action == ASSIGN_RECRUITER:
        return not has_senior_recruiter_assigned(completed)

    return any(prerequisite not in done for prerequisite in action_prerequisites(action, dept, role))


def available_actions(role: Role | None, department: str | Department | None) -> tuple[str, ...]:
    """Named actions offered to `role` on a client card in `department`."""
    dept = normalize_department(department)
    if dept is None or role is None:
        return ()
    capabilities = resolve_capabilities(role, dept)
    if not capabilities.can_act:
        return ()

    if dept == Department.RESUME:
        return (ACKNOWLEDGED, INITIAL_CALL_DONE, RESUME_COMPLETED)

    if dept in MARKETING_DEPARTMENTS:
        actions: list[str] = [ACKNOWLEDGED]
        if capabilities.can_assign_senior_recruiter:
            actions.append(ASSIGN_SENIOR_RECRUITER)
        if capabilities.can_assign_recruiter:
            actions.append(ASSIGN_RECRUITER)
        return tuple(actions)

    return ()
