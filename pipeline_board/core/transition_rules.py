from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from pipeline_board.core.actions import (
    ASSIGN_RECRUITER,
    ASSIGN_SENIOR_RECRUITER,
    INITIAL_CALL_DONE,
    NAMED_ACTIONS,
    RESUME_COMPLETED,
    ActionKey,
    all_required_actions_completed,
    available_actions,
    is_action_completed,
    is_action_disabled,
    key_for_action,
)
from pipeline_board.core.permissions import can_move_to, resolve_capabilities
from pipeline_board.core.roles import Role, is_override_role
from pipeline_board.core.stage_machine import Department, graph_destinations, normalize_department
from pipeline_board.core.uploads import Attachment, AttachmentKind


class TransitionValidationError(ValueError):
    pass


class ActionValidationError(ValueError):
    pass


class PermissionDeniedError(Exception):
    pass


@dataclass(frozen=True)
class TransitionRule:
    """Fields a stage transition must carry.

    `None` in `target`, `sources` or `roles` matches anything. Rules are
    checked in table order and the first match wins.
    """

    target: Department | None = None
    sources: frozenset[Department] | None = None
    roles: frozenset[Role] | None = None
    attachments: tuple[AttachmentKind, ...] = ()
    requires_notes: bool = False
    requires_reason: bool = False

    def matches(self, source: Department, target: Department, role: Role | None) -> bool:
        if self.target is not None and self.target != target:
            return False
        if self.sources is not None and source not in self.sources:
            return False
        if self.roles is not None and role not in self.roles:
            return False
        return True


NO_REQUIREMENTS = TransitionRule()

TRANSITION_RULES: tuple[TransitionRule, ...] = (
    TransitionRule(
        target=Department.COMPLETED,
        attachments=(AttachmentKind.OFFER_LETTER,),
        requires_notes=True,
    ),
    TransitionRule(
        target=Department.BACKED_OUT,
        requires_notes=True,
        requires_reason=True,
    ),
    TransitionRule(
        target=Department.RESUME,
        roles=frozenset({Role.SALES_EXECUTIVE, Role.ADMIN}),
        attachments=(AttachmentKind.RESUME,),
    ),
    TransitionRule(
        target=Department.MARKETING,
        roles=frozenset({Role.RESUME_WRITER, Role.ADMIN}),
        attachments=(AttachmentKind.COVER_LETTER, AttachmentKind.UPDATED_RESUME),
    ),
    TransitionRule(
        target=Department.ON_HOLD,
        sources=frozenset({Department.SALES, Department.RESUME, Department.MARKETING, Department.REMARKETING}),
        requires_notes=True,
    ),
    TransitionRule(
        target=Department.REMARKETING,
        sources=frozenset({Department.COMPLETED, Department.ON_HOLD, Department.BACKED_OUT}),
        requires_notes=True,
    ),
    TransitionRule(
        target=Department.MARKETING,
        sources=frozenset({Department.ON_HOLD}),
        requires_notes=True,
    ),
    TransitionRule(
        roles=frozenset({Role.ADMIN}),
        requires_notes=True,
    ),
)


@dataclass(frozen=True)
class ActionRule:
    requires_notes: bool = False
    requires_file: bool = False
    requires_recruiter: bool = False


ACTION_RULES: dict[str, ActionRule] = {
    INITIAL_CALL_DONE: ActionRule(requires_notes=True),
    RESUME_COMPLETED: ActionRule(requires_file=True),
    ASSIGN_SENIOR_RECRUITER: ActionRule(requires_recruiter=True),
    ASSIGN_RECRUITER: ActionRule(requires_recruiter=True),
}


def transition_rule(source: Department, target: Department, role: Role | None) -> TransitionRule:
    for rule in TRANSITION_RULES:
        if rule.matches(source, target, role):
            return rule
    return NO_REQUIREMENTS


def allowed_destinations(
    current: str | Department | None,
    role: Role | None,
    completed_actions: Iterable[str],
) -> frozenset[Department]:
    """Departments `role` may move a client to from `current`.

    Only roles that can act on the source column get any moves, and each
    target must carry the role's move flag. Admin and Marketing_Manager skip
    the required-action gate; every other role gets nothing until all of the
    department's required actions are recorded against the client.
    """
    department = normalize_department(current)
    targets = graph_destinations(department, role)
    if not targets or not resolve_capabilities(role, department).can_act:
        return frozenset()
    targets = frozenset(target for target in targets if can_move_to(role, target))
    if not targets or is_override_role(role):
        return targets
    if not all_required_actions_completed(completed_actions, current, role):
        return frozenset()
    return targets


def _is_blank(value: str | None) -> bool:
    return not (value or "").strip()


def validate_transition(
    *,
    source: str | Department | None,
    target: str | Department | None,
    role: Role | None,
    completed_actions: Iterable[str],
    attachments: Mapping[AttachmentKind, Attachment] | None = None,
    notes: str | None = None,
    back_out_reason: str | None = None,
) -> TransitionRule:
    source_dept = normalize_department(source)
    target_dept = normalize_department(target)
    if source_dept is None:
        raise TransitionValidationError("Client has no current department.")
    if target_dept is None:
        raise TransitionValidationError(f"Unknown target department: {target!r}.")
    if source_dept == target_dept:
        raise TransitionValidationError(f"Client is already in {target_dept.label}.")

    if not resolve_capabilities(role, source_dept).can_act:
        raise PermissionDeniedError(f"Role is not allowed to move clients out of {source_dept.label}.")
    if not can_move_to(role, target_dept):
        raise PermissionDeniedError(f"Role is not allowed to move clients to {target_dept.label}.")
    if target_dept not in allowed_destinations(source_dept, role, completed_actions):
        raise PermissionDeniedError(f"Moving from {source_dept.label} to {target_dept.label} is not allowed.")

    rule = transition_rule(source_dept, target_dept, role)
    provided = {kind: item for kind, item in (attachments or {}).items() if item is not None and not item.is_empty}

    unexpected = sorted(kind.value for kind in provided if kind not in rule.attachments)
    if unexpected:
        raise TransitionValidationError(f"Unexpected attachment(s): {', '.join(unexpected)}.")
    missing = [kind.value for kind in rule.attachments if kind not in provided]
    if missing:
        raise TransitionValidationError(f"Missing required attachment(s): {', '.join(missing)}.")
    if rule.requires_reason and _is_blank(back_out_reason):
        raise TransitionValidationError("A back-out reason is required.")
    if rule.requires_notes and _is_blank(notes):
        raise TransitionValidationError(f"Notes are required to move a client to {target_dept.label}.")
    return rule


def validate_named_action(
    *,
    action: str,
    department: str | Department | None,
    role: Role | None,
    completed_actions: Iterable[str],
    notes: str | None = None,
    file: Attachment | None = None,
    recruiter_id: int | None = None,
) -> ActionKey:
    """Check a named action and return the key it will be recorded under."""
    if action not in NAMED_ACTIONS:
        raise ActionValidationError(f"Unknown action: {action!r}.")
    dept = normalize_department(department)
    if dept is None:
        raise ActionValidationError(f"Unknown department: {department!r}.")
    if action not in available_actions(role, dept):
        raise PermissionDeniedError(f"'{action}' is not available to this role in {dept.label}.")

    completed = list(completed_actions)
    if is_action_disabled(completed, action, dept, role):
        if is_action_completed(completed, action, dept, role):
            raise ActionValidationError(f"'{action}' has already been completed.")
        raise ActionValidationError(f"'{action}' is waiting on an earlier step.")

    rule = ACTION_RULES.get(action, ActionRule())
    if rule.requires_notes and _is_blank(notes):
        raise ActionValidationError(f"Notes are required for '{action}'.")
    if rule.requires_file and (file is None or file.is_empty):
        raise ActionValidationError(f"A file is required for '{action}'.")
    if rule.requires_recruiter and recruiter_id is None:
        raise ActionValidationError(f"A recruiter is required for '{action}'.")

    if action == ASSIGN_SENIOR_RECRUITER:
        return ActionKey(ASSIGN_SENIOR_RECRUITER, subject_id=recruiter_id)
    return key_for_action(action, role, dept)
