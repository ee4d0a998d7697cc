from __future__ import annotations

from dataclasses import dataclass

from pipeline_board.core.roles import Role
from pipeline_board.core.stage_machine import Department


@dataclass(frozen=True)
class PipelinePermissions:
    perform_actions: bool = False
    move_to_resume: bool = False
    move_to_marketing: bool = False
    move_to_completed: bool = False
    move_to_backed_out: bool = False
    move_to_remarketing: bool = False
    move_to_on_hold: bool = False
    assign_recruiter: bool = False


DEFAULT_PERMISSIONS = PipelinePermissions()

PERMISSIONS: dict[Role, PipelinePermissions] = {
    Role.ADMIN: PipelinePermissions(
        perform_actions=True,
        move_to_resume=True,
        move_to_marketing=True,
        move_to_completed=True,
        move_to_backed_out=True,
        move_to_remarketing=True,
        move_to_on_hold=True,
        assign_recruiter=True,
    ),
    Role.SALES_EXECUTIVE: PipelinePermissions(
        perform_actions=True,
        move_to_resume=True,
        move_to_backed_out=True,
        move_to_on_hold=True,
    ),
    Role.RESUME_WRITER: PipelinePermissions(
        perform_actions=True,
        move_to_marketing=True,
        move_to_backed_out=True,
        move_to_on_hold=True,
    ),
    Role.RECRUITER: PipelinePermissions(
        perform_actions=True,
        move_to_completed=True,
        move_to_backed_out=True,
        move_to_on_hold=True,
        assign_recruiter=True,
    ),
    Role.SENIOR_RECRUITER: PipelinePermissions(
        perform_actions=True,
        move_to_completed=True,
        move_to_backed_out=True,
        move_to_on_hold=True,
        assign_recruiter=True,
    ),
    Role.MARKETING_MANAGER: PipelinePermissions(
        perform_actions=True,
        move_to_completed=True,
        move_to_backed_out=True,
        move_to_remarketing=True,
        move_to_on_hold=True,
        assign_recruiter=True,
    ),
}

# Departments in which each role may act on a client card.
_ACTIONABLE_DEPARTMENTS: dict[Role, frozenset[Department]] = {
    Role.ADMIN: frozenset(Department),
    Role.SALES_EXECUTIVE: frozenset({Department.SALES}),
    Role.RESUME_WRITER: frozenset({Department.RESUME}),
    Role.RECRUITER: frozenset({Department.MARKETING, Department.REMARKETING}),
    Role.SENIOR_RECRUITER: frozenset({Department.MARKETING, Department.REMARKETING}),
    Role.MARKETING_MANAGER: frozenset(
        {
            Department.MARKETING,
            Department.COMPLETED,
            Department.ON_HOLD,
            Department.BACKED_OUT,
            Department.REMARKETING,
        }
    ),
}

# Same as above minus the Backed Out column for the Marketing Manager.
_BACK_OUT_DEPARTMENTS: dict[Role, frozenset[Department]] = {
    **_ACTIONABLE_DEPARTMENTS,
    Role.MARKETING_MANAGER: frozenset(
        {Department.MARKETING, Department.COMPLETED, Department.ON_HOLD, Department.REMARKETING}
    ),
}


def get_permissions(role: Role | None) -> PipelinePermissions:
    if role is None:
        return DEFAULT_PERMISSIONS
    return PERMISSIONS.get(role, DEFAULT_PERMISSIONS)


def can_move_to(role: Role | None, target: Department) -> bool:
    """Per-target move flag. Sales has no flag of its own, so it only needs `perform_actions`."""
    perms = get_permissions(role)
    return {
        Department.SALES: perms.perform_actions,
        Department.RESUME: perms.move_to_resume,
        Department.MARKETING: perms.move_to_marketing,
        Department.COMPLETED: perms.move_to_completed,
        Department.BACKED_OUT: perms.move_to_backed_out,
        Department.REMARKETING: perms.move_to_remarketing,
        Department.ON_HOLD: perms.move_to_on_hold,
    }.get(target, False)


@dataclass(frozen=True)
class ClientCapabilities:
    can_act: bool
    can_move_to_backed_out: bool
    can_assign_senior_recruiter: bool
    can_assign_recruiter: bool
    is_assigned_to_user: bool


def resolve_capabilities(
    role: Role | None,
    department: Department,
    *,
    user_id: int | None = None,
    assigned_sales_person_id: int | None = None,
    recruiter_id: int | None = None,
) -> ClientCapabilities:
    perms = get_permissions(role)
    actionable = role is not None and department in _ACTIONABLE_DEPARTMENTS.get(role, frozenset())
    back_out = role is not None and department in _BACK_OUT_DEPARTMENTS.get(role, frozenset())
    in_marketing = department in (Department.MARKETING, Department.REMARKETING)
    assigned = user_id is not None and user_id in (assigned_sales_person_id, recruiter_id)
    return ClientCapabilities(
        can_act=actionable and perms.perform_actions,
        can_move_to_backed_out=back_out and perms.move_to_backed_out,
        can_assign_senior_recruiter=(
            in_marketing and role in (Role.MARKETING_MANAGER, Role.ADMIN) and perms.assign_recruiter
        ),
        can_assign_recruiter=in_marketing and role == Role.SENIOR_RECRUITER and perms.assign_recruiter,
        is_assigned_to_user=assigned,
    )
