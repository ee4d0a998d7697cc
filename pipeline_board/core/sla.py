from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from pipeline_board.core.stage_machine import Department, normalize_department

SLA_ON_TRACK = "on-track"
SLA_WARNING = "warning"
SLA_OVERDUE = "overdue"
SLA_COMPLETED = "completed"

# Stages the SLA clock never runs in.
NON_SLA_DEPARTMENTS = frozenset({Department.COMPLETED, Department.BACKED_OUT, Department.ON_HOLD})


@dataclass(frozen=True)
class StageSla:
    department: Department
    max_days: float
    description: str
    # Days remaining at which the stage turns "warning".
    warning_threshold: float


STAGE_SLAS: dict[Department, StageSla] = {
    Department.SALES: StageSla(
        Department.SALES, 1, "Move candidate to resume within 1 business day", 0.5
    ),
    Department.RESUME: StageSla(
        Department.RESUME, 2, "Complete resume process within 2 business days", 1
    ),
    Department.MARKETING: StageSla(
        Department.MARKETING, 180, "Complete marketing process within 6 months", 30
    ),
    Department.REMARKETING: StageSla(
        Department.REMARKETING, 2, "Process remarketing candidates within 2 business days", 1
    ),
}


@dataclass(frozen=True)
class SlaStatus:
    status: str
    days_remaining: float
    days_overdue: float
    percentage_complete: float


_DONE = SlaStatus(status=SLA_COMPLETED, days_remaining=0, days_overdue=0, percentage_complete=100)


def get_stage_sla(department: str | Department | None) -> StageSla | None:
    dept = normalize_department(department)
    if dept is None:
        return None
    return STAGE_SLAS.get(dept)


def business_days_between(start: date | datetime, end: date | datetime) -> int:
    """Count Monday-Friday days from `start` to `end`, both inclusive."""
    current = start.date() if isinstance(start, datetime) else start
    last = end.date() if isinstance(end, datetime) else end
    days = 0
    while current <= last:
        if current.weekday() < 5:
            days += 1
        current += timedelta(days=1)
    return days


def sla_status(department: str | Department | None, days_in_stage: float, *, is_current_stage: bool = True) -> SlaStatus:
    dept = normalize_department(department)
    if dept is None or dept in NON_SLA_DEPARTMENTS or not is_current_stage:
        return _DONE

    policy = STAGE_SLAS.get(dept)
    if policy is None:
        return _DONE

    days_remaining = max(0, policy.max_days - days_in_stage)
    days_overdue = max(0, days_in_stage - policy.max_days)
    percentage = min(100.0, (days_in_stage / policy.max_days) * 100)

    if days_overdue > 0:
        status = SLA_OVERDUE
    elif days_remaining <= policy.warning_threshold:
        status = SLA_WARNING
    else:
        status = SLA_ON_TRACK

    return SlaStatus(
        status=status,
        days_remaining=days_remaining,
        days_overdue=days_overdue,
        percentage_complete=percentage,
    )
