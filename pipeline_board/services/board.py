from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator, Mapping

from pipeline_board.core.actions import (
    ACKNOWLEDGED,
    ASSIGN_RECRUITER,
    ASSIGN_SENIOR_RECRUITER,
    ActionKey,
    assigned_senior_recruiter_id,
    available_actions,
    has_senior_recruiter_assigned,
    is_action_completed,
    is_action_disabled,
    key_for_action,
)
from pipeline_board.core.permissions import resolve_capabilities
from pipeline_board.core.roles import Role
from pipeline_board.core.sla import business_days_between, get_stage_sla, sla_status
from pipeline_board.core.stage_machine import Department, normalize_department, ordered
from pipeline_board.core.transition_rules import (
    ActionValidationError,
    allowed_destinations,
    validate_named_action,
    validate_transition,
)
from pipeline_board.core.uploads import Attachment, AttachmentKind
from pipeline_board.schemas.board import (
    ActionStateOut,
    BoardColumnOut,
    BoardOut,
    CapabilitiesOut,
    ClientCardOut,
    SlaOut,
)
from pipeline_board.schemas.client import ClientDetails, PipelineClient
from pipeline_board.schemas.user import UserContext
from pipeline_board.services.backend_client import BackendError, PipelineBackendClient
from pipeline_board.services.roster import ClientRoster

logger = logging.getLogger("pipeline_board.board")


class BoardStatus(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"


class MutationResult(str, Enum):
    APPLIED = "applied"
    IGNORED = "ignored"
    FAILED = "failed"


class ClientNotFoundError(LookupError):
    pass


@dataclass
class TransitionDraft:
    """Dialog state for a stage move that is being submitted."""

    client_id: int
    target: Department
    notes: str = ""
    back_out_reason: str = ""
    attachments: dict[AttachmentKind, Attachment] = field(default_factory=dict)


class PipelineBoard:
    """One user's view of the pipeline.

    Mutations are serialised by a single Idle/Submitting flag: a mutation
    requested while another is in flight is dropped, not queued. Every
    accepted mutation is followed by a full roster refetch.
    """

    def __init__(self, backend: PipelineBackendClient, user: UserContext, *, search_min_length: int = 0) -> None:
        self.backend = backend
        self.user = user
        self.roster = ClientRoster(
            backend,
            user_id=user.user_id,
            role=user.role,
            search_min_length=search_min_length,
        )
        self.status = BoardStatus.IDLE
        self.error: str | None = None
        self.action_loading: dict[str, bool] = {}
        self.dropdown_loading: dict[str, bool] = {}
        self.draft: TransitionDraft | None = None
        self.selected_client: ClientDetails | None = None

    @property
    def role(self) -> Role | None:
        return self.user.role

    @property
    def performing_action(self) -> bool:
        return self.status == BoardStatus.SUBMITTING

    def clear_error(self) -> None:
        self.error = None

    def _client(self, client_id: int) -> PipelineClient:
        client = self.roster.get(client_id)
        if client is None:
            raise ClientNotFoundError(f"Client {client_id} not found")
        return client

    def _ignore_busy(self, operation: str, client_id: int | None) -> bool:
        if not self.performing_action:
            return False
        logger.info(
            "mutation_ignored_busy",
            extra={"operation": operation, "client_id": client_id, "user_id": self.user.user_id},
        )
        return True

    @contextmanager
    def _submitting(self, loading: dict[str, bool], key: str) -> Iterator[None]:
        loading[key] = True
        self.status = BoardStatus.SUBMITTING
        try:
            yield
        finally:
            loading[key] = False
            self.status = BoardStatus.IDLE

    async def _refetch(self, supervisor_id: int | None = None) -> None:
        try:
            await self.roster.refresh(supervisor_id)
        except BackendError as exc:
            self.error = exc.message

    async def load(self, *, force: bool = False) -> bool:
        if self.roster.loaded and not force:
            return True
        try:
            await self.roster.refresh()
        except BackendError as exc:
            self.error = exc.message
            return False
        return True

    def allowed_destinations(self, client_id: int) -> list[Department]:
        client = self._client(client_id)
        return self._destinations_for(client)

    def _destinations_for(self, client: PipelineClient) -> list[Department]:
        return ordered(allowed_destinations(client.department, self.role, client.completed_actions))

    async def request_transition(
        self,
        client_id: int,
        target: str | Department,
        *,
        attachments: Mapping[AttachmentKind, Attachment] | None = None,
        notes: str | None = None,
        back_out_reason: str | None = None,
    ) -> MutationResult:
        if self._ignore_busy("transition", client_id):
            return MutationResult.IGNORED

        client = self._client(client_id)
        validate_transition(
            source=client.department,
            target=target,
            role=self.role,
            completed_actions=client.completed_actions,
            attachments=attachments,
            notes=notes,
            back_out_reason=back_out_reason,
        )
        target_dept = normalize_department(target)
        self.draft = TransitionDraft(
            client_id=client_id,
            target=target_dept,
            notes=notes or "",
            back_out_reason=back_out_reason or "",
            attachments={
                kind: item for kind, item in (attachments or {}).items() if item is not None and not item.is_empty
            },
        )

        with self._submitting(self.action_loading, f"{client_id}-transition"):
            self.error = None
            try:
                await self.backend.update_client_stage(
                    client_id,
                    target_dept,
                    back_out_reason=self.draft.back_out_reason or None,
                    notes=self.draft.notes or None,
                    attachments=self.draft.attachments,
                )
            except BackendError as exc:
                self.error = exc.message
                return MutationResult.FAILED

            logger.info(
                "transition_submitted",
                extra={
                    "client_id": client_id,
                    "from_department": client.department.value,
                    "to_department": target_dept.value,
                    "user_id": self.user.user_id,
                },
            )
            self.draft = None
            await self._refetch()
        return MutationResult.APPLIED

    async def perform_named_action(
        self,
        client_id: int,
        action: str,
        *,
        department: str | Department | None = None,
        notes: str | None = None,
        file: Attachment | None = None,
        recruiter_id: int | None = None,
    ) -> MutationResult:
        if self._ignore_busy(action, client_id):
            return MutationResult.IGNORED

        client = self._client(client_id)
        dept = normalize_department(department) if department is not None else client.department
        if dept is not None and dept != client.department:
            raise ActionValidationError(f"Client is in {client.department.label}, not {dept.label}.")
        key = validate_named_action(
            action=action,
            department=dept,
            role=self.role,
            completed_actions=client.completed_actions,
            notes=notes,
            file=file,
            recruiter_id=recruiter_id,
        )

        if action in (ASSIGN_SENIOR_RECRUITER, ASSIGN_RECRUITER):
            loading, loading_key = self.dropdown_loading, f"{client_id}-{action}"
        else:
            role_name = self.role.value if self.role else ""
            loading, loading_key = self.action_loading, f"{client_id}-{action}-{role_name}"

        with self._submitting(loading, loading_key):
            self.error = None
            try:
                await self.backend.perform_client_action(
                    client_id,
                    key.encode(),
                    dept,
                    notes=notes or None,
                    file=file,
                    recruiter_id=recruiter_id,
                )
            except BackendError as exc:
                self.error = exc.message
                return MutationResult.FAILED

            logger.info(
                "action_submitted",
                extra={"client_id": client_id, "action": key.encode(), "user_id": self.user.user_id},
            )
            await self._refetch(self._refetch_supervisor(client, key, dept))
        return MutationResult.APPLIED

    def _refetch_supervisor(self, client: PipelineClient, key: ActionKey, department: Department) -> int | None:
        # Assignment and Senior_Recruiter sign-off re-scope the board to the
        # client's senior recruiter.
        if key.action_type == ASSIGN_SENIOR_RECRUITER:
            return key.subject_id
        if (
            key.action_type == ACKNOWLEDGED
            and self.role == Role.SENIOR_RECRUITER
            and department == Department.MARKETING
        ):
            return assigned_senior_recruiter_id(client.completed_actions)
        return None

    async def assign_senior_recruiter(self, client_id: int, recruiter_id: int) -> MutationResult:
        return await self.perform_named_action(client_id, ASSIGN_SENIOR_RECRUITER, recruiter_id=recruiter_id)

    async def assign_recruiter(self, client_id: int, recruiter_id: int) -> MutationResult:
        return await self.perform_named_action(client_id, ASSIGN_RECRUITER, recruiter_id=recruiter_id)

    async def select_client(self, client_id: int) -> ClientDetails | None:
        if self._ignore_busy("select_client", client_id):
            return None
        try:
            self.selected_client = await self.backend.fetch_client_details(client_id)
        except BackendError as exc:
            self.error = exc.message
            raise
        return self.selected_client

    def set_search(self, text: str | None) -> str:
        if self.performing_action:
            return self.roster.search
        return self.roster.set_search(text)

    def _action_states(self, client: PipelineClient) -> list[ActionStateOut]:
        states: list[ActionStateOut] = []
        role_name = self.role.value if self.role else ""
        for action in available_actions(self.role, client.department):
            if action in (ASSIGN_SENIOR_RECRUITER, ASSIGN_RECRUITER):
                loading = self.dropdown_loading.get(f"{client.id}-{action}", False)
                key = action
                completed = (
                    has_senior_recruiter_assigned(client.completed_actions)
                    if action == ASSIGN_SENIOR_RECRUITER
                    else client.recruiter_id is not None
                )
            else:
                loading = self.action_loading.get(f"{client.id}-{action}-{role_name}", False)
                key = key_for_action(action, self.role, client.department).encode()
                completed = is_action_completed(client.completed_actions, action, client.department, self.role)
            disabled = is_action_disabled(client.completed_actions, action, client.department, self.role)
            states.append(
                ActionStateOut(
                    action=action,
                    key=key,
                    completed=completed,
                    enabled=not (disabled or loading or self.performing_action),
                    loading=loading,
                )
            )
        return states

    def _card(self, client: PipelineClient) -> ClientCardOut:
        capabilities = resolve_capabilities(
            self.role,
            client.department,
            user_id=self.user.user_id,
            assigned_sales_person_id=client.assigned_sales_person_id,
            recruiter_id=client.recruiter_id,
        )
        days = client.days_in_current_stage or 0
        sla = sla_status(client.department, days)
        policy = get_stage_sla(client.department)
        started = client.current_stage.start_date
        return ClientCardOut(
            id=client.id,
            name=client.name,
            status=client.status,
            tech_stack=client.tech_stack,
            department=client.department,
            days_in_current_stage=days,
            last_note=client.last_note,
            completed_actions=list(client.completed_actions),
            assigned_sales_person_id=client.assigned_sales_person_id,
            recruiter_id=client.recruiter_id,
            senior_recruiter_id=client.senior_recruiter_id,
            capabilities=CapabilitiesOut(
                can_act=capabilities.can_act,
                can_move_to_backed_out=capabilities.can_move_to_backed_out,
                can_assign_senior_recruiter=capabilities.can_assign_senior_recruiter,
                can_assign_recruiter=capabilities.can_assign_recruiter,
                is_assigned_to_user=capabilities.is_assigned_to_user,
            ),
            allowed_destinations=self._destinations_for(client),
            actions=self._action_states(client),
            sla=SlaOut(
                status=sla.status,
                max_days=policy.max_days if policy else None,
                business_days=business_days_between(started, datetime.now(timezone.utc)) if started else None,
                days_remaining=sla.days_remaining,
                days_overdue=sla.days_overdue,
                percentage_complete=sla.percentage_complete,
            ),
        )

    def view(self) -> BoardOut:
        columns = [
            BoardColumnOut(
                department=department,
                label=department.label,
                count=len(clients),
                clients=[self._card(client) for client in clients],
            )
            for department, clients in self.roster.grouped_by_department().items()
        ]
        return BoardOut(
            status=self.status.value,
            performing_action=self.performing_action,
            error=self.error,
            search=self.roster.search,
            columns=columns,
            recruiters=list(self.roster.recruiters),
            selected_client=self.selected_client,
        )


class BoardRegistry:
    """Board sessions keyed by (user id, role)."""

    def __init__(self, backend: PipelineBackendClient, *, search_min_length: int = 0) -> None:
        self.backend = backend
        self.search_min_length = search_min_length
        self._boards: dict[tuple[int, Role | None], PipelineBoard] = {}

    def get(self, user: UserContext) -> PipelineBoard:
        key = (user.user_id, user.role)
        board = self._boards.get(key)
        if board is None:
            board = PipelineBoard(self.backend, user, search_min_length=self.search_min_length)
            self._boards[key] = board
        return board

    def __len__(self) -> int:
        return len(self._boards)
