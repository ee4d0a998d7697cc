from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pipeline_board.core.roles import Role
from pipeline_board.core.stage_machine import ALL_DEPARTMENTS, Department
from pipeline_board.schemas.client import PipelineClient, Recruiter
from pipeline_board.services.backend_client import PipelineBackendClient

logger = logging.getLogger("pipeline_board.roster")

# Roles restricted to a subset of the board. Everyone else sees every column.
_VISIBLE_DEPARTMENTS: dict[Role, frozenset[Department]] = {
    Role.SENIOR_RECRUITER: frozenset({Department.MARKETING}),
    Role.RECRUITER: frozenset({Department.MARKETING}),
}


def matches_search(client: PipelineClient, text: str) -> bool:
    needle = text.strip().lower()
    if not needle:
        return True
    haystack = (
        client.name,
        str(client.id),
        client.status,
        client.tech_stack,
        client.department.value,
        client.department.label,
    )
    return any(needle in value.lower() for value in haystack if value)


class ClientRoster:
    """Last successfully fetched client list for one board session.

    Refreshes are single-flight: while a fetch is pending, further calls to
    `refresh` wait on the same request instead of issuing another one.
    """

    def __init__(
        self,
        backend: PipelineBackendClient,
        *,
        user_id: int,
        role: Role | None,
        search_min_length: int = 0,
    ) -> None:
        self._backend = backend
        self.user_id = user_id
        self.role = role
        self.search_min_length = search_min_length
        self.clients: list[PipelineClient] = []
        self.recruiters: list[Recruiter] = []
        self.search = ""
        self.loaded = False
        self._inflight: Optional[asyncio.Task[list[PipelineClient]]] = None

    @property
    def is_refreshing(self) -> bool:
        return self._inflight is not None

    def default_supervisor_id(self) -> int | None:
        if self.role == Role.SENIOR_RECRUITER:
            return self.user_id
        return None

    async def refresh(self, supervisor_id: int | None = None) -> list[PipelineClient]:
        if self._inflight is None:
            if supervisor_id is None:
                supervisor_id = self.default_supervisor_id()
            self._inflight = asyncio.ensure_future(self._fetch(supervisor_id))
        return await asyncio.shield(self._inflight)

    async def _fetch(self, supervisor_id: int | None) -> list[PipelineClient]:
        try:
            data = await self._backend.fetch_pipeline_data(supervisor_id=supervisor_id)
            self._check_append_only(data.clients)
            self.clients = data.clients
            self.recruiters = data.recruiters
            self.loaded = True
            logger.info(
                "roster_refreshed",
                extra={
                    "user_id": self.user_id,
                    "supervisor_id": supervisor_id,
                    "client_count": len(self.clients),
                },
            )
            return self.clients
        finally:
            self._inflight = None

    def _check_append_only(self, incoming: list[PipelineClient]) -> None:
        previous = {client.id: set(client.completed_actions) for client in self.clients}
        for client in incoming:
            before = previous.get(client.id)
            if before is None:
                continue
            missing = before - set(client.completed_actions)
            if missing:
                logger.warning(
                    "completed_actions_shrunk",
                    extra={"client_id": client.id, "missing_actions": sorted(missing)},
                )

    def set_search(self, text: str | None) -> str:
        value = (text or "").strip()
        if len(value) < self.search_min_length:
            value = ""
        self.search = value
        return self.search

    def is_visible(self, client: PipelineClient) -> bool:
        if self.role is None:
            return True
        departments = _VISIBLE_DEPARTMENTS.get(self.role)
        return departments is None or client.department in departments

    def get(self, client_id: int) -> PipelineClient | None:
        for client in self.clients:
            if client.id == client_id:
                return client
        return None

    def filtered(self) -> list[PipelineClient]:
        return [c for c in self.clients if self.is_visible(c) and matches_search(c, self.search)]

    def grouped_by_department(self) -> dict[Department, list[PipelineClient]]:
        grouped: dict[Department, list[PipelineClient]] = {dept: [] for dept in ALL_DEPARTMENTS}
        for client in self.filtered():
            grouped[client.department].append(client)
        return grouped
