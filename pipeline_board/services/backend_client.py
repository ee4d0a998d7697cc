from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx
from pydantic import ValidationError

from pipeline_board.core.config import Settings
from pipeline_board.core.stage_machine import Department
from pipeline_board.core.uploads import Attachment, AttachmentKind
from pipeline_board.schemas.client import ClientDetails, PipelineData, unwrap_values

logger = logging.getLogger("pipeline_board.backend")

PIPELINES_PATH = "/api/v1/pipelines"


class BackendError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_message(payload: Any) -> str | None:
    if isinstance(payload, dict):
        for field in ("message", "detail", "title"):
            value = payload.get(field)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str) and payload.strip():
        return payload.strip()[:300]
    return None


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _unwrap_envelope(payload: Any) -> Any:
    payload = unwrap_values(payload)
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload


class PipelineBackendClient:
    """Async client for the external pipeline API."""

    def __init__(
        self,
        base_url: str,
        *,
        api_token: str = "",
        timeout: float | None = None,
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        options: dict[str, Any] = {"base_url": base_url, "headers": headers, "verify": verify}
        # No timeout configured: keep httpx's default rather than disabling it.
        if timeout is not None:
            options["timeout"] = timeout
        if transport is not None:
            options["transport"] = transport
        self._client = httpx.AsyncClient(**options)

    @classmethod
    def from_settings(cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> "PipelineBackendClient":
        return cls(
            settings.backend_base_url,
            api_token=settings.backend_api_token,
            timeout=settings.backend_timeout_seconds,
            verify=settings.backend_verify_tls,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("backend_request_failed", extra={"method": method, "path": path, "error": str(exc)})
            raise BackendError(str(exc) or exc.__class__.__name__) from exc

        payload = _decode(response)
        if response.status_code >= 400:
            message = _error_message(payload) or f"Backend request failed with status {response.status_code}"
            logger.warning(
                "backend_request_rejected",
                extra={"method": method, "path": path, "status_code": response.status_code, "error": message},
            )
            raise BackendError(message, response.status_code)
        return payload

    async def fetch_pipeline_data(
        self,
        search_query: str | None = None,
        supervisor_id: int | None = None,
    ) -> PipelineData:
        params: dict[str, str] = {}
        if search_query:
            params["searchQuery"] = search_query
        if supervisor_id is not None:
            params["supervisorId"] = str(supervisor_id)
        payload = await self._request("GET", PIPELINES_PATH, params=params)
        try:
            return PipelineData.model_validate(_unwrap_envelope(payload) or {})
        except ValidationError as exc:
            raise BackendError(f"Malformed pipeline payload: {exc.error_count()} invalid field(s)") from exc

    async def fetch_client_details(self, client_id: int) -> ClientDetails:
        payload = await self._request("GET", f"{PIPELINES_PATH}/clients/{client_id}")
        try:
            return ClientDetails.model_validate(_unwrap_envelope(payload))
        except ValidationError as exc:
            raise BackendError(f"Malformed client payload: {exc.error_count()} invalid field(s)") from exc

    async def update_client_stage(
        self,
        client_id: int,
        department: Department,
        *,
        back_out_reason: str | None = None,
        notes: str | None = None,
        attachments: Mapping[AttachmentKind, Attachment] | None = None,
    ) -> None:
        data = {"Department": department.value}
        if back_out_reason:
            data["BackedOutReason"] = back_out_reason
        if notes:
            data["Notes"] = notes
        files = {kind.form_field: item.as_multipart() for kind, item in (attachments or {}).items()}
        await self._request(
            "PUT",
            f"{PIPELINES_PATH}/clients/{client_id}/stage",
            data=data,
            files=files or None,
        )

    async def perform_client_action(
        self,
        client_id: int,
        action_type: str,
        department: Department,
        *,
        notes: str | None = None,
        file: Attachment | None = None,
        recruiter_id: int | None = None,
    ) -> None:
        data = {"ActionType": action_type, "Department": department.value}
        if notes:
            data["Notes"] = notes
        if recruiter_id is not None:
            data["RecruiterId"] = str(recruiter_id)
        files = {"File": file.as_multipart()} if file is not None else None
        await self._request(
            "POST",
            f"{PIPELINES_PATH}/clients/{client_id}/actions",
            data=data,
            files=files,
        )
