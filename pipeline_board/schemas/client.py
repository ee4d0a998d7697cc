from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import AliasChoices, AliasGenerator, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from pipeline_board.core.actions import assigned_senior_recruiter_id
from pipeline_board.core.stage_machine import Department, normalize_department


def unwrap_values(value: Any) -> Any:
    """Collections from the backend may arrive as ``{"$values": [...]}``."""
    if isinstance(value, dict) and isinstance(value.get("$values"), list):
        return value["$values"]
    return value


class BackendModel(BaseModel):
    # Backend payloads are camelCase; responses keep snake_case field names.
    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=to_camel), populate_by_name=True, extra="ignore"
    )


class CurrentStage(BackendModel):
    department: Department
    start_date: Optional[datetime] = None
    notes: str = ""

    @field_validator("department", mode="before")
    @classmethod
    def _normalize_department(cls, value: Any) -> Department:
        department = normalize_department(value)
        if department is None:
            raise ValueError(f"Unknown department: {value!r}")
        return department

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_default(cls, value: Any) -> str:
        return value or ""


class PipelineClient(BackendModel):
    id: int = Field(validation_alias=AliasChoices("id", "clientId", "clientID"))
    name: str = Field(default="", validation_alias=AliasChoices("name", "clientName"))
    status: str = ""
    tech_stack: str = ""
    current_stage: CurrentStage
    completed_actions: List[str] = Field(default_factory=list)
    assigned_sales_person_id: Optional[int] = None
    recruiter_id: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("recruiterId", "assignedRecruiterId", "assignedRecruiterID")
    )
    senior_recruiter_id: Optional[int] = None
    days_in_current_stage: Optional[int] = None

    @field_validator("status", "tech_stack", "name", mode="before")
    @classmethod
    def _text_default(cls, value: Any) -> str:
        return value or ""

    @field_validator("completed_actions", mode="before")
    @classmethod
    def _unwrap_actions(cls, value: Any) -> Any:
        return unwrap_values(value) or []

    @model_validator(mode="after")
    def _derive_fields(self) -> "PipelineClient":
        if self.senior_recruiter_id is None:
            self.senior_recruiter_id = assigned_senior_recruiter_id(self.completed_actions)
        if self.days_in_current_stage is None:
            self.days_in_current_stage = days_since(self.current_stage.start_date)
        return self

    @property
    def department(self) -> Department:
        return self.current_stage.department

    @property
    def last_note(self) -> str:
        return self.current_stage.notes.split("\n")[-1] if self.current_stage.notes else ""


class Recruiter(BackendModel):
    employee_id: int = Field(validation_alias=AliasChoices("employeeId", "employeeID", "id"))
    full_name: str = Field(default="", validation_alias=AliasChoices("fullName", "name"))
    role: Optional[str] = None


class ClientDocument(BackendModel):
    document_id: int = Field(validation_alias=AliasChoices("documentId", "documentID", "id"))
    name: str = ""
    type: str = ""
    url: Optional[str] = Field(default=None, validation_alias=AliasChoices("url", "fileSharePointURL"))
    file_size: Optional[int] = None
    uploaded_at: Optional[datetime] = None
    uploaded_by: Optional[str] = None


class StageHistoryEntry(BackendModel):
    department: Department
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("department", mode="before")
    @classmethod
    def _normalize_department(cls, value: Any) -> Department:
        department = normalize_department(value)
        if department is None:
            raise ValueError(f"Unknown department: {value!r}")
        return department


class ClientDetails(PipelineClient):
    email: Optional[str] = Field(default=None, validation_alias=AliasChoices("email", "personalEmailAddress"))
    phone: Optional[str] = Field(default=None, validation_alias=AliasChoices("phone", "personalPhoneNumber"))
    notes: str = ""
    stage_history: List[StageHistoryEntry] = Field(default_factory=list)
    documents: List[ClientDocument] = Field(default_factory=list)

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_default(cls, value: Any) -> str:
        return value or ""

    @field_validator("stage_history", "documents", mode="before")
    @classmethod
    def _unwrap_lists(cls, value: Any) -> Any:
        return unwrap_values(value) or []


class PipelineData(BackendModel):
    clients: List[PipelineClient] = Field(default_factory=list)
    recruiters: List[Recruiter] = Field(default_factory=list)

    @field_validator("clients", "recruiters", mode="before")
    @classmethod
    def _unwrap_lists(cls, value: Any) -> Any:
        return unwrap_values(value) or []


def days_since(start: datetime | None, *, now: datetime | None = None) -> int:
    if start is None:
        return 0
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max(0, (current - start).days)
