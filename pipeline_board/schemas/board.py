from typing import List, Optional

from pydantic import BaseModel

from pipeline_board.core.stage_machine import Department
from pipeline_board.schemas.client import ClientDetails, Recruiter


class ActionStateOut(BaseModel):
    action: str
    key: str
    completed: bool
    enabled: bool
    loading: bool = False


class CapabilitiesOut(BaseModel):
    can_act: bool
    can_move_to_backed_out: bool
    can_assign_senior_recruiter: bool
    can_assign_recruiter: bool
    is_assigned_to_user: bool


class SlaOut(BaseModel):
    status: str
    max_days: Optional[float] = None
    business_days: Optional[int] = None
    days_remaining: float
    days_overdue: float
    percentage_complete: float


class ClientCardOut(BaseModel):
    id: int
    name: str
    status: str
    tech_stack: str
    department: Department
    days_in_current_stage: int
    last_note: str
    completed_actions: List[str]
    assigned_sales_person_id: Optional[int] = None
    recruiter_id: Optional[int] = None
    senior_recruiter_id: Optional[int] = None
    capabilities: CapabilitiesOut
    allowed_destinations: List[Department]
    actions: List[ActionStateOut]
    sla: SlaOut


class BoardColumnOut(BaseModel):
    department: Department
    label: str
    count: int
    clients: List[ClientCardOut]


class BoardOut(BaseModel):
    status: str
    performing_action: bool
    error: Optional[str] = None
    search: str = ""
    columns: List[BoardColumnOut]
    recruiters: List[Recruiter]
    selected_client: Optional[ClientDetails] = None


class DestinationsOut(BaseModel):
    client_id: int
    current_department: Department
    destinations: List[Department]


class RecruiterAssignmentIn(BaseModel):
    recruiter_id: int


class MutationOut(BaseModel):
    result: str
    error: Optional[str] = None
