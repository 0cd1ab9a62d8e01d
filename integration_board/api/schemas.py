"""Pydantic schemas for request/response validation."""
from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from integration_board.models.enums import AuditAction, RecordStatus, TrendAlert
from integration_board.models.records import RecordDraft


# Service schemas
class ServiceResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ServiceUpdate(BaseModel):
    description: Optional[str] = Field(None, max_length=500)


class StatusOption(BaseModel):
    status: RecordStatus
    label: str
    column_label: str
    tag: str
    color: str

    class Config:
        from_attributes = True


# Record schemas
class RecordCreate(RecordDraft):
    client_name: str = Field(..., min_length=1, max_length=200)


class RecordUpdate(RecordDraft):
    """Partial update: only the fields sent are applied."""


class RecordResponse(BaseModel):
    id: str
    service_id: str
    client_name: str
    status: RecordStatus
    owner: str
    notes: Optional[str]
    agidesk_ticket: Optional[str]
    cadastro_date: Optional[str]
    meeting_datetime: Optional[str]
    integration_type: Optional[str]
    start_date: str
    end_date: Optional[str]
    devolucao_date: Optional[str]
    commercial: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RecordListItem(RecordResponse):
    service_name: Optional[str] = None
    elapsed_days: Optional[int] = None
    primary_date: Optional[date] = None


class MoveRequest(BaseModel):
    status: RecordStatus


class FieldDescriptorResponse(BaseModel):
    name: str
    label: str

    class Config:
        from_attributes = True


class MoveResponse(BaseModel):
    """
    applied=False with missing_fields means the move needs data: open an edit
    form with draft and save it through PATCH /records/{id}.
    """
    applied: bool
    record: RecordResponse
    missing_fields: List[FieldDescriptorResponse] = []
    draft: Optional[RecordDraft] = None


# Audit schemas
class AuditLogResponse(BaseModel):
    id: str
    record_id: str
    user_id: Optional[str]
    action: AuditAction
    field_name: Optional[str]
    old_value: Optional[str]
    new_value: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class AuditRow(AuditLogResponse):
    """Audit entry joined with what is still known about its record."""
    service_name: Optional[str] = None
    client_name: Optional[str] = None
    record_status: Optional[RecordStatus] = None


# Metrics schemas
class LeadTimeStatsResponse(BaseModel):
    status: RecordStatus
    label: str
    count: int
    mean: float
    median: float
    p75: float

    class Config:
        from_attributes = True


class AgingBucketResponse(BaseModel):
    label: str
    lower: int
    upper: Optional[int]
    count: int

    class Config:
        from_attributes = True


class WeeklyThroughputResponse(BaseModel):
    week_start: date
    label: str
    counts: Dict[RecordStatus, int]

    class Config:
        from_attributes = True


class StatusShareResponse(BaseModel):
    status: RecordStatus
    label: str
    color: str
    count: int
    pct: float
    last_window: int
    delta: int
    alert: TrendAlert

    class Config:
        from_attributes = True


class OwnerLoadResponse(BaseModel):
    owner: str
    in_progress: int
    finalized_week: int
    lead_time_avg: float

    class Config:
        from_attributes = True


class MeetingWeekResponse(BaseModel):
    week_start: date
    label: str
    meetings: int
    converted: int
    conversion_pct: int

    class Config:
        from_attributes = True


class DashboardResponse(BaseModel):
    kpis: Dict[str, int]
    status_distribution: List[StatusShareResponse]
    lead_time: List[LeadTimeStatsResponse]
    aging: List[AgingBucketResponse]
    throughput_weekly: List[WeeklyThroughputResponse]
    owner_ranking: List[OwnerLoadResponse]
    meetings_weekly: List[MeetingWeekResponse]

    class Config:
        from_attributes = True


class DataQualityIssueResponse(BaseModel):
    record_id: str
    service_name: str
    status: RecordStatus
    problem: str
    fields: List[str] = []

    class Config:
        from_attributes = True


# Error response
class RefusalResponse(BaseModel):
    """Response when a write is refused by validation."""
    message: str
    missing_fields: List[FieldDescriptorResponse] = []
    status_blocked: bool = False
