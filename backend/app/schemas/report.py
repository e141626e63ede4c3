from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional
from datetime import datetime
from app.models.report import AssignedTo, DisasterType, ReportStatus


class DisasterReport(BaseModel):
    """In-memory report record, as held by a ReportRepository."""
    model_config = ConfigDict(frozen=True)

    id: str
    disaster_type: DisasterType
    location: str
    description: str
    image_urls: List[str] = Field(default_factory=list)
    status: ReportStatus = ReportStatus.PENDING
    assigned_to: AssignedTo = AssignedTo.UNASSIGNED
    assigned_user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    response_images: List[str] = Field(default_factory=list)


class ResponseNote(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    report_id: str
    user_id: str
    user_name: str
    text: str
    timestamp: datetime


class ReportDetail(DisasterReport):
    progress: int
    next_status: Optional[ReportStatus] = None


class ReportCreatedResponse(BaseModel):
    report_id: str
    message: str


class AssignRequest(BaseModel):
    assigned_to: AssignedTo
    assigned_user_id: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: ReportStatus


class NoteCreateRequest(BaseModel):
    text: str = Field(..., max_length=5000)


class ReportStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_group: Dict[str, int]
    by_type: Dict[str, int]
    average_resolution_hours: Optional[float] = None
