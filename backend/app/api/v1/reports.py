from typing import Any, List, Literal
from fastapi import APIRouter, Depends, File, UploadFile

from app.api import deps
from app.core import lifecycle
from app.schemas.report import (
    AssignRequest,
    DisasterReport,
    NoteCreateRequest,
    ReportDetail,
    ReportStats,
    ResponseNote,
    StatusUpdateRequest,
)
from app.services.media_service import ImageUpload
from app.services.report_repository import ReportRepository
from app.services.report_stats import compute_stats
from app.services.session_service import AuthSession

router = APIRouter()

StatusGroup = Literal["all", "pending", "assigned", "active", "resolved"]


def _detail(report: DisasterReport) -> ReportDetail:
    return ReportDetail(
        **report.model_dump(),
        progress=lifecycle.progress_percent(report.status),
        next_status=lifecycle.next_status(report),
    )


@router.get("", response_model=List[DisasterReport])
async def read_reports(
    group: StatusGroup = "all",
    refresh: bool = False,
    repository: ReportRepository = Depends(deps.get_session_repository),
) -> Any:
    """
    Reports visible to the caller's role, filtered by dashboard tab.
    `refresh=true` re-fetches the collection instead of using the session cache.
    """
    reports = await repository.list_for_role(refresh=refresh)
    return lifecycle.filter_by_group(reports, group)


@router.get("/stats", response_model=ReportStats)
async def read_report_stats(
    refresh: bool = False,
    repository: ReportRepository = Depends(deps.get_session_repository),
) -> Any:
    reports = await repository.list_for_role(refresh=refresh)
    return compute_stats(reports)


@router.get("/{report_id}", response_model=ReportDetail)
async def read_report_by_id(
    report_id: str,
    repository: ReportRepository = Depends(deps.get_session_repository),
) -> Any:
    """
    Get a specific report, read fresh from the store.
    """
    report = await repository.get_visible(report_id)
    return _detail(report)


@router.post("/{report_id}/assign", response_model=ReportDetail)
async def assign_report(
    report_id: str,
    request: AssignRequest,
    session: AuthSession = Depends(deps.get_admin_session),
) -> Any:
    report = await session.repository.assign(report_id, request.assigned_to, request.assigned_user_id)
    return _detail(report)


@router.post("/{report_id}/unassign", response_model=ReportDetail)
async def unassign_report(
    report_id: str,
    session: AuthSession = Depends(deps.get_admin_session),
) -> Any:
    report = await session.repository.unassign(report_id)
    return _detail(report)


@router.put("/{report_id}/status", response_model=ReportDetail)
async def update_report_status(
    report_id: str,
    request: StatusUpdateRequest,
    repository: ReportRepository = Depends(deps.get_session_repository),
) -> Any:
    """
    Update report status. Administrators may pick any status; volunteers and
    responders only on reports assigned to them.
    """
    report = await repository.set_status(report_id, request.status)
    return _detail(report)


@router.post("/{report_id}/advance", response_model=ReportDetail)
async def advance_report(
    report_id: str,
    repository: ReportRepository = Depends(deps.get_session_repository),
) -> Any:
    """
    Take the next step of the assignee workflow (dispatch, take responsibility, resolve).
    """
    report = await repository.advance(report_id)
    return _detail(report)


@router.get("/{report_id}/notes", response_model=List[ResponseNote])
async def read_report_notes(
    report_id: str,
    repository: ReportRepository = Depends(deps.get_session_repository),
) -> Any:
    return await repository.list_notes(report_id)


@router.post("/{report_id}/notes", response_model=ResponseNote, status_code=201)
async def add_report_note(
    report_id: str,
    request: NoteCreateRequest,
    repository: ReportRepository = Depends(deps.get_session_repository),
) -> Any:
    return await repository.add_note(report_id, request.text)


@router.post("/{report_id}/response-images", response_model=ReportDetail, status_code=201)
async def add_response_image(
    report_id: str,
    image: UploadFile = File(...),
    repository: ReportRepository = Depends(deps.get_session_repository),
) -> Any:
    content = await image.read()
    upload = ImageUpload(image.filename or "image", content, image.content_type or "application/octet-stream")
    report = await repository.add_response_image(report_id, upload)
    return _detail(report)
