"""
Public Reporting API.

Civilians submit disaster reports here without an account. Images are
uploaded to the blob store in the order they were attached.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from app.api.deps import get_public_repository
from app.schemas.report import ReportCreatedResponse
from app.services.media_service import ImageUpload
from app.services.report_repository import ReportRepository

router = APIRouter()


@router.post("", response_model=ReportCreatedResponse, status_code=status.HTTP_201_CREATED)
async def submit_report(
    disaster_type: str = Form(...),
    location: str = Form(""),
    description: str = Form(""),
    images: Optional[List[UploadFile]] = File(None),
    repository: ReportRepository = Depends(get_public_repository),
):
    """
    Create a pending, unassigned report.
    Missing location/description are rejected before anything is uploaded.
    """
    uploads = []
    for image in images or []:
        content = await image.read()
        uploads.append(ImageUpload(image.filename or "image", content, image.content_type or "application/octet-stream"))

    report_id = await repository.create(disaster_type, location, description, uploads)
    return ReportCreatedResponse(
        report_id=report_id,
        message="Your report has been submitted.",
    )
