"""
NoteLog - append-only annotation and response-evidence trail per report.
"""

from typing import List, Optional

import structlog

from app.core.exceptions import AuthenticationError, ReportValidationError
from app.models.report import ImagePhase
from app.schemas.report import DisasterReport, ResponseNote
from app.schemas.user import UserProfile
from app.services.media_service import ImageUpload, MediaCleaner
from app.services.report_store import ReportStore
from app.services.storage_service import RESPONSE_NAMESPACE, BlobStore, make_blob_path

logger = structlog.get_logger()


class NoteLog:
    def __init__(self, store: ReportStore, blobs: BlobStore, cleaner: MediaCleaner):
        self.store = store
        self.blobs = blobs
        self.cleaner = cleaner

    async def add_note(self, report_id: str, author: Optional[UserProfile], text: str) -> ResponseNote:
        """
        Write one note. The author's display name is copied onto the note so
        listing never needs a join; the timestamp is assigned by the store.
        """
        if author is None:
            raise AuthenticationError("User must be logged in to add notes")
        body = (text or "").strip()
        if not body:
            raise ReportValidationError("Note text is required", field="text")

        try:
            note = await self.store.insert_note(report_id, author.id, author.name, body)
        except Exception as e:
            logger.error("note_add_failed", report_id=report_id, user_id=author.id, error=str(e))
            raise
        logger.info("note_added", report_id=report_id, note_id=note.id, user_id=author.id)
        return note

    async def list_notes(self, report_id: str) -> List[ResponseNote]:
        """Notes for a report, newest first."""
        try:
            notes = await self.store.list_notes(report_id)
        except Exception as e:
            logger.error("note_list_failed", report_id=report_id, error=str(e))
            raise
        # Python's sort is stable, so equal timestamps keep the store's order
        return sorted(notes, key=lambda note: note.timestamp, reverse=True)

    async def add_response_image(self, report_id: str, upload: ImageUpload) -> DisasterReport:
        """
        Upload a response-phase image and append its URL to the report.
        Returns the report as stored after the append.
        """
        self.cleaner.check(upload, field="image")
        upload = self.cleaner.clean(upload)
        path = make_blob_path(RESPONSE_NAMESPACE, upload.filename)
        try:
            handle = await self.blobs.upload(path, upload.content, upload.content_type)
            url = self.blobs.resolve(handle)
            report = await self.store.append_image(report_id, ImagePhase.RESPONSE, url)
        except Exception as e:
            logger.error("response_image_add_failed", report_id=report_id, path=path, error=str(e))
            raise
        logger.info("response_image_added", report_id=report_id, url=url)
        return report
