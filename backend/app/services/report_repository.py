"""
ReportRepository - one session's view of the report collection.

Holds the whole collection in memory (fetched in bulk), the subset visible to
the session's profile, and the notes fetched per report. Every mutation is
written to the store first; only a confirmed write patches the cached views,
so a failed call leaves local state exactly as it was.
"""

from typing import Dict, List, Optional, Sequence

import structlog

from app.core import authorization, lifecycle
from app.core.exceptions import NotFoundError, PermissionDeniedError, ReportValidationError, StoreReadError
from app.models.report import AssignedTo, DisasterType, ReportStatus
from app.schemas.report import DisasterReport, ResponseNote
from app.schemas.user import UserProfile
from app.services.media_service import ImageUpload, MediaCleaner
from app.services.note_log import NoteLog
from app.services.report_store import ReportStore
from app.services.storage_service import INITIAL_NAMESPACE, BlobStore, make_blob_path

logger = structlog.get_logger()


class ReportRepository:
    def __init__(
        self,
        store: ReportStore,
        blobs: BlobStore,
        cleaner: MediaCleaner,
        profile: Optional[UserProfile] = None,
        description_min_length: int = 10,
    ):
        self.store = store
        self.blobs = blobs
        self.cleaner = cleaner
        self.notes_log = NoteLog(store, blobs, cleaner)
        self.description_min_length = description_min_length
        self._profile = profile
        self._reports: List[DisasterReport] = []
        self._visible: List[DisasterReport] = []
        self._notes: Dict[str, List[ResponseNote]] = {}
        self.loaded = False

    # -- cached views -----------------------------------------------------

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profile

    @property
    def reports(self) -> List[DisasterReport]:
        return list(self._reports)

    @property
    def visible_reports(self) -> List[DisasterReport]:
        return list(self._visible)

    def cached_notes(self, report_id: str) -> List[ResponseNote]:
        return list(self._notes.get(report_id, []))

    def _recompute_visible(self) -> None:
        self._visible = authorization.filter_visible(self._profile, self._reports)

    def _patch(self, report: DisasterReport) -> None:
        """Replace (or add) one report in every cached view."""
        for index, cached in enumerate(self._reports):
            if cached.id == report.id:
                self._reports[index] = report
                break
        else:
            self._reports.append(report)
        self._recompute_visible()

    def _landing(self) -> str:
        return authorization.landing_for(self._profile)

    # -- reads ------------------------------------------------------------

    async def list(self) -> List[DisasterReport]:
        """Fetch the entire collection and rebuild the role view."""
        try:
            reports = await self.store.list_reports()
        except Exception as e:
            logger.error("reports_fetch_failed", error=str(e))
            raise
        self._reports = reports
        self._recompute_visible()
        self.loaded = True
        return list(self._reports)

    async def list_for_role(self, profile: Optional[UserProfile] = None, refresh: bool = False) -> List[DisasterReport]:
        """
        Reports visible to `profile` (the session's own profile by default),
        computed over the bulk collection.
        """
        if refresh or not self.loaded:
            await self.list()
        if profile is None or profile == self._profile:
            return list(self._visible)
        return authorization.filter_visible(profile, self._reports)

    async def switch_profile(self, profile: Optional[UserProfile]) -> List[DisasterReport]:
        """A role change always triggers a fresh fetch."""
        self._profile = profile
        await self.list()
        return list(self._visible)

    async def get_by_id(self, report_id: str) -> Optional[DisasterReport]:
        """Point lookup against the store, bypassing the bulk cache."""
        try:
            return await self.store.get_report(report_id)
        except Exception as e:
            logger.error("report_fetch_failed", report_id=report_id, error=str(e))
            raise

    async def get_visible(self, report_id: str) -> DisasterReport:
        """Like get_by_id, but absent and invisible reports are both NotFoundError."""
        report = await self.get_by_id(report_id)
        if report is None or not authorization.can_view(self._profile, report):
            raise NotFoundError("Report not found", landing=self._landing())
        return report

    # -- creation ---------------------------------------------------------

    def validate_submission(
        self, disaster_type: str, location: str, description: str, images: Sequence[ImageUpload]
    ) -> DisasterType:
        try:
            kind = DisasterType(disaster_type)
        except ValueError:
            raise ReportValidationError("Unknown disaster type", field="disaster_type")
        if not (location or "").strip():
            raise ReportValidationError("Please provide the location of the disaster", field="location")
        text = (description or "").strip()
        if not text:
            raise ReportValidationError("Please provide details about the disaster", field="description")
        if len(text) < self.description_min_length:
            raise ReportValidationError(
                f"Description must be at least {self.description_min_length} characters",
                field="description",
            )
        for image in images:
            self.cleaner.check(image)
        return kind

    async def create(
        self,
        disaster_type: str,
        location: str,
        description: str,
        images: Sequence[ImageUpload] = (),
    ) -> str:
        """
        Upload the images (in order) and write a new pending, unassigned report.
        Validation happens before anything is sent to the blob or report store.
        """
        kind = self.validate_submission(disaster_type, location, description, images)

        image_urls: List[str] = []
        try:
            for image in images:
                image = self.cleaner.clean(image)
                path = make_blob_path(INITIAL_NAMESPACE, image.filename)
                handle = await self.blobs.upload(path, image.content, image.content_type)
                image_urls.append(self.blobs.resolve(handle))

            report = await self.store.insert_report(kind, location.strip(), description.strip(), image_urls)
        except Exception as e:
            logger.error("report_create_failed", disaster_type=kind.value, uploaded=len(image_urls), error=str(e))
            raise

        self._reports.append(report)
        self._recompute_visible()
        logger.info("report_created", report_id=report.id, disaster_type=kind.value, images=len(image_urls))
        return report.id

    # -- lifecycle --------------------------------------------------------

    def _require_assigner(self) -> None:
        if not authorization.can_assign(self._profile):
            raise PermissionDeniedError("Only administrators can assign reports", landing=self._landing())

    async def assign(self, report_id: str, target: AssignedTo, user_id: Optional[str] = None) -> DisasterReport:
        """
        Assign and advance: sets the assignment target and, when a pending
        report goes to a volunteer or the responder unit, moves it to assigned.
        """
        self._require_assigner()
        try:
            report = await self.store.apply(
                report_id, lambda current: lifecycle.plan_assignment(current, target, user_id)
            )
        except Exception as e:
            logger.error("report_assign_failed", report_id=report_id, target=str(target), error=str(e))
            raise
        self._patch(report)
        logger.info("report_assigned", report_id=report_id, assigned_to=report.assigned_to.value, status=report.status.value)
        return report

    async def unassign(self, report_id: str) -> DisasterReport:
        self._require_assigner()
        try:
            report = await self.store.apply(report_id, lifecycle.plan_unassign)
        except Exception as e:
            logger.error("report_unassign_failed", report_id=report_id, error=str(e))
            raise
        self._patch(report)
        logger.info("report_unassigned", report_id=report_id)
        return report

    def _status_plan(self, status: Optional[ReportStatus]):
        profile = self._profile
        landing = self._landing()

        def plan(current: DisasterReport):
            # Checked against the stored row, inside the write transaction
            if not authorization.can_set_status(profile, current):
                raise PermissionDeniedError("Not allowed to change the status of this report", landing=landing)
            target = status if status is not None else lifecycle.next_status(current)
            if target is None:
                raise ReportValidationError("This report has no next step", field="status")
            return lifecycle.plan_status(current, target)

        return plan

    async def set_status(self, report_id: str, status: ReportStatus) -> DisasterReport:
        status = ReportStatus(status)
        try:
            report = await self.store.apply(report_id, self._status_plan(status))
        except Exception as e:
            logger.error("report_status_failed", report_id=report_id, status=status.value, error=str(e))
            raise
        self._patch(report)
        logger.info("report_status_changed", report_id=report_id, status=status.value)
        return report

    async def advance(self, report_id: str) -> DisasterReport:
        """Move the report one step along its assignee workflow."""
        try:
            report = await self.store.apply(report_id, self._status_plan(None))
        except Exception as e:
            logger.error("report_advance_failed", report_id=report_id, error=str(e))
            raise
        self._patch(report)
        logger.info("report_status_changed", report_id=report_id, status=report.status.value)
        return report

    # -- notes and response evidence --------------------------------------

    async def _require_annotatable(self, report_id: str) -> DisasterReport:
        report = await self.get_by_id(report_id)
        if report is None:
            raise NotFoundError("Report not found", landing=self._landing())
        if not authorization.can_annotate(self._profile, report):
            raise PermissionDeniedError("Not allowed to update this report", landing=self._landing())
        return report

    async def list_notes(self, report_id: str) -> List[ResponseNote]:
        await self._require_annotatable(report_id)
        notes = await self.notes_log.list_notes(report_id)
        self._notes[report_id] = notes
        return list(notes)

    async def add_note(self, report_id: str, text: str) -> ResponseNote:
        await self._require_annotatable(report_id)
        note = await self.notes_log.add_note(report_id, self._profile, text)
        # The note is already committed; only the cache refresh can fail here
        try:
            self._notes[report_id] = await self.notes_log.list_notes(report_id)
        except StoreReadError as e:
            logger.warning("note_refresh_failed", report_id=report_id, error=str(e))
            self._notes[report_id] = [note] + self._notes.get(report_id, [])
        return note

    async def add_response_image(self, report_id: str, upload: ImageUpload) -> DisasterReport:
        await self._require_annotatable(report_id)
        report = await self.notes_log.add_response_image(report_id, upload)
        self._patch(report)
        return report

    # -- teardown ---------------------------------------------------------

    def close(self) -> None:
        self._reports = []
        self._visible = []
        self._notes = {}
        self._profile = None
        self.loaded = False
