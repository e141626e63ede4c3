"""
ReportStore - the persistent side of reports, images and notes.

Backed by async SQLAlchemy (PostgreSQL in deployment, SQLite locally).
Every record leaves this module as a schema object with aware UTC timestamps.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.core.exceptions import NotFoundError, StoreReadError, StoreWriteError
from app.core.time_utils import advance_timestamp, get_utc_now, to_utc
from app.models.report import (
    AssignedTo,
    DisasterType,
    ImagePhase,
    Report,
    ReportImage,
    ReportStatus,
    ResponseNote as ResponseNoteRow,
)
from app.schemas.report import DisasterReport, ResponseNote

logger = structlog.get_logger()

# Fields a lifecycle plan may touch; everything else is fixed at creation
MUTABLE_FIELDS = frozenset({"status", "assigned_to", "assigned_user_id"})

Plan = Callable[[DisasterReport], Dict[str, Any]]


def to_record(row: Report) -> DisasterReport:
    """Materialize a stored row, splitting images into their two sequences."""
    initial = [image.url for image in row.images if image.phase == ImagePhase.INITIAL]
    response = [image.url for image in row.images if image.phase == ImagePhase.RESPONSE]
    return DisasterReport(
        id=row.id,
        disaster_type=row.disaster_type,
        location=row.location,
        description=row.description,
        image_urls=initial,
        status=row.status,
        assigned_to=row.assigned_to,
        assigned_user_id=row.assigned_user_id,
        created_at=to_utc(row.created_at),
        updated_at=to_utc(row.updated_at),
        response_images=response,
    )


def to_note(row: ResponseNoteRow) -> ResponseNote:
    return ResponseNote(
        id=row.id,
        report_id=row.report_id,
        user_id=row.user_id,
        user_name=row.user_name,
        text=row.text,
        timestamp=to_utc(row.timestamp),
    )


class ReportStore:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def _load(self, session: AsyncSession, report_id: str, lock: bool = False) -> Optional[Report]:
        stmt = select(Report).options(selectinload(Report.images)).where(Report.id == report_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_reports(self) -> List[DisasterReport]:
        """Bulk read of the whole collection, oldest first."""
        try:
            async with self._session_factory() as session:
                stmt = select(Report).options(selectinload(Report.images)).order_by(Report.created_at)
                result = await session.execute(stmt)
                return [to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("store_list_reports_failed", error=str(e))
            raise StoreReadError() from e

    async def get_report(self, report_id: str) -> Optional[DisasterReport]:
        try:
            async with self._session_factory() as session:
                row = await self._load(session, report_id)
                return to_record(row) if row is not None else None
        except SQLAlchemyError as e:
            logger.error("store_get_report_failed", report_id=report_id, error=str(e))
            raise StoreReadError() from e

    async def insert_report(
        self,
        disaster_type: DisasterType,
        location: str,
        description: str,
        image_urls: Sequence[str],
    ) -> DisasterReport:
        now = get_utc_now()
        row = Report(
            disaster_type=DisasterType(disaster_type),
            location=location,
            description=description,
            status=ReportStatus.PENDING,
            assigned_to=AssignedTo.UNASSIGNED,
            assigned_user_id=None,
            created_at=now,
            updated_at=now,
        )
        row.images = [ReportImage(phase=ImagePhase.INITIAL, url=url, uploaded_at=now) for url in image_urls]
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(row)
            return to_record(row)
        except SQLAlchemyError as e:
            logger.error("store_insert_report_failed", error=str(e))
            raise StoreWriteError() from e

    async def apply(self, report_id: str, plan: Plan) -> DisasterReport:
        """
        Run a lifecycle plan against the stored report in one transaction.
        The plan sees the row as stored right now; updated_at always advances.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await self._load(session, report_id, lock=True)
                    if row is None:
                        raise NotFoundError("Report not found")
                    changes = plan(to_record(row))
                    illegal = set(changes) - MUTABLE_FIELDS
                    if illegal:
                        raise ValueError(f"Plan touches immutable fields: {sorted(illegal)}")
                    for field, value in changes.items():
                        setattr(row, field, value)
                    row.updated_at = advance_timestamp(row.updated_at)
                return to_record(row)
        except SQLAlchemyError as e:
            logger.error("store_apply_failed", report_id=report_id, error=str(e))
            raise StoreWriteError() from e

    async def append_image(self, report_id: str, phase: ImagePhase, url: str) -> DisasterReport:
        """
        Append one image URL to a report's sequence. The image is its own row,
        so this is an INSERT rather than a rewrite of the whole list.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await self._load(session, report_id, lock=True)
                    if row is None:
                        raise NotFoundError("Report not found")
                    now = advance_timestamp(row.updated_at)
                    row.images.append(ReportImage(phase=ImagePhase(phase), url=url, uploaded_at=now))
                    row.updated_at = now
                return to_record(row)
        except SQLAlchemyError as e:
            logger.error("store_append_image_failed", report_id=report_id, error=str(e))
            raise StoreWriteError() from e

    async def insert_note(self, report_id: str, user_id: str, user_name: str, text: str) -> ResponseNote:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    exists = await session.get(Report, report_id)
                    if exists is None:
                        raise NotFoundError("Report not found")
                    row = ResponseNoteRow(
                        report_id=report_id,
                        user_id=user_id,
                        user_name=user_name,
                        text=text,
                        timestamp=get_utc_now(),
                    )
                    session.add(row)
                return to_note(row)
        except SQLAlchemyError as e:
            logger.error("store_insert_note_failed", report_id=report_id, error=str(e))
            raise StoreWriteError() from e

    async def list_notes(self, report_id: str) -> List[ResponseNote]:
        try:
            async with self._session_factory() as session:
                stmt = (
                    select(ResponseNoteRow)
                    .where(ResponseNoteRow.report_id == report_id)
                    .order_by(ResponseNoteRow.timestamp.desc())
                )
                result = await session.execute(stmt)
                return [to_note(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("store_list_notes_failed", report_id=report_id, error=str(e))
            raise StoreReadError() from e
