"""
Shared builders for the test suite: an in-memory report store, a throwaway
upload directory and a few profiles.
"""

import shutil
import tempfile
import uuid
from datetime import timedelta
from typing import Optional

from app.core.config import Settings
from app.core.time_utils import get_utc_now
from app.db.session import build_engine
from app.models.report import AssignedTo, DisasterType, ReportStatus
from app.models.user import UserRole
from app.schemas.report import DisasterReport
from app.schemas.user import UserProfile
from app.services.container import Services, build_services
from app.services.media_service import ImageUpload

MEMORY_DB_URL = "sqlite+aiosqlite://"

# Not a decodable image; metadata stripping is switched off in these settings
JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg-payload\xff\xd9"


def make_settings(upload_dir: str, **overrides) -> Settings:
    values = dict(
        DATABASE_URL=MEMORY_DB_URL,
        BLOB_BACKEND="local",
        UPLOAD_DIR=upload_dir,
        PUBLIC_BASE_URL="http://testserver",
        STRIP_IMAGE_METADATA=False,
    )
    values.update(overrides)
    return Settings(**values)


def make_services(upload_dir: str, **overrides) -> Services:
    settings = make_settings(upload_dir, **overrides)
    return build_services(settings, engine=build_engine(MEMORY_DB_URL))


class ServicesMixin:
    """For IsolatedAsyncioTestCase: fresh database and upload directory per test."""

    async def asyncSetUp(self):
        self.upload_dir = tempfile.mkdtemp(prefix="desk-uploads-")
        self.services = make_services(self.upload_dir)
        await self.services.startup()

    async def asyncTearDown(self):
        await self.services.shutdown()
        shutil.rmtree(self.upload_dir, ignore_errors=True)


def make_profile(role, name: Optional[str] = None, profile_id: Optional[str] = None) -> UserProfile:
    role = UserRole(role)
    return UserProfile(
        id=profile_id or str(uuid.uuid4()),
        name=name or f"{role.value.title()} User",
        email=f"{role.value}-{uuid.uuid4().hex[:6]}@example.com",
        role=role,
    )


def make_report(
    assigned_to=AssignedTo.UNASSIGNED,
    assigned_user_id: Optional[str] = None,
    status=ReportStatus.PENDING,
    age_minutes: int = 0,
    disaster_type=DisasterType.FLOOD,
) -> DisasterReport:
    created = get_utc_now() - timedelta(minutes=age_minutes)
    return DisasterReport(
        id=str(uuid.uuid4()),
        disaster_type=disaster_type,
        location="Riverside Ward 4",
        description="Water rising fast near the school",
        status=status,
        assigned_to=assigned_to,
        assigned_user_id=assigned_user_id,
        created_at=created,
        updated_at=created,
    )


def jpeg(name: str = "photo.jpg") -> ImageUpload:
    return ImageUpload(name, JPEG_BYTES, "image/jpeg")
