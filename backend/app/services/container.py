"""
Wiring of the collaborators a running app needs.

Built once per application (see app.main.create_app) and handed to request
handlers through app.state; tests build their own against a throwaway
database and upload directory.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.config import Settings
from app.db.init_db import init_models
from app.db.session import build_engine, build_session_factory
from app.schemas.user import UserProfile
from app.services.identity import IdentityProvider, LoginThrottle
from app.services.media_service import MediaCleaner
from app.services.report_repository import ReportRepository
from app.services.report_store import ReportStore
from app.services.session_service import SessionRegistry
from app.services.storage_service import BlobStore, build_blob_store


@dataclass
class Services:
    settings: Settings
    engine: AsyncEngine
    store: ReportStore
    blobs: BlobStore
    cleaner: MediaCleaner
    identity: IdentityProvider
    sessions: SessionRegistry

    def new_repository(self, profile: Optional[UserProfile] = None) -> ReportRepository:
        return ReportRepository(
            self.store,
            self.blobs,
            self.cleaner,
            profile=profile,
            description_min_length=self.settings.REPORT_DESCRIPTION_MIN_LENGTH,
        )

    async def startup(self) -> None:
        await init_models(self.engine)

    async def shutdown(self) -> None:
        self.sessions.close_all()
        await self.engine.dispose()


def build_services(
    settings: Settings,
    engine: Optional[AsyncEngine] = None,
    blobs: Optional[BlobStore] = None,
) -> Services:
    if engine is None:
        engine = build_engine(settings.DATABASE_URL)
    session_factory = build_session_factory(engine)
    store = ReportStore(session_factory)
    blobs = blobs or build_blob_store(settings)
    cleaner = MediaCleaner(
        settings.MAX_IMAGE_BYTES,
        strip_metadata=settings.STRIP_IMAGE_METADATA,
        max_pixels=settings.MAX_IMAGE_PIXELS,
    )
    identity = IdentityProvider(
        session_factory,
        LoginThrottle(settings.LOGIN_MAX_FAILED_ATTEMPTS, settings.LOGIN_LOCKOUT_SECONDS),
        password_min_length=settings.PASSWORD_MIN_LENGTH,
    )

    services = Services(
        settings=settings,
        engine=engine,
        store=store,
        blobs=blobs,
        cleaner=cleaner,
        identity=identity,
        sessions=None,
    )
    services.sessions = SessionRegistry(
        services.new_repository,
        ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return services
