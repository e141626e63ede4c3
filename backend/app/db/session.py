from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool, StaticPool
from app.core.config import settings


def build_engine(db_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create the async engine for the report store.
    """
    if db_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in db_url or db_url.rstrip("/").endswith("sqlite+aiosqlite:"):
            # One shared connection, otherwise every session sees an empty database
            kwargs["poolclass"] = StaticPool
        return create_async_engine(db_url, echo=echo, **kwargs)

    # For Supabase/PostgreSQL with asyncpg, SSL is specified in the URL, not connect_args
    if "supabase" in db_url and "ssl=" not in db_url:
        db_url = db_url + ("&" if "?" in db_url else "?") + "ssl=require"

    return create_async_engine(
        db_url,
        echo=echo,
        poolclass=NullPool,  # Fixes asyncpg concurrency/connection issues behind poolers
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.ENVIRONMENT == "development" and settings.LOG_LEVEL.upper() == "DEBUG")
