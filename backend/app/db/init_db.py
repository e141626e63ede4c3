import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from app.db.base import Base

logger = structlog.get_logger()

INIT_TIMEOUT_SECONDS = 10


async def init_models(engine: AsyncEngine) -> None:
    """
    Create the report store tables if they do not exist yet.
    """
    # Trigger model registration
    from app.models.user import User  # noqa: F401
    from app.models.report import Report, ReportImage, ResponseNote  # noqa: F401

    logger.info("db_init_start", url=engine.url.render_as_string(hide_password=True))
    try:
        # Fail fast if the connection hangs (firewall/network issues)
        async with asyncio.timeout(INIT_TIMEOUT_SECONDS):
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
    except TimeoutError:
        logger.error("db_init_timeout", message=f"Connection to database timed out after {INIT_TIMEOUT_SECONDS}s. Check network/firewall/URL settings.")
        raise
    except Exception as e:
        logger.error("db_init_failed", error=str(e))
        raise
    logger.info("db_init_complete")


async def main():
    from app.core.logging import setup_logging
    from app.db.session import engine

    setup_logging()
    await init_models(engine)
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
