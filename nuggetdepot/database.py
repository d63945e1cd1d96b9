import asyncio
import logging
from datetime import datetime, timezone

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from nuggetdepot.migrations import run_migrations

Base = declarative_base()
logger = logging.getLogger("nuggetdepot.database")


def _register_models():
    # models must be imported so their tables land in Base.metadata
    import models.chat  # noqa: F401
    import models.feed  # noqa: F401
    import models.profile  # noqa: F401
    import models.social  # noqa: F401


class Database:
    """Process-wide persistence handle: one engine and one session factory.

    Created by the app factory, initialised once at startup and handed to
    request handlers through :func:`get_db`.
    """

    def __init__(self, url: str, *, echo: bool = False):
        self.url = url
        self.engine = create_async_engine(url, echo=echo)
        self.session_factory = sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self.ready = False
        self._ready_lock = asyncio.Lock()

    async def create_tables(self):
        if self.ready:
            return
        _register_models()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            await run_migrations(conn)
        self.ready = True
        logger.info("schema ready url=%s", self.engine.url.render_as_string(hide_password=True))

    async def ensure_ready(self) -> bool:
        """Create the schema once; later callers wait for the first attempt."""
        if self.ready:
            return True
        async with self._ready_lock:
            if self.ready:
                return True
            try:
                await self.create_tables()
            except (SQLAlchemyError, OSError):
                logger.exception("database unavailable")
                return False
        return True

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def dispose(self):
        await self.engine.dispose()


def build_database(url: str, *, echo: bool = False) -> Database | None:
    if not url:
        logger.warning("DATABASE_URL not set; persistence disabled")
        return None
    return Database(url, echo=echo)


async def get_db(request: Request):
    """Yield a session, or ``None`` when persistence is not configured or unreachable."""
    database: Database | None = getattr(request.app.state, "database", None)
    if database is None or not await database.ensure_ready():
        yield None
        return
    async with database.session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
