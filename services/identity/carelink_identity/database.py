from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from carelink_identity.exceptions import IdentityError
from carelink_shared.database import Base, get_async_engine, get_async_session_factory


async def init_db(app: FastAPI, database_url: str, *, create_schema: bool = False) -> None:
    """Build the engine and session factory for this app instance."""
    engine = get_async_engine(database_url)
    if create_schema:
        # Import registers the tables on Base.metadata.
        from carelink_identity.auth import models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    app.state.db_engine = engine
    app.state.session_factory = get_async_session_factory(engine, expire_on_commit=False)


async def close_db(app: FastAPI) -> None:
    engine: AsyncEngine | None = getattr(app.state, "db_engine", None)
    if engine is not None:
        await engine.dispose()


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    factory = getattr(request.app.state, "session_factory", None)
    if factory is None:
        raise RuntimeError("Database not initialized")
    return factory


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    factory = get_session_factory(request)
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except IdentityError:
            # Domain errors are expected outcomes; bookkeeping done before
            # them (attempt counters, lockouts, discarded codes) must stick.
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise
