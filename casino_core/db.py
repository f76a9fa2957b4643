from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from casino_core.create_postgres_engine import create_postgres_engine
from casino_core.create_sqlite_engine import create_sqlite_engine
from casino_core.load_secrets import ledger_backend
from casino_core.models.schemas import Base


def create_engine(backend: str = ledger_backend) -> AsyncEngine | None:
    if backend == "memory":
        return None
    if backend == "sqlite":
        return create_sqlite_engine()
    return create_postgres_engine()


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    # Centralized session factory to avoid creating it in router modules.
    return async_sessionmaker(
        autocommit=False,
        class_=AsyncSession,
        autoflush=True,
        expire_on_commit=False,
        bind=engine,
    )


async def create_tables(engine: AsyncEngine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
