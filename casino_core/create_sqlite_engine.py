import pathlib

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from casino_core.load_secrets import sqlite_path

file_path = pathlib.Path(sqlite_path) if sqlite_path else pathlib.Path(__file__).parents[1] / "casino_ledger.sqlite3"
sqlite_url = f"sqlite+aiosqlite:///{file_path}"


def create_sqlite_engine(url: str = sqlite_url):
    """File-backed by default; an in-memory URL shares one connection so every
    session sees the same database.
    """
    if url.endswith(":memory:"):
        return create_async_engine(url, echo=False, poolclass=StaticPool, connect_args={"check_same_thread": False})
    return create_async_engine(url=url, echo=False)
