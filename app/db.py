from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.settings import settings


def make_engine(url: str) -> Engine:
    """Postgres in deployments; SQLite for local runs, where uvicorn worker threads share the file."""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, pool_size=10, max_overflow=20)


engine = make_engine(settings.database_url)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_session() -> Iterator[Session]:
    """Request-scoped session. Commits when the handler returns, rolls back if it raises."""
    with SessionLocal() as session, session.begin():
        yield session
