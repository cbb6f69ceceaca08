# backend/openpro_sync/db/session.py

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from openpro_sync.core.config import settings
from openpro_sync.db.base import Base


def _connect_args(url: str) -> dict:
    # SQLite connections are shared between the request thread pool and the scheduler
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    future=True,
    connect_args=_connect_args(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def init_db() -> None:
    """
    Called once at application start.
    Registers every domain model on the metadata, then runs create_all.
    """
    import openpro_sync.domain.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
