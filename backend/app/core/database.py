from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.core.config import settings

engine = create_engine(
    settings.APP_DATABASE_DSN,
    connect_args=({"check_same_thread": False} if "sqlite" in settings.APP_DATABASE_DSN else {}),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base: Any = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine)


def set_lock_timeout(db: Session, timeout_ms: int | None) -> None:
    """Bound how long the current transaction waits for row locks.

    Only PostgreSQL honours row locks; other dialects serialise writers on
    their own and the statement is skipped. ``None`` waits indefinitely.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    value = f"{int(timeout_ms)}ms" if timeout_ms is not None else "0"
    db.execute(text(f"SET LOCAL lock_timeout = '{value}'"))


_LOCK_SQLSTATES = {"55P03", "40001", "40P01"}


def is_lock_contention(exc: BaseException) -> bool:
    """True when a DBAPI error means "row busy" rather than "store broken"."""
    orig = getattr(exc, "orig", exc)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _LOCK_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()
