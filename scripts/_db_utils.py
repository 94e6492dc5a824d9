from __future__ import annotations

import os
from contextlib import contextmanager
from collections.abc import Generator

from dotenv import load_dotenv
from sqlalchemy.orm import Session, sessionmaker

from app.umbra.config import normalize_database_url
from app.umbra.db import build_engine

DEFAULT_DATABASE_URL = "sqlite:///umbra.db"


def resolve_database_url(database_url: str | None = None) -> str:
    """Explicit argument, then DATABASE_URL (including .env), then the local sqlite file."""
    load_dotenv()
    return normalize_database_url(database_url or os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL)


@contextmanager
def script_session(db_url: str) -> Generator[Session, None, None]:
    """
    Standalone session for cron and release scripts, which run without a Flask app.
    Commits on success, rolls back on error.
    """
    engine = build_engine(db_url)
    s: Session = sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
