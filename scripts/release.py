"""
Release phase: bring the schema to head and seed defaults.

Runs before the web process starts (scripts/start.py) or by hand:

  python scripts/release.py              # migrate + seed
  python scripts/release.py --check      # report revisions, change nothing
  python scripts/release.py --skip-seed  # migrate only

Seeding is idempotent: the admin account, shift settings and bonus grid are
created when missing, and an existing admin password is never overwritten.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

from app.umbra.db import build_engine
from scripts._db_utils import resolve_database_url


def _alembic_config(db_url: str) -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    # configparser interpolation: escape % in passwords
    cfg.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    return cfg


def _database_url() -> str:
    env = (os.environ.get("ENV") or "").strip().lower()
    db_url = resolve_database_url()
    if env in ("prod", "production"):
        if not (os.environ.get("DATABASE_URL") or "").strip():
            raise RuntimeError("DATABASE_URL must be set for a production release.")
        if db_url.startswith("sqlite"):
            raise RuntimeError("Refusing to release against sqlite in production; point DATABASE_URL at Postgres.")
    return db_url


def revision_status(db_url: str) -> tuple[str | None, str | None]:
    """(current, head) alembic revisions; current is None on an empty database."""
    head = ScriptDirectory.from_config(_alembic_config(db_url)).get_current_head()
    engine = build_engine(db_url)
    try:
        with engine.connect() as conn:
            current = MigrationContext.configure(conn).get_current_revision()
    finally:
        engine.dispose()
    return current, head


def run_release(*, seed: bool = True) -> None:
    db_url = _database_url()
    current, head = revision_status(db_url)
    print(f"=== Umbra release: schema {current or '(empty)'} -> {head} ===", flush=True)

    if current != head:
        command.upgrade(_alembic_config(db_url), "head")
        print("Migrations applied.", flush=True)
    else:
        print("Schema already at head.", flush=True)

    if seed:
        from scripts import init_db

        init_db.seed_only(database_url=db_url)
    print("=== Umbra release done ===", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Migrate the database and seed defaults.")
    parser.add_argument("--check", action="store_true", help="Only report current and head revisions.")
    parser.add_argument("--skip-seed", action="store_true", help="Run migrations without seeding.")
    args = parser.parse_args()

    if args.check:
        current, head = revision_status(_database_url())
        print(f"current={current or '(empty)'} head={head}")
        sys.exit(0 if current == head else 1)
    run_release(seed=not args.skip_seed)


if __name__ == "__main__":
    main()
