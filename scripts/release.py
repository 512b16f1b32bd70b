"""
Release step run before the web process starts: migrate to head, then seed
roles and the admin account.

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scripts import init_db  # noqa: E402
from scripts._db_utils import resolve_db_url  # noqa: E402


def alembic_config(db_url: str) -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def release_db_url() -> str:
    """The target database; production must name a Postgres URL explicitly."""
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        raw = (os.environ.get("DATABASE_URL") or "").strip()
        if not raw:
            raise RuntimeError("DATABASE_URL is required in production.")
        if raw.startswith("sqlite"):
            raise RuntimeError("Refusing to release against sqlite in production.")
    return resolve_db_url()


def run_release() -> None:
    db_url = release_db_url()
    print("Upgrading schema to head...", flush=True)
    command.upgrade(alembic_config(db_url), "head")
    print("Seeding roles and admin account...", flush=True)
    init_db.seed_only(database_url=db_url)
    print("Release complete.", flush=True)


if __name__ == "__main__":
    run_release()
