"""
Migrate the schema to head and seed the bootstrap admin.

Run once per deploy, before any web worker starts:
  python scripts/release.py
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

logger = logging.getLogger("crm.release")

PRODUCTION_ENVS = ("prod", "production")


def database_url() -> str:
    url = (os.environ.get("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL must be set for a release.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in PRODUCTION_ENVS and url.startswith("sqlite"):
        raise RuntimeError("A production release needs a Postgres DATABASE_URL, not sqlite.")
    return url


def alembic_config(url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    # alembic.ini values are interpolated, so percent-encoded passwords need doubling.
    cfg.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return cfg


def run_release() -> None:
    from alembic import command

    from scripts import init_db

    url = database_url()
    logger.info("Upgrading schema to head")
    command.upgrade(alembic_config(url), "head")
    logger.info("Seeding admin account")
    init_db.seed_only(database_url=url)
    logger.info("Release finished")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run_release()
