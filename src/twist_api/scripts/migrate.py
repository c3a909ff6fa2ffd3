# src/twist_api/scripts/migrate.py
"""Apply Alembic migrations up to head."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

from twist_api.core.settings import settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"


def build_config(url: str | None = None) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", url or settings.database_url_sync)
    return cfg


def run_upgrade_head(url: str | None = None) -> None:
    command.upgrade(build_config(url), "head")


def main() -> None:
    parser = argparse.ArgumentParser(description="Upgrade the configured database to head")
    parser.add_argument(
        "--url",
        default=None,
        help="Override database URL (defaults to effective settings URL)",
    )
    args = parser.parse_args()
    logging.basicConfig(level=settings.log_level.upper())
    run_upgrade_head(args.url)
    logger.info("Database upgraded to head")


if __name__ == "__main__":
    main()
