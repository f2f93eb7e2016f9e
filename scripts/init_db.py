from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from luckydraw.config import load_settings
from luckydraw.db.engine import get_sessionmaker, make_engine
from luckydraw.jackpot import JackpotEngine
from luckydraw.system import SystemConfigService

logger = logging.getLogger("init_db")

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to ``target_revision``."""
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def bootstrap_rows(engine) -> None:
    """Make sure the emergency-flag row and a current round exist."""
    Session = get_sessionmaker(engine)
    settings = load_settings()
    config = SystemConfigService(Session)
    snapshot = config.load()
    logger.info(f"System config version {snapshot.version}: {snapshot.flags()}")

    jackpot = JackpotEngine(Session, settings=settings, system_config=config)
    current = jackpot.get_active_round()
    logger.info(
        f"Current round {current.round_number}: {current.tickets_sold}/{current.total_tickets} "
        f"tickets at {current.ticket_price}"
    )


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    upgrade_db()
    engine = make_engine()
    tables = sorted(inspect(engine).get_table_names())
    logger.info(f"Tables: {', '.join(tables)}")
    bootstrap_rows(engine)


if __name__ == "__main__":
    main()
