"""Run one pass of the automatic lucky-draw entry (schedule hourly)."""

import logging

from luckydraw.config import load_settings
from luckydraw.db.engine import get_sessionmaker, make_engine
from luckydraw.jackpot import JackpotEngine
from luckydraw.notify import EventDispatcher
from luckydraw.system import SystemConfigService
from luckydraw.workflows import run_auto_entry


def main() -> int:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    settings = load_settings()
    Session = get_sessionmaker(make_engine())
    dispatcher = EventDispatcher.from_settings(settings)
    system_config = SystemConfigService(Session, dispatcher=dispatcher)
    jackpot = JackpotEngine(
        Session, settings=settings, dispatcher=dispatcher, system_config=system_config
    )
    try:
        outcomes = run_auto_entry(jackpot, Session)
        # Let queued winner announcements go out before the process exits.
        dispatcher.announcer.join()
    finally:
        dispatcher.close()
    return 0 if all(o.ok for o in outcomes) else 1


if __name__ == "__main__":
    raise SystemExit(main())
