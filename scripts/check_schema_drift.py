"""Compare the live database schema with the luckydraw models.

Exit codes: 0 when they match, 1 when Alembic would emit operations,
2 when the comparison itself failed.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext
from sqlalchemy.engine import Engine

from luckydraw.db.engine import make_engine
from luckydraw.models import Base

logger = logging.getLogger("check_schema_drift")


def _flatten(ops, depth: int = 0) -> list[str]:
    lines: list[str] = []
    for op in ops:
        lines.append(f"{'  ' * depth}- {op}")
        nested = getattr(op, "ops", None)
        if nested:
            lines.extend(_flatten(nested, depth + 1))
    return lines


def schema_drift(engine: Engine) -> Optional[list[str]]:
    """Return the pending migration operations, or ``None`` if Alembic gave none."""
    with engine.connect() as connection:
        context = MigrationContext.configure(
            connection=connection,
            opts={
                "compare_type": True,
                "render_as_batch": connection.dialect.name == "sqlite",
            },
        )
        upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    if upgrade_ops is None:
        return None
    return _flatten(upgrade_ops.ops or [])


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    argv = sys.argv[1:] if argv is None else argv
    engine = make_engine(argv[0] if argv else None)
    target = engine.url.render_as_string(hide_password=True)

    try:
        drift = schema_drift(engine)
    except Exception:
        logger.exception(f"Schema drift check: ERROR for {target}")
        return 2
    if drift is None:
        logger.error(f"Schema drift check: ERROR for {target}: no upgrade ops produced")
        return 2
    if not drift:
        logger.info(f"Schema drift check: OK for {target}")
        return 0
    logger.warning(f"Schema drift check: {len(drift)} difference(s) for {target}")
    for line in drift:
        logger.warning(line)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
