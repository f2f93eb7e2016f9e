from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

SQLITE_RELATIVE_PREFIX = "sqlite:///./"


def resolve_sqlite_url(url: str, project_root: Path) -> str:
    """Anchor a ``sqlite:///./path`` URL at ``project_root``.

    Scripts, Alembic and tests run from different working directories; they
    all have to open the same file. Other URLs are returned unchanged.
    """
    if not url.startswith(SQLITE_RELATIVE_PREFIX):
        return url
    relative = url[len(SQLITE_RELATIVE_PREFIX):]
    return f"sqlite:///{(project_root / relative).resolve()}"


def is_sqlite_memory(url: str) -> bool:
    """True for in-memory SQLite URLs, which live and die with one connection."""
    return url.startswith("sqlite") and (":memory:" in url or url.rstrip("/").endswith("sqlite:"))


def dt_iso(dt: Optional[datetime]) -> Optional[str]:
    """Return ``dt`` as an ISO 8601 string in UTC, or None.

    Naive datetimes (SQLite drops tzinfo on reload) are treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()
