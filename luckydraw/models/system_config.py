from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, Integer, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import Base

DEFAULT_CONFIG_KEY = "default"

EMERGENCY_FLAGS = (
    "pause_registrations",
    "pause_deposits",
    "pause_withdrawals",
    "pause_lucky_draw",
    "maintenance_mode",
)


class SystemConfig(Base):
    """Platform-wide emergency switches, stored as a single versioned row."""

    __tablename__ = "system_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    pause_registrations: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pause_deposits: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pause_withdrawals: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pause_lucky_draw: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    maintenance_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    """Bumped on every update; lets readers detect a stale cached copy."""

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_by: Mapped[str] = mapped_column(String(64), nullable=False, default="system")

    def __init__(self, key: str = DEFAULT_CONFIG_KEY, **flags: bool) -> None:
        self.key = key
        unknown = set(flags) - set(EMERGENCY_FLAGS)
        if unknown:
            raise ValueError(f"Unknown emergency flags: {sorted(unknown)}")
        for name in EMERGENCY_FLAGS:
            setattr(self, name, bool(flags.get(name, False)))
        self.version = 1
        self.updated_by = "system"

    @classmethod
    def get_by_key(
        cls, session: Session, key: str = DEFAULT_CONFIG_KEY
    ) -> Optional["SystemConfig"]:
        return session.scalar(select(cls).where(cls.key == key))

    def flags(self) -> dict[str, bool]:
        return {name: bool(getattr(self, name)) for name in EMERGENCY_FLAGS}

    def to_json(self) -> dict[str, Any]:
        from luckydraw.db.utils import dt_iso

        return {
            "key": self.key,
            "emergency_flags": self.flags(),
            "version": self.version,
            "updated_at": dt_iso(self.updated_at),
            "updated_by": self.updated_by,
        }
