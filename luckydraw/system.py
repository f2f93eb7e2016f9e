"""Platform-wide emergency switches shared by every service."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Mapping, Optional

from sqlalchemy.orm import sessionmaker

from .errors import ConfigError
from .jackpot.events import ConfigUpdated
from .models import SystemConfig
from .models.system_config import DEFAULT_CONFIG_KEY, EMERGENCY_FLAGS

if TYPE_CHECKING:
    from .notify import EventDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigSnapshot:
    """Read-only copy of the emergency flags at a given version."""

    pause_registrations: bool = False
    pause_deposits: bool = False
    pause_withdrawals: bool = False
    pause_lucky_draw: bool = False
    maintenance_mode: bool = False
    version: int = 0
    updated_by: str = "system"
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: SystemConfig) -> "ConfigSnapshot":
        return cls(
            **row.flags(),
            version=row.version,
            updated_by=row.updated_by,
            updated_at=row.updated_at,
        )

    def flags(self) -> dict[str, bool]:
        return {name: getattr(self, name) for name in EMERGENCY_FLAGS}


class SystemConfigService:
    """Loads and updates the ``default`` :class:`SystemConfig` row.

    The latest snapshot is cached in :attr:`current`; the engine reads it on
    every purchase, so updates made through this service take effect
    immediately in the same process. Call :meth:`load` to pick up changes
    written by another process.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        dispatcher: Optional["EventDispatcher"] = None,
        key: str = DEFAULT_CONFIG_KEY,
    ) -> None:
        self._session_factory = session_factory
        self.dispatcher = dispatcher
        self.key = key
        self._lock = threading.Lock()
        self._current: Optional[ConfigSnapshot] = None

    @property
    def current(self) -> ConfigSnapshot:
        if self._current is None:
            return self.load()
        return self._current

    def load(self) -> ConfigSnapshot:
        """Read the row, creating it with every flag off when missing."""

        with self._lock:
            with self._session_factory.begin() as session:
                row = SystemConfig.get_by_key(session, self.key)
                if row is None:
                    logger.info(f"Creating system config '{self.key}' with defaults")
                    row = SystemConfig(self.key)
                    session.add(row)
                    session.flush()
                snapshot = ConfigSnapshot.from_row(row)
            self._current = snapshot
            return snapshot

    def update(self, changes: Mapping[str, bool], updated_by: str) -> ConfigSnapshot:
        """Apply flag ``changes`` and broadcast ``config_updated``.

        Raises
        ------
        ConfigError
            If ``changes`` names a flag that does not exist.
        """

        unknown = sorted(set(changes) - set(EMERGENCY_FLAGS))
        if unknown:
            raise ConfigError(f"Unknown emergency flags: {unknown}", field=unknown[0])
        if not updated_by:
            raise ValueError("updated_by is required")

        with self._lock:
            with self._session_factory.begin() as session:
                row = SystemConfig.get_by_key(session, self.key)
                if row is None:
                    row = SystemConfig(self.key)
                    session.add(row)
                for name, value in changes.items():
                    setattr(row, name, bool(value))
                row.version = (row.version or 0) + 1
                row.updated_by = updated_by
                row.updated_at = datetime.now(timezone.utc)
                session.flush()
                snapshot = ConfigSnapshot.from_row(row)
            self._current = snapshot

        logger.info(
            f"System config updated by {updated_by} (version {snapshot.version}): "
            f"{dict(changes)}"
        )
        if self.dispatcher is not None:
            self.dispatcher.dispatch(
                [
                    ConfigUpdated(
                        emergency_flags=snapshot.flags(),
                        version=snapshot.version,
                        updated_by=updated_by,
                        changes={k: bool(v) for k, v in changes.items()},
                    )
                ]
            )
        return snapshot


__all__ = ["ConfigSnapshot", "SystemConfigService"]
