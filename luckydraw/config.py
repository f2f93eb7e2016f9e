"""Runtime settings for the jackpot engine, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_TICKET_PRICE = Decimal("10")
DEFAULT_TOTAL_TICKETS = 10000
DEFAULT_ANNOUNCE_INTERVAL = 1.0


@dataclass(frozen=True)
class JackpotSettings:
    """Platform defaults and tuning knobs for the jackpot engine.

    Attributes
    ----------
    ticket_price : Decimal
        Price of one ticket for rounds created without explicit parameters.
    total_tickets : int
        Capacity of rounds created without explicit parameters.
    announce_interval : float
        Seconds between consecutive ``winner_announced`` events.
    notify_url : Optional[str]
        Push gateway endpoint. When unset, events are only dispatched to
        in-process transports.
    notify_timeout : float
        HTTP timeout in seconds for the push gateway.
    max_retries : int
        Attempts made when an optimistic-concurrency conflict is detected on
        the round row.
    """

    ticket_price: Decimal = DEFAULT_TICKET_PRICE
    total_tickets: int = DEFAULT_TOTAL_TICKETS
    announce_interval: float = DEFAULT_ANNOUNCE_INTERVAL
    notify_url: Optional[str] = None
    notify_timeout: float = 10.0
    max_retries: int = 3

    def __post_init__(self) -> None:
        if self.ticket_price <= 0:
            raise ConfigError("ticket_price must be positive", field="ticket_price")
        if self.total_tickets <= 0:
            raise ConfigError("total_tickets must be positive", field="total_tickets")
        if self.announce_interval < 0:
            raise ConfigError(
                "announce_interval must not be negative", field="announce_interval"
            )
        if self.max_retries < 1:
            raise ConfigError("max_retries must be at least 1", field="max_retries")


def _read_decimal(env: Mapping[str, str], key: str, default: Decimal) -> Decimal:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return Decimal(raw)
    except InvalidOperation as e:
        raise ConfigError(f"{key} must be a decimal number, got {raw!r}", field=key) from e


def _read_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}", field=key) from e


def _read_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be a number, got {raw!r}", field=key) from e


def load_settings(environ: Optional[Mapping[str, str]] = None) -> JackpotSettings:
    """Build :class:`JackpotSettings` from environment variables.

    ``.env`` is loaded first when reading from the process environment. Pass
    ``environ`` to read from an explicit mapping instead (used by tests).
    """

    if environ is None:
        load_dotenv()
        environ = os.environ

    return JackpotSettings(
        ticket_price=_read_decimal(environ, "JACKPOT_TICKET_PRICE", DEFAULT_TICKET_PRICE),
        total_tickets=_read_int(environ, "JACKPOT_TOTAL_TICKETS", DEFAULT_TOTAL_TICKETS),
        announce_interval=_read_float(
            environ, "JACKPOT_ANNOUNCE_INTERVAL", DEFAULT_ANNOUNCE_INTERVAL
        ),
        notify_url=environ.get("JACKPOT_NOTIFY_URL") or None,
        notify_timeout=_read_float(environ, "JACKPOT_NOTIFY_TIMEOUT", 10.0),
        max_retries=_read_int(environ, "JACKPOT_MAX_RETRIES", 3),
    )


__all__ = ["JackpotSettings", "load_settings"]
