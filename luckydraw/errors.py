"""Error taxonomy raised by the jackpot engine.

Every error carries a stable ``code`` so callers (HTTP routes, schedulers)
can map failures to user-facing messages without parsing text.
"""

from __future__ import annotations

from typing import Optional


class JackpotError(Exception):
    """Base class for all jackpot failures."""

    code = "JACKPOT_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class PausedError(JackpotError):
    """Ticket sales are paused for the round or platform-wide."""

    code = "PAUSED"


class CapacityExceededError(JackpotError):
    code = "CAPACITY_EXCEEDED"

    def __init__(self, message: str, *, requested: int, remaining: int) -> None:
        super().__init__(message)
        self.requested = requested
        self.remaining = remaining


class NotFoundError(JackpotError):
    """A user or round does not exist."""

    code = "NOT_FOUND"


class InsufficientFundsError(JackpotError):
    """The checked balance cannot cover the ticket cost.

    ``balance`` names the bucket that was checked so the client can tell the
    user which wallet to top up.
    """

    code = "INSUFFICIENT_FUNDS"

    def __init__(self, message: str, *, balance: str, required=None, available=None) -> None:
        super().__init__(message)
        self.balance = balance
        self.required = required
        self.available = available


class InvalidStateError(JackpotError):
    code = "INVALID_STATE"


class ImmutableParametersError(JackpotError):
    code = "IMMUTABLE_PARAMETERS"


class AlreadyWithdrawnError(JackpotError):
    code = "ALREADY_WITHDRAWN"


class ConfigError(JackpotError):
    """Invalid round parameters or platform configuration."""

    code = "CONFIG_ERROR"

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class ConcurrencyError(JackpotError):
    """Optimistic concurrency retries were exhausted."""

    code = "CONFLICT"


__all__ = [
    "JackpotError",
    "PausedError",
    "CapacityExceededError",
    "NotFoundError",
    "InsufficientFundsError",
    "InvalidStateError",
    "ImmutableParametersError",
    "AlreadyWithdrawnError",
    "ConfigError",
    "ConcurrencyError",
]
