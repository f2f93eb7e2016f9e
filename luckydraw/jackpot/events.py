"""Domain events produced by the jackpot engine.

The engine only builds these value objects; :mod:`luckydraw.notify` turns
them into transport messages. Payloads are plain dictionaries with
``Decimal`` money values and ISO timestamps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, ClassVar, Optional

from ..db.utils import dt_iso


def mask_wallet(address: Optional[str]) -> Optional[str]:
    """Return ``address`` truncated for public display.

    Keeps the first 6 and last 4 characters, e.g. ``0x1234...cdef``.
    Addresses shorter than 10 characters are returned unchanged.
    """

    if not address or len(address) < 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


@dataclass(frozen=True)
class JackpotEvent:
    """Base class; subclasses set ``topic`` and implement :meth:`payload`."""

    topic: ClassVar[str] = "jackpot:event"

    @property
    def room(self) -> Optional[str]:
        """Delivery room; ``None`` broadcasts to everyone."""
        return None

    def payload(self) -> dict[str, Any]:  # pragma: no cover - abstract
        raise NotImplementedError


@dataclass(frozen=True)
class TicketSold(JackpotEvent):
    topic: ClassVar[str] = "jackpot:ticket_sold"

    round_number: int
    tickets_sold: int
    total_tickets: int
    progress: float
    buyer_wallet: str
    quantity: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def payload(self) -> dict[str, Any]:
        return {
            "round_number": self.round_number,
            "tickets_sold": self.tickets_sold,
            "total_tickets": self.total_tickets,
            "progress": self.progress,
            "buyer": mask_wallet(self.buyer_wallet),
            "quantity": self.quantity,
            "timestamp": dt_iso(self.timestamp),
        }


@dataclass(frozen=True)
class StatusUpdate(JackpotEvent):
    topic: ClassVar[str] = "jackpot:status_update"

    round_number: int
    tickets_sold: int
    total_tickets: int
    ticket_price: Decimal
    is_active: bool
    status: str
    progress: float

    def payload(self) -> dict[str, Any]:
        return {
            "round_number": self.round_number,
            "tickets_sold": self.tickets_sold,
            "total_tickets": self.total_tickets,
            "ticket_price": self.ticket_price,
            "is_active": self.is_active,
            "status": self.status,
            "progress": self.progress,
        }


@dataclass(frozen=True)
class WinnerAnnounced(JackpotEvent):
    """Announcement for one winner; emitted with pacing by the announcer."""

    topic: ClassVar[str] = "jackpot:winner_announced"

    round_number: int
    wallet_address: str
    prize: Decimal
    rank: str

    def payload(self) -> dict[str, Any]:
        return {
            "round_number": self.round_number,
            "wallet": mask_wallet(self.wallet_address),
            "prize": self.prize,
            "rank": self.rank,
        }


@dataclass(frozen=True)
class DrawComplete(JackpotEvent):
    topic: ClassVar[str] = "jackpot:draw_complete"

    round_number: int
    total_winners: int
    top_winners: tuple[WinnerAnnounced, ...] = ()

    def payload(self) -> dict[str, Any]:
        return {
            "round_number": self.round_number,
            "total_winners": self.total_winners,
            "top_winners": [
                {
                    "wallet": mask_wallet(w.wallet_address),
                    "prize": w.prize,
                    "rank": w.rank,
                }
                for w in self.top_winners
            ],
        }


@dataclass(frozen=True)
class NewRound(JackpotEvent):
    topic: ClassVar[str] = "jackpot:new_round"

    round_number: int
    ticket_price: Decimal
    total_tickets: int
    total_prize_pool: Decimal

    def payload(self) -> dict[str, Any]:
        return {
            "round_number": self.round_number,
            "ticket_price": self.ticket_price,
            "total_tickets": self.total_tickets,
            "total_prize_pool": self.total_prize_pool,
        }


@dataclass(frozen=True)
class BalanceUpdate(JackpotEvent):
    """Private notice to a winner that their prize was credited."""

    topic: ClassVar[str] = "balance_update"

    user_id: int
    amount: Decimal
    new_balance: Decimal
    kind: str = "lucky_win"

    @property
    def room(self) -> Optional[str]:
        return str(self.user_id)

    def payload(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "amount": self.amount,
            "new_balance": self.new_balance,
        }


@dataclass(frozen=True)
class ConfigUpdated(JackpotEvent):
    topic: ClassVar[str] = "config_updated"

    emergency_flags: dict
    version: int
    updated_by: str
    changes: dict = field(default_factory=dict)

    def payload(self) -> dict[str, Any]:
        return {
            "emergency_flags": dict(self.emergency_flags),
            "version": self.version,
            "updated_by": self.updated_by,
            "changes": dict(self.changes),
        }


__all__ = [
    "mask_wallet",
    "JackpotEvent",
    "TicketSold",
    "StatusUpdate",
    "WinnerAnnounced",
    "DrawComplete",
    "NewRound",
    "BalanceUpdate",
    "ConfigUpdated",
]
