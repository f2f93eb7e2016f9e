"""Prize chart definition and shuffle-based winner selection."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional, Protocol, Sequence

from ..models.utils import to_money
from .rng import seeded_shuffle


class TicketLike(Protocol):
    user_id: int
    wallet_address: str
    ticket_code: str


@dataclass(frozen=True)
class PrizeTier:
    """One row of the prize chart.

    Attributes
    ----------
    rank : str
        Label shown to players, e.g. ``"1st"`` or ``"11th - 50th"``.
    amount : Decimal
        Prize paid to each winner of the tier.
    winners : int
        Number of winner slots in the tier.
    """

    rank: str
    amount: Decimal
    winners: int

    def __post_init__(self) -> None:
        if self.winners < 0:
            raise ValueError("winners must not be negative")
        if self.amount < 0:
            raise ValueError("amount must not be negative")
        object.__setattr__(self, "amount", to_money(self.amount))


@dataclass(frozen=True)
class WinnerSelection:
    """A ticket picked for a tier during a draw."""

    user_id: int
    wallet_address: str
    ticket_code: str
    rank: str
    prize: Decimal


class PrizeChart:
    """Ordered tiers, consumed top-down against the shuffled tickets."""

    def __init__(self, tiers: Iterable[PrizeTier]) -> None:
        self._tiers: tuple[PrizeTier, ...] = tuple(tiers)
        if not self._tiers:
            raise ValueError("a prize chart needs at least one tier")

    def __iter__(self):
        return iter(self._tiers)

    def __len__(self) -> int:
        return len(self._tiers)

    @property
    def tiers(self) -> tuple[PrizeTier, ...]:
        return self._tiers

    @property
    def total_slots(self) -> int:
        return sum(tier.winners for tier in self._tiers)

    @property
    def total_payout(self) -> Decimal:
        return to_money(sum((tier.amount * tier.winners for tier in self._tiers), Decimal("0")))

    def worst_case_payout(self, tickets_sold: int) -> Decimal:
        """Payout if the draw ran now with ``tickets_sold`` entries.

        Tickets fill the chart from the top, so the most valuable slots are
        always the first ones paid.
        """

        remaining = max(int(tickets_sold), 0)
        total = Decimal("0")
        for tier in self._tiers:
            if remaining <= 0:
                break
            taken = min(tier.winners, remaining)
            total += tier.amount * taken
            remaining -= taken
        return to_money(total)

    def win_chance(self, total_tickets: int) -> str:
        """Nominal chance that a ticket wins something, e.g. ``"10%"``."""

        if total_tickets <= 0:
            return "0%"
        pct = min(self.total_slots, total_tickets) / total_tickets * 100
        return f"{round(pct, 2):g}%"

    def to_list(self) -> list[dict[str, Any]]:
        return [
            {"rank": tier.rank, "amount": tier.amount, "winners": tier.winners}
            for tier in self._tiers
        ]


DEFAULT_PRIZE_CHART = PrizeChart(
    [
        PrizeTier("1st", Decimal("10000"), 1),
        PrizeTier("2nd", Decimal("5000"), 1),
        PrizeTier("3rd", Decimal("4000"), 1),
        PrizeTier("4th - 10th", Decimal("1000"), 7),
        PrizeTier("11th - 50th", Decimal("300"), 40),
        PrizeTier("51st - 100th", Decimal("120"), 50),
        PrizeTier("101st - 500th", Decimal("40"), 400),
        PrizeTier("501st - 1000th", Decimal("20"), 500),
    ]
)


def select_winners(
    tickets: Sequence[TicketLike],
    seed: str,
    chart: Optional[PrizeChart] = None,
) -> list[WinnerSelection]:
    """Pick winners for ``tickets`` using the shuffle driven by ``seed``.

    Parameters
    ----------
    tickets : Sequence[TicketLike]
        Tickets in admission order. The order matters: replaying a draw needs
        the same seed and the same ticket order.
    seed : str
        Published draw seed.
    chart : Optional[PrizeChart], default: None
        Chart to fill; :data:`DEFAULT_PRIZE_CHART` when omitted.

    Returns
    -------
    list[WinnerSelection]
        Winners in shuffled order. Its length is
        ``min(chart.total_slots, len(tickets))``; when there are fewer tickets
        than slots the lower tiers stay empty.
    """

    chart = chart or DEFAULT_PRIZE_CHART
    shuffled = seeded_shuffle(tickets, seed)

    winners: list[WinnerSelection] = []
    index = 0
    for tier in chart:
        for _ in range(tier.winners):
            if index >= len(shuffled):
                return winners
            ticket = shuffled[index]
            winners.append(
                WinnerSelection(
                    user_id=ticket.user_id,
                    wallet_address=ticket.wallet_address,
                    ticket_code=ticket.ticket_code,
                    rank=tier.rank,
                    prize=tier.amount,
                )
            )
            index += 1
    return winners


__all__ = [
    "PrizeTier",
    "PrizeChart",
    "WinnerSelection",
    "DEFAULT_PRIZE_CHART",
    "select_winners",
]
