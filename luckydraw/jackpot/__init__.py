"""Jackpot round engine: seeded draws, prize chart, balances and events."""

from .rng import SeededRNG, generate_seed, seeded_shuffle
from .prizes import (
    DEFAULT_PRIZE_CHART,
    PrizeChart,
    PrizeTier,
    WinnerSelection,
    select_winners,
)
from .ledger import BalanceBucket, BalanceLedger
from .engine import (
    DistributionReport,
    DrawResult,
    JackpotEngine,
    PurchaseResult,
    RoundLockRegistry,
    TicketReceipt,
    replay_draw,
)

__all__ = [
    "SeededRNG",
    "generate_seed",
    "seeded_shuffle",
    "DEFAULT_PRIZE_CHART",
    "PrizeChart",
    "PrizeTier",
    "WinnerSelection",
    "select_winners",
    "BalanceBucket",
    "BalanceLedger",
    "DistributionReport",
    "DrawResult",
    "JackpotEngine",
    "PurchaseResult",
    "RoundLockRegistry",
    "TicketReceipt",
    "replay_draw",
]
