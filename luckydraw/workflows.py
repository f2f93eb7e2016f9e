import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .errors import JackpotError, NotFoundError
from .jackpot.events import mask_wallet
from .models import JackpotRound, JackpotTicket, JackpotWinner, User
from .models.round import ROUND_COMPLETED
from .models.utils import to_money
from .db.utils import dt_iso

if TYPE_CHECKING:
    from .jackpot.engine import JackpotEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AutoEntryOutcome:
    """Result of the automatic entry for one user."""

    user_id: int
    requested: int
    purchased: int
    error_code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_code is None


def run_auto_entry(
    engine: "JackpotEngine", session_factory: sessionmaker
) -> list[AutoEntryOutcome]:
    """Spend the draw wallet of every opted-in user on tickets.

    Intended to run on a schedule. For each user with ``auto_lucky_draw``
    enabled and a ``lucky_draw_wallet`` covering at least one ticket, buys
    ``floor(wallet / price)`` tickets, capped at the capacity left in the
    round. A failure for one user is logged and the loop moves on.

    Parameters
    ----------
    engine : JackpotEngine
        Engine used for the purchases.
    session_factory : sessionmaker
        Factory used to list eligible users.

    Returns
    -------
    list[AutoEntryOutcome]
        One entry per eligible user, in id order.
    """

    if engine.system_config is not None and engine.system_config.current.pause_lucky_draw:
        logger.info("Auto lucky draw skipped: lucky draw is paused")
        return []

    current = engine.get_active_round()
    if not current.is_active:
        logger.info(f"Auto lucky draw skipped: round {current.round_number} is paused")
        return []

    price = to_money(current.ticket_price)
    with session_factory.begin() as session:
        candidates = [
            (u.id, to_money(u.lucky_draw_wallet))
            for u in session.scalars(
                select(User)
                .where(User.auto_lucky_draw.is_(True), User.lucky_draw_wallet >= price)
                .order_by(User.id)
            )
        ]

    outcomes: list[AutoEntryOutcome] = []
    for user_id, wallet in candidates:
        current = engine.get_active_round()
        price = to_money(current.ticket_price)
        requested = int(wallet // price)
        quantity = min(requested, current.tickets_remaining)
        if quantity < 1:
            continue
        try:
            result = engine.purchase_tickets(user_id, quantity)
        except JackpotError as e:
            logger.warning(f"Auto lucky draw failed for user {user_id}: {e}")
            outcomes.append(AutoEntryOutcome(user_id, quantity, 0, e.code))
            continue
        outcomes.append(AutoEntryOutcome(user_id, quantity, len(result.tickets)))

    purchased = sum(o.purchased for o in outcomes)
    logger.info(
        f"Auto lucky draw processed {len(outcomes)} user(s), {purchased} ticket(s) bought"
    )
    return outcomes


def withdraw_all_surplus(
    engine: "JackpotEngine", session_factory: sessionmaker, withdrawn_by: str
) -> tuple[Decimal, int]:
    """Withdraw the positive surplus of every completed round not yet withdrawn.

    Returns
    -------
    tuple[Decimal, int]
        Total amount withdrawn and the number of rounds it came from.
    """

    with session_factory.begin() as session:
        round_ids = list(
            session.scalars(
                select(JackpotRound.id)
                .where(
                    JackpotRound.status == ROUND_COMPLETED,
                    JackpotRound.surplus_withdrawn.is_(False),
                    JackpotRound.surplus > 0,
                )
                .order_by(JackpotRound.round_number)
            )
        )

    total = Decimal("0")
    for round_id in round_ids:
        total += engine.withdraw_surplus(round_id, withdrawn_by)

    logger.info(f"Total surplus withdrawn: {to_money(total)} from {len(round_ids)} round(s)")
    return to_money(total), len(round_ids)


def list_recent_winners(
    session: Session, rounds: int = 10, per_round: int = 3, limit: int = 20
) -> list[dict[str, Any]]:
    """Top winners of the most recent completed rounds, wallets masked."""

    recent_rounds = session.scalars(
        select(JackpotRound)
        .where(JackpotRound.status == ROUND_COMPLETED)
        .order_by(JackpotRound.draw_executed_at.desc(), JackpotRound.round_number.desc())
        .limit(rounds)
    )

    winners: list[dict[str, Any]] = []
    for rnd in recent_rounds:
        for winner in rnd.winners[:per_round]:
            winners.append(
                {
                    "round_number": rnd.round_number,
                    "wallet": mask_wallet(winner.wallet_address),
                    "prize": to_money(winner.prize),
                    "rank": winner.rank,
                    "date": dt_iso(rnd.draw_executed_at),
                }
            )
    return winners[:limit]


def get_user_tickets(session: Session, user_id: int, limit: int = 10) -> dict[str, Any]:
    """Tickets a user holds in the current round and their past wins.

    Raises
    ------
    NotFoundError
        If the user does not exist.
    """

    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")

    current = JackpotRound.get_current(session)
    active: list[dict[str, Any]] = []
    if current is not None:
        tickets = session.scalars(
            select(JackpotTicket)
            .where(JackpotTicket.round_id == current.id, JackpotTicket.user_id == user_id)
            .order_by(JackpotTicket.sequence)
        )
        active = [
            {
                "ticket_id": t.ticket_code,
                "round_number": current.round_number,
                "purchased_at": dt_iso(t.purchased_at),
            }
            for t in tickets
        ]

    rows = session.execute(
        select(JackpotWinner, JackpotRound.round_number, JackpotRound.draw_executed_at)
        .join(JackpotRound, JackpotWinner.round_id == JackpotRound.id)
        .where(JackpotWinner.user_id == user_id)
        .order_by(JackpotRound.round_number.desc(), JackpotWinner.position)
        .limit(limit)
    ).all()
    wins = [
        {
            "round_number": round_number,
            "ticket_id": winner.ticket_code,
            "rank": winner.rank,
            "prize": to_money(winner.prize),
            "status": winner.status,
            "date": dt_iso(executed_at),
        }
        for winner, round_number, executed_at in rows
    ]

    return {
        "active_tickets": active,
        "total_active": len(active),
        "past_wins": wins,
        "total_wins": len(wins),
    }


__all__ = [
    "AutoEntryOutcome",
    "run_auto_entry",
    "withdraw_all_surplus",
    "list_recent_winners",
    "get_user_tickets",
]
