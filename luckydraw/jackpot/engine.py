"""Round lifecycle orchestration: ticket sales, draws, payouts and rollover."""

from __future__ import annotations

import logging
import operator
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ..config import JackpotSettings
from ..errors import (
    AlreadyWithdrawnError,
    CapacityExceededError,
    ConcurrencyError,
    ImmutableParametersError,
    InvalidStateError,
    NotFoundError,
    PausedError,
)
from ..models import JackpotRound, JackpotTicket, JackpotWinner, User
from ..models.round import (
    DRAW_AUTOMATIC,
    DRAW_MANUAL,
    ROUND_ACTIVE,
    ROUND_COMPLETED,
    ROUND_DRAWING,
    WINNER_COMPLETED,
    WINNER_FAILED,
)
from ..models.utils import to_money
from .events import (
    BalanceUpdate,
    DrawComplete,
    JackpotEvent,
    NewRound,
    StatusUpdate,
    TicketSold,
    WinnerAnnounced,
    mask_wallet,
)
from .ledger import BalanceBucket, BalanceLedger
from .prizes import DEFAULT_PRIZE_CHART, PrizeChart, WinnerSelection, select_winners
from .rng import generate_seed

if TYPE_CHECKING:
    from ..notify import EventDispatcher
    from ..system import SystemConfigService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _RoundClosed(Exception):
    """The round completed while the caller was waiting for it."""


class RoundLockRegistry:
    """Hands out one re-entrant lock per round id.

    Purchases and draws for the same round are serialized inside the process;
    the round's version column catches writers in other processes.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, threading.RLock] = {}

    def lock(self, round_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(round_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[round_id] = lock
            return lock

    def discard(self, round_id: int) -> None:
        with self._guard:
            self._locks.pop(round_id, None)


@dataclass(frozen=True)
class TicketReceipt:
    ticket_id: str
    sequence: int
    purchased_at: datetime


@dataclass(frozen=True)
class DistributionReport:
    """Outcome of crediting prizes for a round."""

    round_id: int
    completed: int
    failed: tuple[str, ...]
    total_credited: Decimal


@dataclass(frozen=True)
class DrawResult:
    round_id: int
    round_number: int
    draw_seed: str
    method: str
    executed_by: Optional[str]
    winners: tuple[WinnerSelection, ...]
    distribution: DistributionReport
    next_round_number: int


@dataclass(frozen=True)
class PurchaseResult:
    """What a buyer gets back from :meth:`JackpotEngine.purchase_tickets`."""

    round_id: int
    round_number: int
    tickets: tuple[TicketReceipt, ...]
    balance_source: str
    new_balance: Decimal
    tickets_sold: int
    total_tickets: int
    progress: float
    draw: Optional[DrawResult] = None

    @property
    def ticket_ids(self) -> list[str]:
        return [t.ticket_id for t in self.tickets]


@dataclass
class _PurchaseOutcome:
    result: PurchaseResult
    event: TicketSold
    is_full: bool


class JackpotEngine:
    """Orchestrates the jackpot round lifecycle.

    The engine owns its transactions: each operation opens sessions from
    ``session_factory``, commits the state change and only then hands the
    resulting domain events to the dispatcher.

    Parameters
    ----------
    session_factory : sessionmaker
        Factory bound to the database holding users and rounds. Sessions
        should use ``expire_on_commit=False`` so returned rounds stay readable.
    settings : Optional[JackpotSettings], default: None
        Platform defaults for new rounds and retry limits.
    prize_chart : Optional[PrizeChart], default: None
        Chart used for draws; :data:`DEFAULT_PRIZE_CHART` when omitted.
    dispatcher : Optional[EventDispatcher], default: None
        Receives domain events. A dispatcher without transports is created
        when omitted.
    system_config : Optional[SystemConfigService], default: None
        Source of the platform-wide ``pause_lucky_draw`` switch.
    seed_factory : Optional[Callable[[], str]], default: None
        Produces draw seeds; defaults to a 32-byte secure random hex string.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        settings: Optional[JackpotSettings] = None,
        prize_chart: Optional[PrizeChart] = None,
        dispatcher: Optional["EventDispatcher"] = None,
        system_config: Optional["SystemConfigService"] = None,
        seed_factory: Optional[Callable[[], str]] = None,
        locks: Optional[RoundLockRegistry] = None,
    ) -> None:
        self._session_factory = session_factory
        self.settings = settings or JackpotSettings()
        self.prize_chart = prize_chart or DEFAULT_PRIZE_CHART
        if dispatcher is None:
            from ..notify import EventDispatcher

            dispatcher = EventDispatcher(announce_interval=self.settings.announce_interval)
        self.dispatcher = dispatcher
        self.system_config = system_config
        self._seed_factory = seed_factory or generate_seed
        self._locks = locks or RoundLockRegistry()
        self._bootstrap_lock = threading.Lock()

    # -------- reads --------
    def get_active_round(self) -> JackpotRound:
        """Return the current round, creating one when none exists.

        A round created here copies the price and capacity of the latest
        round; only the very first round uses the platform defaults.
        """

        with self._bootstrap_lock:
            with self._session_factory.begin() as session:
                current = JackpotRound.get_current(session)
                latest = JackpotRound.get_latest(session) if current is None else None
            if current is not None:
                return current

            if latest is None:
                logger.info("No jackpot round found, creating first round")
                params = {}
            else:
                logger.warning(
                    f"No current round after round {latest.round_number}; opening the next one"
                )
                params = {
                    "ticket_price": latest.ticket_price,
                    "total_tickets": latest.total_tickets,
                }
            try:
                return self._create_round(**params)
            except IntegrityError:
                # Another process created it first.
                logger.info("Round bootstrap raced with another writer; re-reading")
                with self._session_factory.begin() as session:
                    current = JackpotRound.get_current(session)
                if current is None:
                    raise
                return current

    def get_round(self, round_id: int) -> JackpotRound:
        with self._session_factory.begin() as session:
            rnd = session.get(JackpotRound, round_id)
            if rnd is None:
                raise NotFoundError(f"Round {round_id} not found")
            return rnd

    def get_tickets(self, round_id: int) -> list[JackpotTicket]:
        """Tickets of a round in admission order, e.g. to replay its draw."""

        with self._session_factory.begin() as session:
            if session.get(JackpotRound, round_id) is None:
                raise NotFoundError(f"Round {round_id} not found")
            return JackpotTicket.get_by_round(session, round_id)

    def get_round_status(self) -> dict[str, Any]:
        """Public view of the current round for the lucky-draw page."""

        rnd = self.get_active_round()
        with self._session_factory.begin() as session:
            last_completed = (
                session.query(JackpotRound)
                .filter(JackpotRound.status == ROUND_COMPLETED)
                .order_by(JackpotRound.round_number.desc())
                .first()
            )
            recent = list(last_completed.winners[-3:]) if last_completed is not None else []

        return {
            "round_id": rnd.id,
            "round_number": rnd.round_number,
            "total_tickets": rnd.total_tickets,
            "tickets_sold": rnd.tickets_sold,
            "ticket_price": to_money(rnd.ticket_price),
            "total_prize_pool": to_money(rnd.total_prize_pool),
            "progress": rnd.progress,
            "is_full": rnd.is_full,
            "status": rnd.status,
            "is_active": rnd.is_active,
            "draw_is_active": rnd.is_active and not self._platform_paused(),
            "prizes": self.prize_chart.to_list(),
            "total_winners": self.prize_chart.total_slots,
            "win_chance": self.prize_chart.win_chance(rnd.total_tickets),
            "recent_winners": [
                {
                    "wallet": mask_wallet(w.wallet_address),
                    "prize": to_money(w.prize),
                    "rank": w.rank,
                }
                for w in recent
            ],
        }

    # -------- ticket sales --------
    def purchase_tickets(self, user_id: int, quantity: int = 1) -> PurchaseResult:
        """Buy ``quantity`` tickets in the current round for ``user_id``.

        The balance debit and the ticket append commit in one transaction, so
        a failure after validation leaves both untouched. When the purchase
        fills the round, the draw runs before this method returns and the
        result carries it in ``draw``.

        Raises
        ------
        TypeError
            If ``quantity`` is not an integer.
        ValueError
            If ``quantity`` is smaller than 1.
        PausedError
            If the round or the whole lucky draw is paused.
        InvalidStateError
            If the round is being drawn by another process.
        CapacityExceededError
            If the round cannot hold ``quantity`` more tickets.
        NotFoundError
            If the user does not exist.
        InsufficientFundsError
            If neither the draw wallet nor the game balance covers the cost.
        ConcurrencyError
            If the round kept changing underneath the purchase.
        """

        if isinstance(quantity, bool):
            raise TypeError("quantity must be an integer, not bool")
        quantity = operator.index(quantity)
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        if self._platform_paused():
            raise PausedError("Lucky Draw is currently paused")

        for attempt in range(1, self.settings.max_retries + 1):
            current = self.get_active_round()
            with self._locks.lock(current.id):
                try:
                    outcome = self._purchase_in_round(current.id, user_id, quantity)
                except _RoundClosed:
                    logger.info(
                        f"Round {current.round_number} closed before purchase; retrying on the next round"
                    )
                    continue
                except StaleDataError:
                    logger.warning(
                        f"Concurrent update on round {current.round_number} "
                        f"(attempt {attempt}/{self.settings.max_retries})"
                    )
                    continue

                self.dispatcher.dispatch([outcome.event])
                result = outcome.result
                if outcome.is_full:
                    logger.info(f"Round {result.round_number} is full, executing draw")
                    draw = self.execute_draw(result.round_id, None, DRAW_AUTOMATIC)
                    result = PurchaseResult(
                        round_id=result.round_id,
                        round_number=result.round_number,
                        tickets=result.tickets,
                        balance_source=result.balance_source,
                        new_balance=result.new_balance,
                        tickets_sold=result.tickets_sold,
                        total_tickets=result.total_tickets,
                        progress=result.progress,
                        draw=draw,
                    )
                return result

        raise ConcurrencyError(
            f"Could not purchase tickets after {self.settings.max_retries} attempts"
        )

    def _purchase_in_round(
        self, round_id: int, user_id: int, quantity: int
    ) -> _PurchaseOutcome:
        with self._session_factory.begin() as session:
            rnd = session.get(JackpotRound, round_id)
            if rnd is None:
                raise NotFoundError(f"Round {round_id} not found")
            if rnd.status == ROUND_COMPLETED:
                raise _RoundClosed()
            if not rnd.is_active:
                raise PausedError("Lucky Draw is currently paused")
            if rnd.status == ROUND_DRAWING:
                raise InvalidStateError(
                    f"Round {rnd.round_number} is drawing; ticket sales are closed"
                )
            if rnd.tickets_sold + quantity > rnd.total_tickets:
                raise CapacityExceededError(
                    f"Exceeds round ticket limit: {rnd.tickets_remaining} tickets left",
                    requested=quantity,
                    remaining=rnd.tickets_remaining,
                )

            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")

            cost = to_money(rnd.ticket_price) * quantity
            bucket = BalanceLedger.choose_source(user, cost)
            new_balance = BalanceLedger.debit(session, user.id, bucket, cost)

            now = _utcnow()
            tickets = [
                rnd.add_ticket(user.id, user.wallet_address, now) for _ in range(quantity)
            ]
            rnd.calculate_surplus(self.prize_chart)
            session.flush()

            result = PurchaseResult(
                round_id=rnd.id,
                round_number=rnd.round_number,
                tickets=tuple(
                    TicketReceipt(t.ticket_code, t.sequence, now) for t in tickets
                ),
                balance_source=bucket.value,
                new_balance=new_balance,
                tickets_sold=rnd.tickets_sold,
                total_tickets=rnd.total_tickets,
                progress=rnd.progress,
            )
            event = TicketSold(
                round_number=rnd.round_number,
                tickets_sold=rnd.tickets_sold,
                total_tickets=rnd.total_tickets,
                progress=rnd.progress,
                buyer_wallet=user.wallet_address,
                quantity=quantity,
                timestamp=now,
            )
            is_full = rnd.is_full

        logger.info(
            f"User {user_id} bought {quantity} ticket(s) in round {result.round_number} "
            f"({result.tickets_sold}/{result.total_tickets}) from {result.balance_source}"
        )
        return _PurchaseOutcome(result=result, event=event, is_full=is_full)

    # -------- draw --------
    def execute_draw(
        self,
        round_id: int,
        executed_by: Optional[str] = None,
        method: str = DRAW_AUTOMATIC,
    ) -> DrawResult:
        """Select winners for ``round_id``, open the next round and pay out.

        The round is committed as ``drawing`` first so concurrent buyers are
        turned away. The winners, the ``completed`` status and the next round
        commit together, so some round is always current. If anything fails
        before that commit, the round goes back to ``active`` with no seed
        and no winners, and the error is re-raised.

        Raises
        ------
        NotFoundError
            If the round does not exist.
        InvalidStateError
            If the round is not ``active`` or has no tickets.
        """

        if method not in (DRAW_AUTOMATIC, DRAW_MANUAL):
            raise ValueError(f"Unknown draw method: {method!r}")

        with self._locks.lock(round_id):
            with self._session_factory.begin() as session:
                rnd = session.get(JackpotRound, round_id)
                if rnd is None:
                    raise NotFoundError(f"Round {round_id} not found")
                if rnd.status != ROUND_ACTIVE:
                    raise InvalidStateError(
                        f"Round {rnd.round_number} is '{rnd.status}', not active"
                    )
                if rnd.tickets_sold == 0:
                    raise InvalidStateError(
                        f"Cannot execute draw for round {rnd.round_number} with no tickets sold"
                    )
                rnd.status = ROUND_DRAWING
                round_number = rnd.round_number

            logger.info(f"Executing draw for round {round_number}")

            try:
                with self._session_factory.begin() as session:
                    rnd = session.get(JackpotRound, round_id)
                    seed = self._seed_factory()
                    rnd.draw_seed = seed
                    selections = select_winners(rnd.tickets, seed, self.prize_chart)
                    rnd.set_winners(selections)
                    rnd.mark_completed(executed_by=executed_by, method=method)
                    rnd.calculate_surplus(self.prize_chart)
                    next_round = JackpotRound.create_next(
                        session,
                        ticket_price=rnd.ticket_price,
                        total_tickets=rnd.total_tickets,
                        created_by=executed_by,
                    )
                    new_round_event = self._new_round_event(next_round)
            except Exception:
                logger.exception(f"Draw failed for round {round_number}; rolling back to active")
                self._rollback_draw(round_id)
                raise

            announcements = [
                WinnerAnnounced(
                    round_number=round_number,
                    wallet_address=s.wallet_address,
                    prize=s.prize,
                    rank=s.rank,
                )
                for s in selections
            ]
            self.dispatcher.dispatch(
                [
                    DrawComplete(
                        round_number=round_number,
                        total_winners=len(selections),
                        top_winners=tuple(announcements[:3]),
                    ),
                    *announcements,
                    new_round_event,
                ]
            )
            logger.info(f"New jackpot round created: {next_round.round_number}")

            distribution = self.distribute_prizes(round_id)

        self._locks.discard(round_id)
        logger.info(
            f"Draw completed for round {round_number}, {len(selections)} winners selected"
        )
        return DrawResult(
            round_id=round_id,
            round_number=round_number,
            draw_seed=seed,
            method=method,
            executed_by=executed_by,
            winners=tuple(selections),
            distribution=distribution,
            next_round_number=next_round.round_number,
        )

    def _rollback_draw(self, round_id: int) -> None:
        try:
            with self._session_factory.begin() as session:
                rnd = session.get(JackpotRound, round_id)
                if rnd is not None and rnd.status == ROUND_DRAWING:
                    rnd.status = ROUND_ACTIVE
                    rnd.draw_seed = None
        except Exception:
            logger.exception(f"Failed to roll back round {round_id} to active")

    def distribute_prizes(self, round_id: int) -> DistributionReport:
        """Credit every unpaid winner of a completed round.

        Each winner is paid in its own transaction. A failure marks that
        winner ``failed`` and the loop moves on; winners already paid are
        skipped, so the call can be repeated after manual remediation.
        """

        with self._locks.lock(round_id):
            with self._session_factory.begin() as session:
                rnd = session.get(JackpotRound, round_id)
                if rnd is None:
                    raise NotFoundError(f"Round {round_id} not found")
                if rnd.status != ROUND_COMPLETED:
                    raise InvalidStateError(
                        f"Round {rnd.round_number} is '{rnd.status}'; prizes are paid after the draw"
                    )
                pending = [
                    (w.id, w.user_id, to_money(w.prize), w.wallet_address, w.ticket_code)
                    for w in rnd.winners
                    if w.status != WINNER_COMPLETED
                ]

            events: list[JackpotEvent] = []
            completed = 0
            failed: list[str] = []
            total = Decimal("0")
            for winner_id, user_id, prize, wallet, ticket_code in pending:
                try:
                    with self._session_factory.begin() as session:
                        new_balance = BalanceLedger.credit(
                            session, user_id, BalanceBucket.LUCKY, prize
                        )
                        winner = session.get(JackpotWinner, winner_id)
                        winner.status = WINNER_COMPLETED
                        winner.claimed_at = _utcnow()
                except Exception:
                    logger.exception(f"Failed to distribute prize to {mask_wallet(wallet)}")
                    self._mark_winner_failed(winner_id)
                    failed.append(ticket_code)
                    continue
                completed += 1
                total += prize
                events.append(
                    BalanceUpdate(user_id=user_id, amount=prize, new_balance=new_balance)
                )
                logger.debug(f"Prize distributed: {prize} to {mask_wallet(wallet)}")

        self.dispatcher.dispatch(events)
        logger.info(
            f"Distributed {completed} prize(s) totalling {to_money(total)} for round {round_id}; "
            f"{len(failed)} failed"
        )
        return DistributionReport(
            round_id=round_id,
            completed=completed,
            failed=tuple(failed),
            total_credited=to_money(total),
        )

    def _mark_winner_failed(self, winner_id: int) -> None:
        try:
            with self._session_factory.begin() as session:
                winner = session.get(JackpotWinner, winner_id)
                if winner is not None:
                    winner.status = WINNER_FAILED
        except Exception:
            logger.exception(f"Could not mark winner {winner_id} as failed")

    # -------- rounds --------
    def create_round(
        self,
        ticket_price=None,
        total_tickets: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> JackpotRound:
        """Open a new round. Refused while another round is still current.

        Raises
        ------
        InvalidStateError
            If an ``active`` or ``drawing`` round exists.
        ConfigError
            If the price or capacity is not positive.
        """

        return self._create_round(
            ticket_price=ticket_price,
            total_tickets=total_tickets,
            created_by=created_by,
        )

    def _create_round(
        self,
        ticket_price=None,
        total_tickets: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> JackpotRound:
        with self._session_factory.begin() as session:
            current = JackpotRound.get_current(session)
            if current is not None:
                raise InvalidStateError(
                    f"Round {current.round_number} is still '{current.status}'"
                )
            new_round = JackpotRound.create_next(
                session,
                ticket_price=(
                    ticket_price if ticket_price is not None else self.settings.ticket_price
                ),
                total_tickets=(
                    total_tickets if total_tickets is not None else self.settings.total_tickets
                ),
                created_by=created_by,
            )
            event = self._new_round_event(new_round)

        self.dispatcher.dispatch([event])
        logger.info(f"New jackpot round created: {new_round.round_number}")
        return new_round

    def update_parameters(
        self,
        round_id: int,
        ticket_price=None,
        total_tickets: Optional[int] = None,
        updated_by: Optional[str] = None,
    ) -> JackpotRound:
        """Change price and/or capacity of a round that has no tickets yet.

        Raises
        ------
        ImmutableParametersError
            If any ticket has been sold.
        ConfigError
            If a new value is not positive.
        """

        with self._locks.lock(round_id):
            with self._session_factory.begin() as session:
                rnd = session.get(JackpotRound, round_id)
                if rnd is None:
                    raise NotFoundError(f"Round {round_id} not found")
                if rnd.tickets_sold > 0:
                    raise ImmutableParametersError(
                        "Cannot change parameters during an active round with tickets sold"
                    )
                changes = rnd.update_parameters(
                    ticket_price=ticket_price,
                    total_tickets=total_tickets,
                    changed_by=updated_by,
                )
                rnd.calculate_surplus(self.prize_chart)
                event = self._status_event(rnd)

        for change in changes:
            logger.info(
                f"Round {rnd.round_number} {change.field} changed "
                f"{change.old_value} -> {change.new_value} by {updated_by}"
            )
        self.dispatcher.dispatch([event])
        return rnd

    def toggle_pause(self, round_id: int) -> JackpotRound:
        """Flip the pause flag of a round without touching its status."""

        with self._locks.lock(round_id):
            with self._session_factory.begin() as session:
                rnd = session.get(JackpotRound, round_id)
                if rnd is None:
                    raise NotFoundError(f"Round {round_id} not found")
                rnd.is_active = not rnd.is_active
                event = self._status_event(rnd)

        logger.info(
            f"Round {rnd.round_number} {'resumed' if rnd.is_active else 'paused'}"
        )
        self.dispatcher.dispatch([event])
        return rnd

    def withdraw_surplus(self, round_id: int, withdrawn_by: Optional[str]) -> Decimal:
        """Mark the surplus of a completed round as withdrawn and return it.

        Raises
        ------
        InvalidStateError
            If the round is not completed.
        AlreadyWithdrawnError
            If the surplus was withdrawn before.
        """

        with self._locks.lock(round_id):
            with self._session_factory.begin() as session:
                rnd = session.get(JackpotRound, round_id)
                if rnd is None:
                    raise NotFoundError(f"Round {round_id} not found")
                if rnd.status != ROUND_COMPLETED:
                    raise InvalidStateError(
                        "Can only withdraw surplus from completed rounds"
                    )
                if rnd.surplus_withdrawn:
                    raise AlreadyWithdrawnError(
                        f"Surplus of round {rnd.round_number} already withdrawn"
                    )
                amount = rnd.mark_surplus_withdrawn(withdrawn_by)
                round_number = rnd.round_number

        logger.info(f"Surplus withdrawn: {amount} from round {round_number} by {withdrawn_by}")
        return amount

    # -------- helpers --------
    def _platform_paused(self) -> bool:
        if self.system_config is None:
            return False
        return self.system_config.current.pause_lucky_draw

    @staticmethod
    def _new_round_event(rnd: JackpotRound) -> NewRound:
        return NewRound(
            round_number=rnd.round_number,
            ticket_price=to_money(rnd.ticket_price),
            total_tickets=rnd.total_tickets,
            total_prize_pool=to_money(rnd.total_prize_pool),
        )

    @staticmethod
    def _status_event(rnd: JackpotRound) -> StatusUpdate:
        return StatusUpdate(
            round_number=rnd.round_number,
            tickets_sold=rnd.tickets_sold,
            total_tickets=rnd.total_tickets,
            ticket_price=to_money(rnd.ticket_price),
            is_active=rnd.is_active,
            status=rnd.status,
            progress=rnd.progress,
        )


def replay_draw(
    tickets: Iterable, seed: str, chart: Optional[PrizeChart] = None
) -> list[WinnerSelection]:
    """Recompute the winners of a published draw for verification."""

    return select_winners(list(tickets), seed, chart)


__all__ = [
    "JackpotEngine",
    "PurchaseResult",
    "TicketReceipt",
    "DrawResult",
    "DistributionReport",
    "RoundLockRegistry",
    "replay_draw",
]
