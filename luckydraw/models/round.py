"""Database models for jackpot rounds, their tickets, winners and audit trail."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, object_session, relationship

from ..errors import ConfigError, InvalidStateError
from .base import Base
from .id_type import ID_TYPE, MONEY_TYPE
from .utils import format_ticket_code, to_money

if TYPE_CHECKING:
    from ..jackpot.prizes import PrizeChart, WinnerSelection

ROUND_ACTIVE = "active"
ROUND_DRAWING = "drawing"
ROUND_COMPLETED = "completed"
ROUND_STATUSES = (ROUND_ACTIVE, ROUND_DRAWING, ROUND_COMPLETED)

WINNER_PENDING = "pending"
WINNER_COMPLETED = "completed"
WINNER_FAILED = "failed"

DRAW_AUTOMATIC = "automatic"
DRAW_MANUAL = "manual"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JackpotRound(Base):
    """One capacity-bounded draw cycle, from ticket sales to payout.

    The row carries a ``version`` counter used by SQLAlchemy's optimistic
    locking: a flush that updates a round someone else already changed raises
    :class:`sqlalchemy.orm.exc.StaleDataError` instead of overwriting it.
    """

    __tablename__ = "jackpot_rounds"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    round_number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    """Public, monotonically increasing round number."""

    ticket_price: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)
    """Price of a single ticket. Frozen once any ticket is sold."""

    total_tickets: Mapped[int] = mapped_column(Integer, nullable=False)
    """Capacity of the round. Frozen once any ticket is sold."""

    tickets_sold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Number of tickets appended so far; always equals ``len(tickets)``."""

    total_revenue: Mapped[Decimal] = mapped_column(
        MONEY_TYPE, nullable=False, default=Decimal("0")
    )
    total_prize_pool: Mapped[Decimal] = mapped_column(
        MONEY_TYPE, nullable=False, default=Decimal("0")
    )
    """Funds collected for the round (``tickets_sold * ticket_price``)."""

    total_paid_out: Mapped[Decimal] = mapped_column(
        MONEY_TYPE, nullable=False, default=Decimal("0")
    )
    """Worst-case payout while selling; the assigned prizes once drawn."""

    surplus: Mapped[Decimal] = mapped_column(
        MONEY_TYPE, nullable=False, default=Decimal("0")
    )
    surplus_withdrawn: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    surplus_withdrawn_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    surplus_withdrawn_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ROUND_ACTIVE)
    """Lifecycle state: ``active`` -> ``drawing`` -> ``completed``."""

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    """Admin pause flag, independent of ``status``."""

    draw_seed: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    """Published seed that reproduces the winner shuffle."""

    draw_executed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    draw_executed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    draw_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    tickets: Mapped[list["JackpotTicket"]] = relationship(
        back_populates="round",
        cascade="all, delete-orphan",
        order_by="JackpotTicket.sequence",
        lazy="select",
    )
    """Loaded on first access only; a round can hold tens of thousands."""

    winners: Mapped[list["JackpotWinner"]] = relationship(
        back_populates="round",
        cascade="all, delete-orphan",
        order_by="JackpotWinner.position",
        lazy="selectin",
    )
    parameter_changes: Mapped[list["RoundParameterChange"]] = relationship(
        back_populates="round",
        cascade="all, delete-orphan",
        order_by="RoundParameterChange.id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("status IN ('active','drawing','completed')", name="status_enum"),
        CheckConstraint(
            "draw_method IS NULL OR draw_method IN ('automatic','manual')",
            name="draw_method_enum",
        ),
        CheckConstraint("ticket_price > 0", name="ticket_price_positive"),
        CheckConstraint("total_tickets > 0", name="total_tickets_positive"),
        CheckConstraint(
            "tickets_sold >= 0 AND tickets_sold <= total_tickets",
            name="tickets_sold_within_capacity",
        ),
        Index("ix_jackpot_rounds_status_number", "status", "round_number"),
    )

    def __init__(
        self,
        *,
        round_number: int,
        ticket_price,
        total_tickets: int,
        created_by: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        price = to_money(ticket_price)
        if price <= 0:
            raise ConfigError("ticket_price must be positive", field="ticket_price")
        if total_tickets is None or int(total_tickets) <= 0:
            raise ConfigError("total_tickets must be positive", field="total_tickets")
        self.round_number = round_number
        self.ticket_price = price
        self.total_tickets = int(total_tickets)
        self.tickets_sold = 0
        self.total_revenue = to_money(0)
        self.total_prize_pool = to_money(0)
        self.total_paid_out = to_money(0)
        self.surplus = to_money(0)
        self.surplus_withdrawn = False
        self.status = ROUND_ACTIVE
        self.is_active = True
        self.created_by = created_by
        self.tickets = []
        self.winners = []
        self.parameter_changes = []
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<JackpotRound(id={self.id}, round_number={self.round_number}, "
            f"status='{self.status}', tickets_sold={self.tickets_sold}/{self.total_tickets})>"
        )

    # -------- derived values --------
    @property
    def progress(self) -> float:
        """Percentage of capacity sold, between 0 and 100."""
        if not self.total_tickets:
            return 0.0
        return round(self.tickets_sold / self.total_tickets * 100, 2)

    @property
    def is_full(self) -> bool:
        return self.tickets_sold >= self.total_tickets

    @property
    def tickets_remaining(self) -> int:
        return max(self.total_tickets - self.tickets_sold, 0)

    # -------- queries --------
    @classmethod
    def get_current(cls, session: Session) -> Optional["JackpotRound"]:
        """Return the newest round that is still ``active`` or ``drawing``.

        The pause flag is deliberately not part of the filter: a paused round
        is still the current round.
        """

        stmt = (
            select(cls)
            .where(cls.status.in_((ROUND_ACTIVE, ROUND_DRAWING)))
            .order_by(cls.round_number.desc())
        )
        return session.scalars(stmt).first()

    @classmethod
    def get_by_round_number(
        cls, session: Session, round_number: int
    ) -> Optional["JackpotRound"]:
        return session.scalar(select(cls).where(cls.round_number == round_number))

    @classmethod
    def get_latest(cls, session: Session) -> Optional["JackpotRound"]:
        """Return the round with the highest number, whatever its status."""
        return session.scalars(select(cls).order_by(cls.round_number.desc())).first()

    @classmethod
    def create_next(
        cls,
        session: Session,
        *,
        ticket_price,
        total_tickets: int,
        created_by: Optional[str] = None,
    ) -> "JackpotRound":
        """Create and add the round that follows the highest existing number.

        Raises
        ------
        ConfigError
            If ``ticket_price`` or ``total_tickets`` is not positive.
        """

        latest = session.scalar(select(func.max(cls.round_number)))
        next_number = (latest or 0) + 1
        new_round = cls(
            round_number=next_number,
            ticket_price=ticket_price,
            total_tickets=total_tickets,
            created_by=created_by,
        )
        session.add(new_round)
        session.flush()
        return new_round

    # -------- mutators --------
    def add_ticket(
        self,
        user_id: int,
        wallet_address: str,
        purchased_at: Optional[datetime] = None,
    ) -> "JackpotTicket":
        """Append one ticket with the next sequence number.

        Capacity is not checked here; the engine validates it together with
        the balance debit so both happen or neither does. An unloaded
        ``tickets`` collection stays unloaded.
        """

        sequence = self.tickets_sold + 1
        ticket = JackpotTicket(
            sequence=sequence,
            ticket_code=format_ticket_code(self.round_number, sequence),
            user_id=user_id,
            wallet_address=wallet_address,
            purchased_at=purchased_at or _utcnow(),
        )
        # The backref append is queued, not fetched, when the list is unloaded.
        ticket.round = self
        session = object_session(self)
        if session is not None:
            session.add(ticket)
        self.tickets_sold = sequence
        self.total_revenue = to_money(self.total_revenue) + to_money(self.ticket_price)
        return ticket

    def calculate_surplus(self, prize_chart: "PrizeChart") -> Decimal:
        """Recompute pool, payout and surplus from the current state.

        Before the draw the payout is the chart's worst case for the tickets
        sold so far; after the draw it is the sum of assigned prizes.
        """

        pool = to_money(self.ticket_price) * self.tickets_sold
        if self.winners:
            payout = sum((to_money(w.prize) for w in self.winners), Decimal("0"))
        else:
            payout = prize_chart.worst_case_payout(self.tickets_sold)
        self.total_prize_pool = to_money(pool)
        self.total_paid_out = to_money(payout)
        self.surplus = to_money(pool - payout)
        return self.surplus

    def set_winners(self, selections: Iterable["WinnerSelection"]) -> list["JackpotWinner"]:
        """Record the selected winners. Only legal while ``drawing``."""

        if self.status != ROUND_DRAWING:
            raise InvalidStateError(
                f"Round {self.round_number} is '{self.status}'; winners can only be set while drawing"
            )
        self.winners = [
            JackpotWinner(
                position=position,
                user_id=selection.user_id,
                wallet_address=selection.wallet_address,
                ticket_code=selection.ticket_code,
                rank=selection.rank,
                prize=selection.prize,
            )
            for position, selection in enumerate(selections)
        ]
        self.total_paid_out = to_money(
            sum((to_money(w.prize) for w in self.winners), Decimal("0"))
        )
        return self.winners

    def mark_completed(
        self,
        *,
        executed_by: Optional[str],
        method: str,
        executed_at: Optional[datetime] = None,
    ) -> None:
        if self.status != ROUND_DRAWING:
            raise InvalidStateError(
                f"Round {self.round_number} is '{self.status}'; only a drawing round can complete"
            )
        if method not in (DRAW_AUTOMATIC, DRAW_MANUAL):
            raise ValueError(f"Unknown draw method: {method!r}")
        self.status = ROUND_COMPLETED
        self.draw_executed_at = executed_at or _utcnow()
        self.draw_executed_by = executed_by
        self.draw_method = method

    def update_parameters(
        self,
        *,
        ticket_price=None,
        total_tickets: Optional[int] = None,
        changed_by: Optional[str] = None,
    ) -> list["RoundParameterChange"]:
        """Apply price/capacity edits and append one audit entry per change.

        The caller is responsible for refusing edits after sales started.
        """

        changes: list[RoundParameterChange] = []
        if ticket_price is not None:
            new_price = to_money(ticket_price)
            if new_price <= 0:
                raise ConfigError("ticket_price must be positive", field="ticket_price")
            if new_price != to_money(self.ticket_price):
                changes.append(
                    RoundParameterChange(
                        field="ticket_price",
                        old_value=str(to_money(self.ticket_price)),
                        new_value=str(new_price),
                        changed_by=changed_by,
                    )
                )
                self.ticket_price = new_price
        if total_tickets is not None:
            if int(total_tickets) <= 0:
                raise ConfigError("total_tickets must be positive", field="total_tickets")
            if int(total_tickets) != self.total_tickets:
                changes.append(
                    RoundParameterChange(
                        field="total_tickets",
                        old_value=str(self.total_tickets),
                        new_value=str(int(total_tickets)),
                        changed_by=changed_by,
                    )
                )
                self.total_tickets = int(total_tickets)
        self.parameter_changes.extend(changes)
        if changes:
            self.updated_by = changed_by
        return changes

    def mark_surplus_withdrawn(
        self, withdrawn_by: Optional[str], withdrawn_at: Optional[datetime] = None
    ) -> Decimal:
        self.surplus_withdrawn = True
        self.surplus_withdrawn_at = withdrawn_at or _utcnow()
        self.surplus_withdrawn_by = withdrawn_by
        return to_money(self.surplus)


class JackpotTicket(Base):
    """A single paid entry in a round."""

    __tablename__ = "jackpot_tickets"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("jackpot_rounds.id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    """Admission order within the round, starting at 1."""

    ticket_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    purchased_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    round: Mapped["JackpotRound"] = relationship(back_populates="tickets")

    __table_args__ = (
        UniqueConstraint("round_id", "sequence", name="uq_jackpot_ticket_sequence"),
    )

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<JackpotTicket(ticket_code='{self.ticket_code}', user_id={self.user_id})>"

    @classmethod
    def get_by_round(cls, session: Session, round_id: int) -> list["JackpotTicket"]:
        """Tickets of one round in admission order."""
        stmt = select(cls).where(cls.round_id == round_id).order_by(cls.sequence)
        return list(session.scalars(stmt))


class JackpotWinner(Base):
    """A ticket that was assigned a prize tier in a completed draw."""

    __tablename__ = "jackpot_winners"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("jackpot_rounds.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    """Zero-based position in the shuffled ticket order."""

    user_id: Mapped[int] = mapped_column(ID_TYPE, nullable=False, index=True)
    """Winning user. Not a foreign key: a winner record outlives its user."""

    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    ticket_code: Mapped[str] = mapped_column(String(32), nullable=False)
    rank: Mapped[str] = mapped_column(String(32), nullable=False)
    prize: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=WINNER_PENDING)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    round: Mapped["JackpotRound"] = relationship(back_populates="winners")

    __table_args__ = (
        UniqueConstraint("round_id", "position", name="uq_jackpot_winner_position"),
        CheckConstraint(
            "status IN ('pending','completed','failed')", name="winner_status_enum"
        ),
    )

    def __init__(
        self,
        *,
        position: int,
        user_id: int,
        wallet_address: str,
        ticket_code: str,
        rank: str,
        prize,
        status: str = WINNER_PENDING,
    ) -> None:
        self.position = position
        self.user_id = user_id
        self.wallet_address = wallet_address
        self.ticket_code = ticket_code
        self.rank = rank
        self.prize = to_money(prize)
        self.status = status

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<JackpotWinner(round_id={self.round_id}, rank='{self.rank}', "
            f"prize={self.prize}, status='{self.status}')>"
        )


class RoundParameterChange(Base):
    """Audit entry for a price or capacity edit."""

    __tablename__ = "jackpot_parameter_changes"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("jackpot_rounds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    field: Mapped[str] = mapped_column(String(32), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    changed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    round: Mapped["JackpotRound"] = relationship(back_populates="parameter_changes")


__all__ = [
    "JackpotRound",
    "JackpotTicket",
    "JackpotWinner",
    "RoundParameterChange",
    "ROUND_ACTIVE",
    "ROUND_DRAWING",
    "ROUND_COMPLETED",
    "ROUND_STATUSES",
    "WINNER_PENDING",
    "WINNER_COMPLETED",
    "WINNER_FAILED",
    "DRAW_AUTOMATIC",
    "DRAW_MANUAL",
]
