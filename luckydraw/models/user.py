from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column, validates

from .base import Base
from .id_type import ID_TYPE, MONEY_TYPE
from .utils import to_money


class User(Base):
    """A platform account together with its balance buckets.

    Only the fields the jackpot engine touches live here; deposits, referral
    trees and memberships are owned by other services sharing this table.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    username: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    game_balance: Mapped[Decimal] = mapped_column(
        MONEY_TYPE, nullable=False, default=Decimal("0")
    )
    """General game balance, the fallback source for ticket purchases."""

    lucky_draw_wallet: Mapped[Decimal] = mapped_column(
        MONEY_TYPE, nullable=False, default=Decimal("0")
    )
    """Dedicated draw wallet funded by cashback; preferred for ticket purchases."""

    lucky_balance: Mapped[Decimal] = mapped_column(
        MONEY_TYPE, nullable=False, default=Decimal("0")
    )
    """Jackpot winnings, kept apart so withdrawal limits can apply to them."""

    auto_lucky_draw: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    """Opt-in flag for the scheduled job that spends the draw wallet on tickets."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __init__(
        self,
        wallet_address: str,
        username: Optional[str] = None,
        game_balance=None,
        lucky_draw_wallet=None,
        lucky_balance=None,
        auto_lucky_draw: bool = True,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        """Create a new :class:`User` record.

        Parameters
        ----------
        wallet_address : str
            On-chain wallet address, used for display (masked) and lookups.
        username : str, optional
            Display name.
        game_balance, lucky_draw_wallet, lucky_balance : Decimal-like, optional
            Opening balances; default to zero.
        auto_lucky_draw : bool, default: True
            Whether the draw wallet is auto-spent on tickets.
        """

        self.wallet_address = wallet_address
        self.username = username
        self.game_balance = to_money(game_balance)
        self.lucky_draw_wallet = to_money(lucky_draw_wallet)
        self.lucky_balance = to_money(lucky_balance)
        self.auto_lucky_draw = auto_lucky_draw
        if created_at is not None:
            self.created_at = created_at
        if updated_at is not None:
            self.updated_at = updated_at

    @validates("wallet_address")
    def _normalize_wallet(self, _key: str, value: str) -> str:
        if value is None:
            raise ValueError("wallet_address must not be None")
        normalized = value.strip()
        if not normalized:
            raise ValueError("wallet_address must not be empty")
        return normalized

    def __repr__(self) -> str:
        return (
            f"<User(id={self.id}, wallet_address='{self.wallet_address}', "
            f"game_balance={self.game_balance}, lucky_draw_wallet={self.lucky_draw_wallet}, "
            f"lucky_balance={self.lucky_balance})>"
        )

    @classmethod
    def get_by_wallet_address(
        cls, session: Session, wallet_address: str
    ) -> Optional["User"]:
        """Retrieve a user by wallet address."""

        return session.scalar(select(cls).where(cls.wallet_address == wallet_address))
