"""Narrow view of the user balance store used by the jackpot engine.

Balances are shared with deposits, cashback and club income, so every change
is applied as a relative ``UPDATE`` against the current row value rather than
by writing back a value read earlier in the request.
"""

from __future__ import annotations

import enum
import logging
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..errors import InsufficientFundsError, NotFoundError
from ..models import User
from ..models.utils import to_money

logger = logging.getLogger(__name__)


class BalanceBucket(str, enum.Enum):
    """Balance columns the engine may touch."""

    LUCKY_DRAW_WALLET = "lucky_draw_wallet"
    GAME = "game_balance"
    LUCKY = "lucky_balance"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    BalanceBucket.LUCKY_DRAW_WALLET: "Lucky Wallet",
    BalanceBucket.GAME: "Game Balance",
    BalanceBucket.LUCKY: "Lucky Balance",
}


def _column(bucket: BalanceBucket):
    return getattr(User, BalanceBucket(bucket).value)


class BalanceLedger:
    """Debit and credit helpers over :class:`~luckydraw.models.User` balances."""

    @staticmethod
    def balance(session: Session, user_id: int, bucket: BalanceBucket) -> Decimal:
        value = session.scalar(select(_column(bucket)).where(User.id == user_id))
        if value is None:
            raise NotFoundError(f"User {user_id} not found")
        return to_money(value)

    @staticmethod
    def choose_source(user: User, cost: Decimal) -> BalanceBucket:
        """Pick the bucket a purchase of ``cost`` is paid from.

        The dedicated draw wallet is used when it covers the whole cost,
        otherwise the game balance is checked.

        Raises
        ------
        InsufficientFundsError
            If the game balance is also short. ``balance`` on the error names
            the bucket that was checked last.
        """

        cost = to_money(cost)
        if to_money(user.lucky_draw_wallet) >= cost:
            return BalanceBucket.LUCKY_DRAW_WALLET
        available = to_money(user.game_balance)
        if available < cost:
            raise InsufficientFundsError(
                f"Insufficient {BalanceBucket.GAME.label}: {available} available, {cost} required",
                balance=BalanceBucket.GAME.value,
                required=cost,
                available=available,
            )
        return BalanceBucket.GAME

    @staticmethod
    def debit(
        session: Session, user_id: int, bucket: BalanceBucket, amount: Decimal
    ) -> Decimal:
        """Subtract ``amount`` from ``bucket`` if the row still covers it.

        The check and the subtraction are one conditional ``UPDATE`` so a
        concurrent spend elsewhere cannot drive the balance negative.

        Returns
        -------
        Decimal
            Balance of ``bucket`` after the debit.
        """

        amount = to_money(amount)
        if amount <= 0:
            raise ValueError("debit amount must be positive")
        column = _column(bucket)
        result = session.execute(
            update(User)
            .where(User.id == user_id, column >= amount)
            .values({column: column - amount})
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            current = BalanceLedger.balance(session, user_id, bucket)
            raise InsufficientFundsError(
                f"Insufficient {BalanceBucket(bucket).label}: {current} available, {amount} required",
                balance=BalanceBucket(bucket).value,
                required=amount,
                available=current,
            )
        new_balance = BalanceLedger.balance(session, user_id, bucket)
        logger.debug(f"Debited {amount} from {bucket.value} of user {user_id}")
        return new_balance

    @staticmethod
    def credit(
        session: Session, user_id: int, bucket: BalanceBucket, amount: Decimal
    ) -> Decimal:
        """Add ``amount`` to ``bucket`` and return the new balance."""

        amount = to_money(amount)
        if amount < 0:
            raise ValueError("credit amount must not be negative")
        column = _column(bucket)
        result = session.execute(
            update(User)
            .where(User.id == user_id)
            .values({column: column + amount})
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise NotFoundError(f"User {user_id} not found")
        new_balance = BalanceLedger.balance(session, user_id, bucket)
        logger.debug(f"Credited {amount} to {bucket.value} of user {user_id}")
        return new_balance


__all__ = ["BalanceBucket", "BalanceLedger"]
