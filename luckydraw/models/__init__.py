from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .user import User  # noqa: F401
from .round import (  # noqa: F401
    JackpotRound,
    JackpotTicket,
    JackpotWinner,
    RoundParameterChange,
)
from .system_config import SystemConfig  # noqa: F401

__all__ = [
    "Base",
    "User",
    "JackpotRound",
    "JackpotTicket",
    "JackpotWinner",
    "RoundParameterChange",
    "SystemConfig",
]
