from decimal import Decimal

from luckydraw.config import load_settings
from luckydraw.db.engine import get_sessionmaker, make_engine
from luckydraw.jackpot import JackpotEngine
from luckydraw.models import Base, SystemConfig, User
from luckydraw.notify import EventDispatcher, InMemoryTransport


def main() -> None:
    """Reset the development database and fill it with sample users and sales."""
    engine = make_engine()

    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)

    with Session.begin() as session:
        session.add(SystemConfig())
        session.add_all(
            [
                User(
                    "0xA11ce0000000000000000000000000000000a11ce",
                    username="alice",
                    lucky_draw_wallet=Decimal("250"),
                    game_balance=Decimal("100"),
                ),
                User(
                    "0xB0b0000000000000000000000000000000000b0b",
                    username="bob",
                    game_balance=Decimal("500"),
                    auto_lucky_draw=False,
                ),
                User(
                    "0xCa7e000000000000000000000000000000000ca7e",
                    username="carol",
                    lucky_draw_wallet=Decimal("40"),
                ),
            ]
        )

    settings = load_settings()
    transport = InMemoryTransport()
    jackpot = JackpotEngine(
        Session,
        settings=settings,
        dispatcher=EventDispatcher([transport], announce_interval=0),
    )
    round_ = jackpot.get_active_round()

    with Session() as session:
        bob = User.get_by_wallet_address(session, "0xB0b0000000000000000000000000000000000b0b")
        bob_id = bob.id
    result = jackpot.purchase_tickets(bob_id, 5)

    print(
        f"Development database seeded: round {round_.round_number}, "
        f"{result.tickets_sold}/{result.total_tickets} tickets sold, "
        f"{len(transport.messages)} event(s) recorded."
    )


if __name__ == "__main__":
    main()
