import unittest
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from luckydraw.errors import ConfigError, InvalidStateError
from luckydraw.jackpot.prizes import DEFAULT_PRIZE_CHART, select_winners
from luckydraw.models import (
    Base,
    JackpotRound,
    JackpotTicket,
    RoundParameterChange,
    SystemConfig,
    User,
)
from luckydraw.models.round import ROUND_COMPLETED, ROUND_DRAWING
from luckydraw.models.utils import format_ticket_code, to_money


class ModelsTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, future=True, expire_on_commit=False)

    def tearDown(self):
        self.engine.dispose()

    def _user(self, session, wallet="0x1234567890abcdef1234", **balances) -> User:
        user = User(wallet, **balances)
        session.add(user)
        session.flush()
        return user


class UtilsTestCase(unittest.TestCase):
    def test_to_money(self):
        self.assertEqual(to_money(None), Decimal("0.00"))
        self.assertEqual(to_money(0.1), Decimal("0.10"))
        self.assertEqual(to_money("2.345"), Decimal("2.35"))
        self.assertEqual(to_money(10), Decimal("10.00"))

    def test_format_ticket_code(self):
        self.assertEqual(format_ticket_code(7, 42), "LKY-0007-000042")
        with self.assertRaises(ValueError):
            format_ticket_code(1, 0)


class UserModelTestCase(ModelsTestCase):
    def test_defaults_and_lookup(self):
        with self.Session.begin() as session:
            self._user(session, wallet="  0xabcdef0123456789  ", game_balance=Decimal("5"))

        with self.Session() as session:
            user = User.get_by_wallet_address(session, "0xabcdef0123456789")
            self.assertIsNotNone(user)
            self.assertEqual(user.game_balance, Decimal("5.00"))
            self.assertEqual(user.lucky_draw_wallet, Decimal("0.00"))
            self.assertEqual(user.lucky_balance, Decimal("0.00"))
            self.assertTrue(user.auto_lucky_draw)

    def test_empty_wallet_rejected(self):
        with self.assertRaises(ValueError):
            User("   ")

    def test_wallet_unique(self):
        with self.assertRaises(IntegrityError):
            with self.Session.begin() as session:
                session.add_all([User("0xdup000000000"), User("0xdup000000000")])


class JackpotRoundModelTestCase(ModelsTestCase):
    def test_create_next_numbers_sequentially(self):
        with self.Session.begin() as session:
            first = JackpotRound.create_next(session, ticket_price=10, total_tickets=100)
            first.status = ROUND_COMPLETED
            second = JackpotRound.create_next(session, ticket_price="2.5", total_tickets=50)
            self.assertEqual(first.round_number, 1)
            self.assertEqual(second.round_number, 2)
            self.assertEqual(second.ticket_price, Decimal("2.50"))
            self.assertEqual(second.status, "active")
            self.assertTrue(second.is_active)
            self.assertEqual(second.version, 1)

    def test_non_positive_parameters_rejected(self):
        with self.Session.begin() as session:
            with self.assertRaises(ConfigError) as ctx:
                JackpotRound.create_next(session, ticket_price=0, total_tickets=10)
            self.assertEqual(ctx.exception.code, "CONFIG_ERROR")
            with self.assertRaises(ConfigError):
                JackpotRound.create_next(session, ticket_price=10, total_tickets=-1)

    def test_get_current_ignores_pause_flag(self):
        with self.Session.begin() as session:
            rnd = JackpotRound.create_next(session, ticket_price=10, total_tickets=10)
            rnd.is_active = False

        with self.Session() as session:
            current = JackpotRound.get_current(session)
            self.assertIsNotNone(current)
            self.assertFalse(current.is_active)

    def test_get_current_skips_completed(self):
        with self.Session.begin() as session:
            rnd = JackpotRound.create_next(session, ticket_price=10, total_tickets=10)
            rnd.status = ROUND_COMPLETED

        with self.Session() as session:
            self.assertIsNone(JackpotRound.get_current(session))
            self.assertIsNotNone(JackpotRound.get_by_round_number(session, 1))

    def test_add_ticket_and_surplus(self):
        with self.Session.begin() as session:
            user = self._user(session)
            rnd = JackpotRound.create_next(session, ticket_price=10, total_tickets=5000)
            for _ in range(3):
                rnd.add_ticket(user.id, user.wallet_address)
            rnd.calculate_surplus(DEFAULT_PRIZE_CHART)
            round_id = rnd.id

        with self.Session() as session:
            rnd = session.get(JackpotRound, round_id)
            self.assertEqual(rnd.tickets_sold, 3)
            self.assertEqual([t.sequence for t in rnd.tickets], [1, 2, 3])
            self.assertEqual(rnd.tickets[0].ticket_code, "LKY-0001-000001")
            self.assertEqual(rnd.total_revenue, Decimal("30.00"))
            self.assertEqual(rnd.total_prize_pool, Decimal("30.00"))
            self.assertEqual(rnd.total_paid_out, Decimal("19000.00"))
            self.assertEqual(rnd.surplus, Decimal("-18970.00"))
            self.assertEqual(rnd.progress, 0.06)
            self.assertEqual(rnd.tickets_remaining, 4997)
            self.assertFalse(rnd.is_full)

    def test_capacity_check_constraint(self):
        with self.assertRaises(IntegrityError):
            with self.Session.begin() as session:
                user = self._user(session)
                rnd = JackpotRound.create_next(session, ticket_price=10, total_tickets=1)
                rnd.add_ticket(user.id, user.wallet_address)
                rnd.add_ticket(user.id, user.wallet_address)

    def test_set_winners_requires_drawing(self):
        with self.Session.begin() as session:
            user = self._user(session)
            rnd = JackpotRound.create_next(session, ticket_price=10, total_tickets=10)
            rnd.add_ticket(user.id, user.wallet_address)
            selections = select_winners(rnd.tickets, "seed")
            with self.assertRaises(InvalidStateError):
                rnd.set_winners(selections)

            rnd.status = ROUND_DRAWING
            winners = rnd.set_winners(selections)
            rnd.mark_completed(executed_by="admin", method="manual")
            rnd.calculate_surplus(DEFAULT_PRIZE_CHART)

            self.assertEqual(len(winners), 1)
            self.assertEqual(winners[0].position, 0)
            self.assertEqual(rnd.status, ROUND_COMPLETED)
            self.assertEqual(rnd.total_paid_out, Decimal("10000.00"))
            self.assertEqual(rnd.surplus, Decimal("-9990.00"))

    def test_mark_completed_rejects_unknown_method(self):
        with self.Session.begin() as session:
            rnd = JackpotRound.create_next(session, ticket_price=10, total_tickets=10)
            rnd.status = ROUND_DRAWING
            with self.assertRaises(ValueError):
                rnd.mark_completed(executed_by=None, method="lottery")

    def test_update_parameters_records_audit(self):
        with self.Session.begin() as session:
            rnd = JackpotRound.create_next(session, ticket_price=10, total_tickets=10)
            changes = rnd.update_parameters(ticket_price=5, total_tickets=10, changed_by="ops")
            round_id = rnd.id

        self.assertEqual(len(changes), 1)
        with self.Session() as session:
            rnd = session.get(JackpotRound, round_id)
            self.assertEqual(rnd.ticket_price, Decimal("5.00"))
            self.assertEqual(rnd.updated_by, "ops")
            audit = session.query(RoundParameterChange).all()
            self.assertEqual(len(audit), 1)
            self.assertEqual(audit[0].field, "ticket_price")
            self.assertEqual(audit[0].old_value, "10.00")
            self.assertEqual(audit[0].new_value, "5.00")

        with self.Session.begin() as session:
            rnd = session.get(JackpotRound, round_id)
            with self.assertRaises(ConfigError):
                rnd.update_parameters(total_tickets=0)

    def test_version_increments_on_update(self):
        with self.Session.begin() as session:
            rnd = JackpotRound.create_next(session, ticket_price=10, total_tickets=10)
            round_id = rnd.id

        with self.Session.begin() as session:
            rnd = session.get(JackpotRound, round_id)
            rnd.is_active = False

        with self.Session() as session:
            self.assertEqual(session.get(JackpotRound, round_id).version, 2)

    def test_ticket_sequence_unique_per_round(self):
        with self.assertRaises(IntegrityError):
            with self.Session.begin() as session:
                user = self._user(session)
                rnd = JackpotRound.create_next(session, ticket_price=10, total_tickets=10)
                session.add_all(
                    [
                        JackpotTicket(
                            round_id=rnd.id,
                            sequence=1,
                            ticket_code="A",
                            user_id=user.id,
                            wallet_address=user.wallet_address,
                        ),
                        JackpotTicket(
                            round_id=rnd.id,
                            sequence=1,
                            ticket_code="B",
                            user_id=user.id,
                            wallet_address=user.wallet_address,
                        ),
                    ]
                )


class SystemConfigModelTestCase(ModelsTestCase):
    def test_defaults(self):
        with self.Session.begin() as session:
            session.add(SystemConfig(pause_deposits=True))

        with self.Session() as session:
            row = SystemConfig.get_by_key(session)
            self.assertTrue(row.pause_deposits)
            self.assertFalse(row.pause_lucky_draw)
            self.assertEqual(row.version, 1)
            payload = row.to_json()
            self.assertEqual(payload["key"], "default")
            self.assertEqual(payload["emergency_flags"]["pause_deposits"], True)

    def test_unknown_flag(self):
        with self.assertRaises(ValueError):
            SystemConfig(pause_everything=True)


if __name__ == "__main__":
    unittest.main()
