import unittest
from dataclasses import dataclass
from decimal import Decimal

from luckydraw.jackpot.prizes import (
    DEFAULT_PRIZE_CHART,
    PrizeChart,
    PrizeTier,
    select_winners,
)
from luckydraw.jackpot.rng import seeded_shuffle


@dataclass
class FakeTicket:
    user_id: int
    wallet_address: str
    ticket_code: str


def make_tickets(n: int) -> list[FakeTicket]:
    return [FakeTicket(i, f"0xwallet{i:04d}", f"t{i}") for i in range(1, n + 1)]


class PrizeChartTestCase(unittest.TestCase):
    def test_default_chart_totals(self):
        self.assertEqual(DEFAULT_PRIZE_CHART.total_slots, 1000)
        self.assertEqual(DEFAULT_PRIZE_CHART.total_payout, Decimal("70000.00"))
        self.assertEqual(len(DEFAULT_PRIZE_CHART), 8)
        self.assertEqual(DEFAULT_PRIZE_CHART.tiers[0].rank, "1st")

    def test_worst_case_payout_fills_from_top(self):
        self.assertEqual(DEFAULT_PRIZE_CHART.worst_case_payout(0), Decimal("0.00"))
        self.assertEqual(DEFAULT_PRIZE_CHART.worst_case_payout(1), Decimal("10000.00"))
        self.assertEqual(DEFAULT_PRIZE_CHART.worst_case_payout(3), Decimal("19000.00"))
        self.assertEqual(DEFAULT_PRIZE_CHART.worst_case_payout(10), Decimal("26000.00"))
        self.assertEqual(DEFAULT_PRIZE_CHART.worst_case_payout(5000), Decimal("70000.00"))

    def test_win_chance(self):
        self.assertEqual(DEFAULT_PRIZE_CHART.win_chance(10000), "10%")
        self.assertEqual(DEFAULT_PRIZE_CHART.win_chance(1000), "100%")
        self.assertEqual(DEFAULT_PRIZE_CHART.win_chance(3000), "33.33%")
        self.assertEqual(DEFAULT_PRIZE_CHART.win_chance(0), "0%")

    def test_to_list(self):
        rows = DEFAULT_PRIZE_CHART.to_list()
        self.assertEqual(rows[3], {"rank": "4th - 10th", "amount": Decimal("1000.00"), "winners": 7})

    def test_invalid_tiers(self):
        with self.assertRaises(ValueError):
            PrizeChart([])
        with self.assertRaises(ValueError):
            PrizeTier("1st", Decimal("10"), -1)
        with self.assertRaises(ValueError):
            PrizeTier("1st", Decimal("-10"), 1)


class SelectWinnersTestCase(unittest.TestCase):
    def test_first_prize_goes_to_first_shuffled_ticket(self):
        tickets = make_tickets(5)
        winners = select_winners(tickets, "abc")
        expected_order = seeded_shuffle([t.ticket_code for t in tickets], "abc")
        self.assertEqual(winners[0].ticket_code, expected_order[0])
        self.assertEqual(winners[0].ticket_code, "t4")
        self.assertEqual(winners[0].rank, "1st")
        self.assertEqual(winners[0].prize, Decimal("10000.00"))
        self.assertEqual([w.ticket_code for w in winners], expected_order)

    def test_fewer_tickets_than_slots(self):
        winners = select_winners(make_tickets(5), "seed")
        self.assertEqual(len(winners), 5)
        self.assertEqual(
            [w.rank for w in winners], ["1st", "2nd", "3rd", "4th - 10th", "4th - 10th"]
        )

    def test_more_tickets_than_slots(self):
        winners = select_winners(make_tickets(1500), "seed")
        self.assertEqual(len(winners), 1000)
        self.assertEqual(len({w.ticket_code for w in winners}), 1000)
        self.assertEqual(sum(w.prize for w in winners), Decimal("70000.00"))

    def test_replay_is_identical(self):
        tickets = make_tickets(200)
        self.assertEqual(select_winners(tickets, "fixed"), select_winners(tickets, "fixed"))

    def test_custom_chart(self):
        chart = PrizeChart([PrizeTier("gold", Decimal("50"), 1), PrizeTier("silver", Decimal("5"), 2)])
        winners = select_winners(make_tickets(10), "custom", chart)
        self.assertEqual([w.rank for w in winners], ["gold", "silver", "silver"])

    def test_no_tickets(self):
        self.assertEqual(select_winners([], "empty"), [])


if __name__ == "__main__":
    unittest.main()
