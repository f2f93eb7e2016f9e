import json
import threading
import time
import unittest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import requests

from luckydraw.config import JackpotSettings
from luckydraw.jackpot.events import (
    BalanceUpdate,
    DrawComplete,
    NewRound,
    TicketSold,
    WinnerAnnounced,
    mask_wallet,
)
from luckydraw.notify import (
    EventDispatcher,
    InMemoryTransport,
    PushMessage,
    WebhookTransport,
    WinnerAnnouncer,
    encode_message,
    to_message,
)

WALLET = "0x1234567890abcdef1234567890abcdef12345678"


class MaskWalletTestCase(unittest.TestCase):
    def test_mask(self):
        self.assertEqual(mask_wallet(WALLET), "0x1234...5678")

    def test_short_or_empty(self):
        self.assertEqual(mask_wallet("0x12"), "0x12")
        self.assertEqual(mask_wallet(""), "")
        self.assertIsNone(mask_wallet(None))


class EventPayloadTestCase(unittest.TestCase):
    def test_ticket_sold_masks_buyer(self):
        event = TicketSold(
            round_number=3,
            tickets_sold=10,
            total_tickets=100,
            progress=10.0,
            buyer_wallet=WALLET,
            quantity=2,
            timestamp=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        message = to_message(event)
        self.assertEqual(message.event, "jackpot:ticket_sold")
        self.assertIsNone(message.room)
        self.assertEqual(message.data["buyer"], "0x1234...5678")
        self.assertEqual(message.data["timestamp"], "2025-01-01T00:00:00+00:00")

    def test_balance_update_targets_user_room(self):
        message = to_message(
            BalanceUpdate(user_id=42, amount=Decimal("20.00"), new_balance=Decimal("60.00"))
        )
        self.assertEqual(message.event, "balance_update")
        self.assertEqual(message.room, "42")
        self.assertEqual(message.data["type"], "lucky_win")

    def test_draw_complete_lists_top_winners(self):
        winner = WinnerAnnounced(
            round_number=1, wallet_address=WALLET, prize=Decimal("10000.00"), rank="1st"
        )
        payload = DrawComplete(round_number=1, total_winners=5, top_winners=(winner,)).payload()
        self.assertEqual(payload["top_winners"][0]["wallet"], "0x1234...5678")
        self.assertEqual(payload["total_winners"], 5)

    def test_encode_message(self):
        message = to_message(
            NewRound(
                round_number=2,
                ticket_price=Decimal("10.00"),
                total_tickets=1000,
                total_prize_pool=Decimal("0.00"),
            )
        )
        decoded = json.loads(encode_message(message))
        self.assertEqual(decoded["event"], "jackpot:new_round")
        self.assertEqual(decoded["data"]["ticket_price"], "10.00")
        self.assertIsNone(decoded["room"])


class WebhookTransportTestCase(unittest.TestCase):
    def test_posts_json(self):
        session = MagicMock(spec=requests.Session)
        transport = WebhookTransport("http://gateway/push", timeout=2, session=session)
        transport.send(PushMessage("jackpot:status_update", {"price": Decimal("1.50")}))

        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        self.assertEqual(args[0], "http://gateway/push")
        self.assertEqual(kwargs["timeout"], 2)
        self.assertEqual(kwargs["headers"]["Content-Type"], "application/json")
        body = json.loads(kwargs["data"].decode("utf-8"))
        self.assertEqual(body["data"]["price"], "1.50")
        session.post.return_value.raise_for_status.assert_called_once()

    def test_requires_url(self):
        with self.assertRaises(ValueError):
            WebhookTransport("")


class WinnerAnnouncerTestCase(unittest.TestCase):
    def _announcement(self, i: int) -> WinnerAnnounced:
        return WinnerAnnounced(
            round_number=1, wallet_address=f"0xwinner{i:08d}", prize=Decimal("20"), rank="501st - 1000th"
        )

    def test_sends_in_order_with_spacing(self):
        sent: list[tuple[float, WinnerAnnounced]] = []
        announcer = WinnerAnnouncer(lambda item: sent.append((time.monotonic(), item)), interval=0.05)
        try:
            items = [self._announcement(i) for i in range(3)]
            self.assertEqual(announcer.submit(items), 3)
            announcer.join()
        finally:
            announcer.stop(timeout=1)

        self.assertEqual([item for _, item in sent], items)
        gaps = [b[0] - a[0] for a, b in zip(sent, sent[1:])]
        for gap in gaps:
            self.assertGreaterEqual(gap, 0.04)

    def test_submit_does_not_block(self):
        release = threading.Event()
        announcer = WinnerAnnouncer(lambda item: release.wait(1), interval=0)
        try:
            start = time.monotonic()
            announcer.submit([self._announcement(i) for i in range(5)])
            self.assertLess(time.monotonic() - start, 0.5)
            self.assertTrue(announcer.running)
        finally:
            release.set()
            announcer.stop(timeout=2)
        self.assertFalse(announcer.running)

    def test_negative_interval_rejected(self):
        with self.assertRaises(ValueError):
            WinnerAnnouncer(lambda item: None, interval=-1)


class EventDispatcherTestCase(unittest.TestCase):
    def test_routes_announcements_through_worker(self):
        transport = InMemoryTransport()
        dispatcher = EventDispatcher([transport], announce_interval=0)
        try:
            dispatcher.dispatch(
                [
                    DrawComplete(round_number=1, total_winners=2),
                    WinnerAnnounced(1, WALLET, Decimal("10000"), "1st"),
                    WinnerAnnounced(1, WALLET, Decimal("5000"), "2nd"),
                ]
            )
            dispatcher.announcer.join()
        finally:
            dispatcher.close()

        self.assertEqual(len(transport.events("jackpot:draw_complete")), 1)
        ranks = [m.data["rank"] for m in transport.events("jackpot:winner_announced")]
        self.assertEqual(ranks, ["1st", "2nd"])

    def test_transport_failure_is_logged_not_raised(self):
        broken = MagicMock()
        broken.send.side_effect = requests.ConnectionError("gateway down")
        recorder = InMemoryTransport()
        dispatcher = EventDispatcher([broken, recorder], announce_interval=0)
        with self.assertLogs("luckydraw.notify", level="ERROR"):
            dispatcher.dispatch([DrawComplete(round_number=1, total_winners=0)])
        dispatcher.close()
        self.assertEqual(len(recorder.messages), 1)

    def test_from_settings_adds_webhook(self):
        dispatcher = EventDispatcher.from_settings(
            JackpotSettings(notify_url="http://gateway/push", announce_interval=0.5)
        )
        self.assertEqual(len(dispatcher.transports), 1)
        self.assertIsInstance(dispatcher.transports[0], WebhookTransport)
        self.assertEqual(dispatcher.announcer.interval, 0.5)

        self.assertEqual(EventDispatcher.from_settings(JackpotSettings()).transports, [])


if __name__ == "__main__":
    unittest.main()
