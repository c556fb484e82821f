import json

import pytest
from telegram.error import NetworkError

from farewheel import db, notifier as notifier_mod
from farewheel.notifier import Notifier
from farewheel.tests.helpers import T0


class FakeBot:
    sent = []
    fail = None

    def __init__(self, token):
        self.token = token

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def send_message(self, chat_id, text, parse_mode=None):
        if FakeBot.fail is not None:
            raise FakeBot.fail
        FakeBot.sent.append((self.token, chat_id, text, parse_mode))


def _rows(db_path):
    with db.connect(db_path) as conn:
        return conn.execute("SELECT * FROM notifications").fetchall()


def test_send_records_notification(db_path, clock, monkeypatch):
    monkeypatch.setattr(notifier_mod, "Bot", FakeBot)
    FakeBot.sent = []
    n = Notifier(db_path, clock=clock)
    n.send("u1", "Price Alert: BRU → BCN", "Price dropped", {"price": "99"})

    (row,) = _rows(db_path)
    assert row["user_id"] == "u1"
    assert row["type"] == "price_alert"
    assert row["title"] == "Price Alert: BRU → BCN"
    assert json.loads(row["data"]) == {"price": "99"}
    assert row["is_read"] == 0
    assert db.from_ts(row["created_at"]) == T0
    # telegram not configured
    assert FakeBot.sent == []


def test_send_forwards_to_telegram(db_path, clock, monkeypatch):
    monkeypatch.setattr(notifier_mod, "Bot", FakeBot)
    FakeBot.sent, FakeBot.fail = [], None
    n = Notifier(db_path, telegram_token="t0k", telegram_chat_id="42", clock=clock)
    n.send("u1", "Price Alert: BRU → BCN", "Price dropped", {})

    assert FakeBot.sent == [("t0k", "42", "*Price Alert: BRU → BCN*\nPrice dropped", "Markdown")]


@pytest.mark.parametrize(
    "error", [NetworkError("telegram unreachable"), RuntimeError("Event loop is closed")]
)
def test_telegram_failure_is_logged(db_path, clock, monkeypatch, caplog, error):
    monkeypatch.setattr(notifier_mod, "Bot", FakeBot)
    FakeBot.sent, FakeBot.fail = [], error
    try:
        n = Notifier(db_path, telegram_token="t0k", telegram_chat_id="42", clock=clock)
        n.send("u1", "subject", "body", {})
    finally:
        FakeBot.fail = None

    assert len(_rows(db_path)) == 1
    assert "Telegram delivery failed" in caplog.text


def test_store_failure_is_logged(tmp_path, clock, caplog):
    n = Notifier(str(tmp_path / "empty.db"), clock=clock)
    n.send("u1", "subject", "body", {})
    assert "Error storing notification for user u1" in caplog.text
