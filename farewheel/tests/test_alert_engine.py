from datetime import date, timedelta
from decimal import Decimal

import pytest

from farewheel.alert_engine import AlertEvaluator
from farewheel.alerts import AlertStore
from farewheel.errors import PersistenceError
from farewheel.models import Alert
from farewheel.offer_cache import OfferCache
from farewheel.price_history import PriceHistory
from farewheel.tests.helpers import FakeNotifier, FakeProvider, T0, make_entry, make_offer

DEP = date(2024, 6, 15)


@pytest.fixture
def env(db_path, clock):
    provider = FakeProvider()
    history = PriceHistory(db_path, clock=clock)
    offers = OfferCache(db_path, history, provider, clock=clock)
    store = AlertStore(db_path, clock=clock)
    notifier = FakeNotifier()
    evaluator = AlertEvaluator(store, offers, history, notifier, clock=clock)
    return provider, history, store, notifier, evaluator


def _offers(provider, *prices, dest="BCN"):
    provider.offers[("BRU", dest)] = [
        make_offer(p, destination=dest, departure=DEP, return_date=None) for p in prices
    ]


def test_threshold_fires_below_max(env):
    provider, _, store, notifier, evaluator = env
    alert = store.create("u1", "BRU", "BCN", "price_threshold", max_price=Decimal("150"), departure_date=DEP)
    _offers(provider, 160, 140)

    assert evaluator.evaluate(alert) is True
    assert len(notifier.sent) == 1
    user_id, subject, body, data = notifier.sent[0]
    assert user_id == "u1"
    assert subject == "Price Alert: BRU → BCN"
    assert "140" in body
    assert data["price"] == "140"
    assert data["route"] == "BRU-BCN"
    assert store.get(alert.id).last_notified_at == T0


def test_threshold_holds_above_max(env):
    provider, _, store, notifier, evaluator = env
    alert = store.create("u1", "BRU", "BCN", "price_threshold", max_price=Decimal("150"), departure_date=DEP)
    _offers(provider, 160)

    assert evaluator.evaluate(alert) is False
    assert notifier.sent == []
    loaded = store.get(alert.id)
    assert loaded.last_notified_at is None
    assert loaded.last_checked_at == T0


def test_cooldown(env, clock):
    provider, _, store, notifier, evaluator = env
    alert = store.create("u1", "BRU", "BCN", "price_threshold", max_price=Decimal("150"), departure_date=DEP)
    _offers(provider, 100)

    alert.last_notified_at = T0 - timedelta(hours=1)
    assert evaluator.evaluate(alert) is False
    assert notifier.sent == []
    assert provider.calls == []

    alert.last_notified_at = T0 - timedelta(hours=25)
    assert evaluator.evaluate(alert) is True
    assert len(notifier.sent) == 1

    clock.advance(hours=2)
    assert evaluator.evaluate(alert) is False
    assert len(notifier.sent) == 1


def test_price_drop(env):
    provider, history, store, notifier, evaluator = env
    history.record_many(make_entry(200, T0 - timedelta(days=3, hours=i)) for i in range(4))
    alert = store.create("u1", "BRU", "BCN", "price_drop", price_drop_percent=20, departure_date=DEP)

    # judged against the earlier 200s only: a 15% drop
    _offers(provider, 170)
    assert evaluator.evaluate(alert) is False
    assert notifier.sent == []

    decision = evaluator.decide(alert, make_offer(150, departure=DEP), as_of=T0)
    assert decision.fire
    assert decision.reason == "Price dropped 25.0% from 30-day average"


def test_price_drop_without_history_holds(env):
    _, _, store, _, evaluator = env
    alert = store.create("u1", "BRU", "BCN", "price_drop", price_drop_percent=5)
    assert evaluator.decide(alert, make_offer(1)).fire is False


def test_good_deal_uses_shared_table(env):
    _, history, store, _, evaluator = env
    history.record_many(
        make_entry(p, T0 - timedelta(days=4, hours=-i))
        for i, p in enumerate([100, 120, 150, 180, 200])
    )
    alert = store.create("u1", "BRU", "BCN", "good_deal")

    assert evaluator.decide(alert, make_offer(110)).fire  # 20th percentile, good
    assert not evaluator.decide(alert, make_offer(150)).fire  # 60th, fair


def test_good_deal_on_fresh_route_holds(env):
    provider, history, store, notifier, evaluator = env
    alert = store.create("u1", "BRU", "BCN", "good_deal", departure_date=DEP)
    _offers(provider, 500, 510, 520, 530)

    assert evaluator.evaluate(alert) is False
    assert notifier.sent == []
    # the batch is still kept as history for later checks
    assert len(history.entries("BRU-BCN", days=1)) == 4


def test_no_offers_skips(env):
    _, _, store, notifier, evaluator = env
    alert = store.create("u1", "BRU", "AMS", "good_deal")
    assert evaluator.evaluate(alert) is False
    assert notifier.sent == []
    assert store.get(alert.id).last_checked_at == T0


def test_notifier_failure_still_marks_notified(env):
    provider, _, store, notifier, evaluator = env

    def broken(*args):
        raise RuntimeError("smtp down")

    notifier.send = broken
    alert = store.create("u1", "BRU", "BCN", "price_threshold", max_price=Decimal("500"), departure_date=DEP)
    _offers(provider, 100)
    assert evaluator.evaluate(alert) is True
    assert store.get(alert.id).last_notified_at == T0


def test_unstamped_alert_is_not_notified(env, monkeypatch, caplog):
    provider, _, store, notifier, evaluator = env
    alert = store.create("u1", "BRU", "BCN", "price_threshold", max_price=Decimal("500"), departure_date=DEP)
    _offers(provider, 100)

    def locked(*args):
        raise PersistenceError("database is locked")

    monkeypatch.setattr(store, "mark_notified", locked)
    assert evaluator.evaluate_all() == 0
    assert notifier.sent == []
    assert f"Error checking alert {alert.id}" in caplog.text

    monkeypatch.undo()
    assert evaluator.evaluate_all() == 1
    assert evaluator.evaluate_all() == 0
    assert len(notifier.sent) == 1


def test_sweep_isolates_failures(env, caplog):
    provider, _, store, notifier, evaluator = env
    ok = store.create("u1", "BRU", "BCN", "price_threshold", max_price=Decimal("500"), departure_date=DEP)
    bad = store.create("u2", "BRU", "MAD", "price_threshold", max_price=Decimal("500"), departure_date=DEP)
    _offers(provider, 100)
    _offers(provider, 100, dest="MAD")

    real_decide = evaluator.decide

    def flaky(alert, best, **kwargs):
        if alert.id == bad.id:
            raise RuntimeError("statistics exploded")
        return real_decide(alert, best, **kwargs)

    evaluator.decide = flaky
    assert evaluator.evaluate_all() == 1
    assert [s[0] for s in notifier.sent] == ["u1"]
    assert f"Error checking alert {bad.id}" in caplog.text
    assert store.get(bad.id).last_checked_at == T0
    assert store.get(ok.id).last_notified_at == T0


def test_sweep_skips_inactive(env):
    provider, _, store, notifier, evaluator = env
    alert = store.create("u1", "BRU", "BCN", "price_threshold", max_price=Decimal("500"), departure_date=DEP)
    store.set_active(alert.id, "u1", False)
    _offers(provider, 100)
    assert evaluator.evaluate_all() == 0
    assert notifier.sent == []


def test_unknown_kind_rejected(env):
    _, _, _, _, evaluator = env
    alert = Alert(id="a", user_id="u", origin="BRU", destination="BCN", kind="good_deal")
    alert.kind = "mystery"
    with pytest.raises(ValueError):
        evaluator.decide(alert, make_offer(100))
