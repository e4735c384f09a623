import time

import pytest

from buy_classifier import SolanaBuyClassifier, measure_balance_diff
from dedup_guard import ProcessedTxSet
from models import MarketSnapshot
from venue_resolver import WSOL_MINT

from conftest import FakeResolver, FakeSolConnector, MINT, SOL_BUYER, make_sol_tx

OTHER_BUYER = "5tzFkiKscXHK5ZXCGbXZxdw7gTjjD1mBwuoFbhUvuAi9"


def sig(name, err=None, block_time=None):
    return {"signature": name, "slot": 1, "err": err, "blockTime": block_time or int(time.time())}


def classifier_for(connector, snapshot=None, dedup=None, **kwargs):
    resolver = FakeResolver(snapshot or MarketSnapshot(symbol="BONK", price_usd=0.00002, price_native=0.0000001,
                                                       fdv=2_000_000, counter_address=WSOL_MINT))
    return SolanaBuyClassifier(connector, resolver, dedup or ProcessedTxSet(), **kwargs)


async def test_sol_spent_and_tokens_gained_is_a_buy(sol_binding):
    connector = FakeSolConnector([sig("s1")], {"s1": make_sol_tx()})

    events = await classifier_for(connector).classify_tick(sol_binding)

    assert len(events) == 1
    event = events[0]
    assert event.buyer == SOL_BUYER
    assert event.native_amount == pytest.approx(1.0)
    assert event.token_amount == pytest.approx(5000)
    assert event.usd_value == pytest.approx(200.0)
    assert event.symbol == "BONK"
    assert event.is_new_holder is True


async def test_repeat_buyer_is_not_new_holder(sol_binding):
    tx = make_sol_tx(pre_token=1_000_000, post_token=5_001_000_000)
    connector = FakeSolConnector([sig("s1")], {"s1": tx})

    events = await classifier_for(connector).classify_tick(sol_binding)

    assert events[0].token_amount == pytest.approx(5000)
    assert events[0].is_new_holder is False


async def test_dust_is_dropped(sol_binding):
    tx = make_sol_tx(pre_lamports=1_000_000_000, post_lamports=999_000_000)
    connector = FakeSolConnector([sig("s1")], {"s1": tx})

    assert await classifier_for(connector).classify_tick(sol_binding) == []


async def test_sell_is_dropped(sol_binding):
    tx = make_sol_tx(pre_lamports=1_000_000_000, post_lamports=2_000_000_000, pre_token=5_000_000, post_token=0)
    connector = FakeSolConnector([sig("s1")], {"s1": tx})

    assert await classifier_for(connector).classify_tick(sol_binding) == []


async def test_tokens_landing_in_someone_elses_account_are_ignored(sol_binding):
    tx = make_sol_tx(owner=OTHER_BUYER)
    connector = FakeSolConnector([sig("s1")], {"s1": tx})

    assert await classifier_for(connector).classify_tick(sol_binding) == []


async def test_same_transaction_across_two_ticks_emits_once(sol_binding):
    connector = FakeSolConnector([sig("s1")], {"s1": make_sol_tx()})
    classifier = classifier_for(connector)

    first = await classifier.classify_tick(sol_binding)
    second = await classifier.classify_tick(sol_binding)

    assert len(first) == 1
    assert second == []
    assert connector.fetched == ["s1"]


async def test_unseen_transactions_are_classified_oldest_first(sol_binding):
    now = int(time.time())
    connector = FakeSolConnector(
        [sig("s3", block_time=now), sig("s2", block_time=now - 1), sig("s1", block_time=now - 2)],
        {name: make_sol_tx() for name in ("s1", "s2", "s3")}
    )

    events = await classifier_for(connector).classify_tick(sol_binding)

    assert [e.tx_id for e in events] == ["s1", "s2", "s3"]


async def test_failed_signatures_are_skipped(sol_binding):
    connector = FakeSolConnector([sig("s1", err={"InstructionError": [0, "Custom"]})], {"s1": make_sol_tx()})

    assert await classifier_for(connector).classify_tick(sol_binding) == []
    assert connector.fetched == []


async def test_transactions_before_the_subscription_are_not_alerted(sol_binding):
    old = int(sol_binding.subscribed_at) - 3600
    connector = FakeSolConnector([sig("old", block_time=old)], {"old": make_sol_tx()})

    assert await classifier_for(connector, backfill_grace=30).classify_tick(sol_binding) == []


async def test_unretrievable_transaction_is_retried_on_next_tick(sol_binding):
    connector = FakeSolConnector([sig("s1")], {})
    classifier = classifier_for(connector)

    assert await classifier.classify_tick(sol_binding) == []
    assert "s1" not in classifier.dedup

    connector.transactions["s1"] = make_sol_tx()
    events = await classifier.classify_tick(sol_binding)
    assert [e.tx_id for e in events] == ["s1"]


async def test_non_buys_are_remembered(sol_binding):
    tx = make_sol_tx(pre_lamports=1_000_000_000, post_lamports=2_000_000_000, pre_token=5_000_000, post_token=0)
    connector = FakeSolConnector([sig("s1")], {"s1": tx})
    classifier = classifier_for(connector)

    await classifier.classify_tick(sol_binding)
    await classifier.classify_tick(sol_binding)

    assert connector.fetched == ["s1"]


async def test_market_data_outage_keeps_the_buy(sol_binding):
    connector = FakeSolConnector([sig("s1")], {"s1": make_sol_tx()})
    classifier = SolanaBuyClassifier(connector, FakeResolver(fail=True), ProcessedTxSet())

    events = await classifier.classify_tick(sol_binding)

    assert events[0].symbol == "TOKEN"
    assert events[0].market_cap_label == "Unknown"
    assert events[0].usd_value == 0.0


async def test_usd_falls_back_to_token_price_without_native_price(sol_binding):
    connector = FakeSolConnector([sig("s1")], {"s1": make_sol_tx()})
    classifier = classifier_for(connector, snapshot=MarketSnapshot(symbol="BONK", price_usd=0.01, price_native=0))

    events = await classifier.classify_tick(sol_binding)

    assert events[0].usd_value == pytest.approx(50.0)


async def test_one_market_lookup_per_tick(sol_binding):
    connector = FakeSolConnector([sig("s2"), sig("s1")], {"s1": make_sol_tx(), "s2": make_sol_tx()})
    classifier = classifier_for(connector)

    events = await classifier.classify_tick(sol_binding)

    assert len(events) == 2
    assert classifier.resolver.calls == 1


def test_measure_balance_diff_rejects_failed_and_malformed_transactions():
    assert measure_balance_diff(make_sol_tx(err={"InstructionError": []}), MINT) is None
    assert measure_balance_diff({"meta": None}, MINT) is None
    assert measure_balance_diff({"transaction": {}, "meta": {"err": None}}, MINT) is None

    broken = make_sol_tx()
    broken["meta"]["postTokenBalances"][0]["uiTokenAmount"]["amount"] = "not-a-number"
    assert measure_balance_diff(broken, MINT) is None


def test_measure_balance_diff_accepts_plain_string_account_keys():
    tx = make_sol_tx()
    tx["transaction"]["message"]["accountKeys"] = [SOL_BUYER, "11111111111111111111111111111111"]

    diff = measure_balance_diff(tx, MINT)

    assert diff["buyer"] == SOL_BUYER
    assert diff["pre_token_raw"] == 0
    assert diff["token_delta"] == pytest.approx(5000)


USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


async def test_usdc_quoted_pool_values_the_tokens_received(sol_binding):
    connector = FakeSolConnector([sig("s1")], {"s1": make_sol_tx()})
    usdc_pool = MarketSnapshot(symbol="BONK", price_usd=0.01, price_native=0.01, counter_address=USDC_MINT)

    events = await classifier_for(connector, snapshot=usdc_pool).classify_tick(sol_binding)

    assert events[0].native_amount == pytest.approx(1.0)
    assert events[0].usd_value == pytest.approx(50.0)


async def test_token_listed_as_quote_uses_derived_token_price(sol_binding):
    connector = FakeSolConnector([sig("s1")], {"s1": make_sol_tx()})
    # USDC/BONK: the base is USDC at $1, worth 100 BONK
    usdc_base = MarketSnapshot(symbol="BONK", price_usd=1.0, price_native=100.0, token_is_base=False,
                               counter_address=USDC_MINT)

    events = await classifier_for(connector, snapshot=usdc_base).classify_tick(sol_binding)

    assert events[0].usd_value == pytest.approx(50.0)
