import logging

import pytest

from chain_utils import dedupe_targets, identify_chain, normalize_address, same_address
from dedup_guard import ProcessedTxSet
from models import CHAIN_ETH, CHAIN_SOLANA, WatchTarget

from conftest import MINT, TOKEN


def test_admit_once():
    seen = ProcessedTxSet()

    assert seen.admit_once("a") is True
    assert seen.admit_once("a") is False
    assert "a" in seen


def test_eviction_drops_oldest_batch_only():
    seen = ProcessedTxSet(high_water_mark=10, evict_batch=4)
    for i in range(11):
        seen.admit_once(f"tx{i}")

    assert len(seen) == 7
    assert all(f"tx{i}" not in seen for i in range(4))
    assert all(f"tx{i}" in seen for i in range(4, 11))


def test_memory_stays_bounded():
    seen = ProcessedTxSet(high_water_mark=2000, evict_batch=500)
    for i in range(10_000):
        seen.admit_once(str(i))

    assert len(seen) <= 2000


def test_discard_allows_readmission():
    seen = ProcessedTxSet()
    seen.admit_once("a")
    seen.discard("a")
    seen.discard("never-seen")

    assert seen.admit_once("a") is True


def test_invalid_eviction_settings():
    with pytest.raises(ValueError):
        ProcessedTxSet(high_water_mark=10, evict_batch=0)
    with pytest.raises(ValueError):
        ProcessedTxSet(high_water_mark=10, evict_batch=11)


def test_identify_chain():
    assert identify_chain(TOKEN) == CHAIN_ETH
    assert identify_chain(MINT) == CHAIN_SOLANA
    assert identify_chain("0x123") is None
    assert identify_chain("0OIl" * 10) is None
    assert identify_chain("") is None


def test_normalize_address():
    assert normalize_address("0xABCDEF0000000000000000000000000000000000", CHAIN_ETH) == \
        "0xabcdef0000000000000000000000000000000000"
    assert normalize_address(f" {MINT} ", CHAIN_SOLANA) == MINT
    assert normalize_address(MINT, CHAIN_ETH) is None


def test_dedupe_targets_keeps_order_and_filters_chain():
    targets = dedupe_targets([MINT, TOKEN, WatchTarget(CHAIN_SOLANA, MINT), "junk"], CHAIN_SOLANA)

    assert targets == [WatchTarget(CHAIN_SOLANA, MINT)]


def test_eviction_log_reports_entries_removed(caplog):
    seen = ProcessedTxSet(high_water_mark=4, evict_batch=3)

    with caplog.at_level(logging.DEBUG, logger="DedupGuard"):
        for i in range(5):
            seen.admit_once(f"tx{i}")

    assert "Evicted 3 oldest entries, 2 remain" in caplog.text
    assert len(seen) == 2


def test_same_address():
    assert same_address(TOKEN.upper().replace("0X", "0x"), TOKEN)
    assert same_address("0xAbC0000000000000000000000000000000000001", "0xabc0000000000000000000000000000000000001")
    assert not same_address(MINT, MINT.lower())
    assert not same_address(None, TOKEN)
