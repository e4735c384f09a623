import json

from config import DEFAULT_CONFIG, load_config, save_config
from models import CHAIN_ETH, CHAIN_SOLANA
from trending_store import TrendingStore
from watchlist import desired_targets, load_group_configs

from conftest import MINT, TOKEN


def test_missing_config_file_is_created_with_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("USE_ENV_CONFIG", raising=False)
    path = tmp_path / "config.json"

    config = load_config(str(path))

    assert config == DEFAULT_CONFIG
    assert json.loads(path.read_text()) == DEFAULT_CONFIG


def test_partial_config_is_merged_with_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("USE_ENV_CONFIG", raising=False)
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"TRENDING_MODEL": "decay"}))

    config = load_config(str(path))

    assert config["TRENDING_MODEL"] == "decay"
    assert config["DEDUP_HIGH_WATER_MARK"] == DEFAULT_CONFIG["DEDUP_HIGH_WATER_MARK"]


def test_corrupt_config_falls_back_to_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("USE_ENV_CONFIG", raising=False)
    path = tmp_path / "config.json"
    path.write_text("{not json")

    assert load_config(str(path)) == DEFAULT_CONFIG


def test_env_config_is_typed_by_default(monkeypatch, tmp_path):
    monkeypatch.setenv("USE_ENV_CONFIG", "true")
    monkeypatch.setenv("ENABLE_ETH", "false")
    monkeypatch.setenv("DEDUP_EVICT_BATCH", "250")
    monkeypatch.setenv("SOL_DUST_FLOOR", "0.01")
    monkeypatch.setenv("SOL_SIGNATURE_WINDOW", "lots")

    config = load_config(str(tmp_path / "unused.json"))

    assert config["ENABLE_ETH"] is False
    assert config["DEDUP_EVICT_BATCH"] == 250
    assert config["SOL_DUST_FLOOR"] == 0.01
    assert config["SOL_SIGNATURE_WINDOW"] == DEFAULT_CONFIG["SOL_SIGNATURE_WINDOW"]
    assert not (tmp_path / "unused.json").exists()


def test_save_config(tmp_path):
    path = tmp_path / "config.json"

    assert save_config({"LOG_LEVEL": "DEBUG"}, str(path)) is True
    assert json.loads(path.read_text()) == {"LOG_LEVEL": "DEBUG"}


def test_group_configs_collapse_into_per_chain_targets():
    groups = [
        {"chat_id": "-100", "chain": "eth", "token_address": TOKEN.upper().replace("0X", "0x")},
        {"chat_id": "-200", "chain": "eth", "token_address": TOKEN},
        {"chat_id": "-300", "token_address": MINT},
        {"chat_id": "-400", "chain": "eth", "token_address": MINT},
        {"chat_id": "-500", "chain": "tron", "token_address": TOKEN},
        {"chat_id": "-600", "token_address": "garbage"}
    ]

    assert desired_targets(groups) == {CHAIN_ETH: [TOKEN], CHAIN_SOLANA: [MINT]}


def test_load_group_configs(tmp_path):
    path = tmp_path / "watchlist.json"
    path.write_text(json.dumps([{"chat_id": "-1", "token_address": MINT}, "stray"]))

    assert load_group_configs(str(path)) == [{"chat_id": "-1", "token_address": MINT}]
    assert load_group_configs(str(tmp_path / "missing.json")) == []

    path.write_text(json.dumps({"chat_id": "-1"}))
    assert load_group_configs(str(path)) == []


def test_trending_store_round_trip(tmp_path):
    store = TrendingStore(str(tmp_path / "state.json"))

    assert store.load() == {}
    assert store.save({"model": "sliding", "trades": []}) is True
    assert store.load() == {"model": "sliding", "trades": []}
    assert not (tmp_path / "state.json.tmp").exists()


def test_trending_store_tolerates_corrupt_file(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("[1, 2")

    assert TrendingStore(str(path)).load() == {}


def test_config_file_that_is_not_an_object_falls_back_to_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("USE_ENV_CONFIG", raising=False)
    path = tmp_path / "config.json"
    path.write_text(json.dumps(["ENABLE_ETH"]))

    assert load_config(str(path)) == DEFAULT_CONFIG
