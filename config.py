"""
Configuration for the buy-alert watcher
"""

import os
import json
import logging
from typing import Dict, Any

logger = logging.getLogger("config")

# Default configuration
DEFAULT_CONFIG = {
    # Chains
    "ENABLE_ETH": True,
    "ENABLE_SOLANA": True,
    "ETH_RPC_URL": "",
    "SOL_RPC_URL": "https://api.mainnet-beta.solana.com",
    "SOL_WS_URL": "wss://api.mainnet-beta.solana.com",
    "COMMITMENT": "confirmed",
    "SOL_SUBSCRIBE_TIMEOUT_SECONDS": 10,

    # Detection
    "ETH_POLL_INTERVAL_SECONDS": 4,
    "ETH_DUST_FLOOR": 0.0004,
    "SOL_DUST_FLOOR": 0.005,
    "SOL_SIGNATURE_WINDOW": 10,
    "SOL_BACKFILL_GRACE_SECONDS": 30,
    "DEDUP_HIGH_WATER_MARK": 2000,
    "DEDUP_EVICT_BATCH": 500,

    # Market data
    "MARKET_DATA_URL": "https://api.dexscreener.com/latest/dex/tokens",
    "MARKET_DATA_TIMEOUT_SECONDS": 10,

    # Trending
    "TRENDING_MODEL": "sliding",
    "TRENDING_VELOCITY_WINDOW_SECONDS": 3600,
    "TRENDING_RETENTION_SECONDS": 86400,
    "TRENDING_DECAY_INTERVAL_SECONDS": 1800,
    "TRENDING_DECAY_FACTOR": 0.9,
    "TRENDING_PRUNE_FLOOR": 0.1,
    "TRENDING_WHALE_USD": 1000.0,
    "TRENDING_WHALE_POINTS": 5.0,
    "TRENDING_BASE_POINTS": 1.0,
    "TRENDING_STATE_FILE": "trending_state.json",
    "TRENDING_SAVE_INTERVAL_SECONDS": 60,
    "TRENDING_REPORT_INTERVAL_SECONDS": 300,
    "LEADERBOARD_SIZE": 5,

    # Watch list
    "WATCHLIST_FILE": "watchlist.json",
    "WATCHLIST_SYNC_INTERVAL_SECONDS": 30,

    # Security scan
    "ENABLE_SECURITY_SCAN": True,
    "GOPLUS_BASE_URL": "https://api.gopluslabs.io/api/v1",
    "RUGCHECK_BASE_URL": "https://api.rugcheck.xyz/v1/tokens",

    # System
    "LOG_LEVEL": "INFO"
}


def _coerce(raw: str, default: Any) -> Any:
    """Parse an environment string into the type of its default value."""
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def _with_defaults(overrides: Dict[str, Any]) -> Dict[str, Any]:
    config = dict(DEFAULT_CONFIG)
    config.update(overrides)
    return config


def load_config(config_file: str = "config.json") -> Dict[str, Any]:
    """
    Build the runtime configuration.

    With USE_ENV_CONFIG=true the environment is the only source. Otherwise the JSON file
    is read and any key it lacks takes its default; a missing file is written out from
    the defaults so it can be edited.

    Returns:
        Configuration dictionary
    """
    if os.environ.get("USE_ENV_CONFIG", "").lower() == "true":
        logger.info("[CONFIG] Reading configuration from the environment")
        return load_config_from_env()

    if not os.path.exists(config_file):
        save_config(DEFAULT_CONFIG, config_file)
        return dict(DEFAULT_CONFIG)

    try:
        with open(config_file, "r") as f:
            stored = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"[CONFIG] Could not read {config_file}, falling back to defaults: {e}")
        return dict(DEFAULT_CONFIG)

    if not isinstance(stored, dict):
        logger.error(f"[CONFIG] {config_file} must hold a JSON object, falling back to defaults")
        return dict(DEFAULT_CONFIG)

    logger.info(f"[CONFIG] Loaded {config_file}")
    return _with_defaults(stored)


def load_config_from_env() -> Dict[str, Any]:
    """Defaults overridden by any environment variable named after a config key."""
    overrides = {}
    for key, default in DEFAULT_CONFIG.items():
        raw = os.environ.get(key)
        if raw is None:
            continue
        try:
            overrides[key] = _coerce(raw, default)
        except ValueError:
            logger.warning(f"[CONFIG] Ignoring {key}={raw!r}, expected {type(default).__name__}")
    return _with_defaults(overrides)


def save_config(config: Dict[str, Any], config_file: str = "config.json") -> bool:
    try:
        with open(config_file, "w") as f:
            json.dump(config, f, indent=2)
    except OSError as e:
        logger.error(f"[CONFIG] Could not write {config_file}: {e}")
        return False
    logger.info(f"[CONFIG] Wrote {config_file}")
    return True
