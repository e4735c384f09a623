# Filename: main.py

import asyncio
import logging
from typing import Any, Dict, List

from config import load_config
from eth_connector import EthConnector
from eth_watcher import EthWatcher
from models import BuyEvent, CHAIN_ETH, CHAIN_SOLANA
from security_scanner import SecurityScanner
from sol_connector import SolanaConnector
from sol_watcher import SolanaWatcher
from trending import build_trending_engine
from trending_reporter import TrendingReporter
from trending_store import TrendingStore
from venue_resolver import VenueResolver
from watch_manager import WatchManager
from watchlist import desired_targets, load_group_configs

logger = logging.getLogger("Main")


def log_buy_alert(event: BuyEvent):
    holder = " NEW HOLDER" if event.is_new_holder else ""
    logger.info(
        f"BUY {event.symbol} ({event.chain}) {event.native_label} ~${event.usd_value:,.2f} "
        f"by {event.buyer}{holder} | MC {event.market_cap_label} | tx {event.tx_id}"
    )


def build_managers(config: Dict[str, Any], trending, on_buy=log_buy_alert) -> Dict[str, WatchManager]:
    resolver = VenueResolver(config)
    managers = {}

    if config.get("ENABLE_ETH"):
        try:
            connector = EthConnector(config.get("ETH_RPC_URL", ""), poll_interval=config.get("ETH_POLL_INTERVAL_SECONDS", 4))
            managers[CHAIN_ETH] = WatchManager(EthWatcher(connector, resolver, config), on_buy=on_buy, trending=trending)
        except ValueError as e:
            logger.error(f"Ethereum watcher disabled: {e}")

    if config.get("ENABLE_SOLANA"):
        try:
            connector = SolanaConnector(config.get("SOL_RPC_URL", ""), config.get("SOL_WS_URL", ""),
                                        commitment=config.get("COMMITMENT", "confirmed"),
                                        subscribe_timeout=config.get("SOL_SUBSCRIBE_TIMEOUT_SECONDS", 10))
            managers[CHAIN_SOLANA] = WatchManager(SolanaWatcher(connector, resolver, config), on_buy=on_buy, trending=trending)
        except ValueError as e:
            logger.error(f"Solana watcher disabled: {e}")

    return managers


async def sync_watchlists(managers: Dict[str, WatchManager], path: str, interval: float):
    last_targets = None
    while True:
        targets = desired_targets(load_group_configs(path))
        # Unresolved tokens and ended streams are only retried on a call, so keep calling while any are missing
        missing = any(managers[chain].live_count() < len(targets.get(chain, [])) for chain in managers)
        if targets != last_targets or missing:
            for chain, manager in managers.items():
                await manager.update_watch_list(targets.get(chain, []))
            last_targets = targets
        await asyncio.sleep(interval)


async def save_periodically(trending, store: TrendingStore, interval: float):
    while True:
        await asyncio.sleep(interval)
        store.save(trending.to_dict())


async def run(config: Dict[str, Any]):
    trending = build_trending_engine(config)
    store = TrendingStore(config.get("TRENDING_STATE_FILE", "trending_state.json"))
    trending.load_dict(store.load())

    managers = build_managers(config, trending)
    if not managers:
        logger.error("No chain watcher is enabled, nothing to do")
        return

    scanner = SecurityScanner(config) if config.get("ENABLE_SECURITY_SCAN") else None
    reporter = TrendingReporter(
        trending,
        scanner=scanner,
        interval=config.get("TRENDING_REPORT_INTERVAL_SECONDS", 300),
        size=config.get("LEADERBOARD_SIZE", 5)
    )

    await trending.start()
    tasks: List[asyncio.Task] = [
        asyncio.create_task(sync_watchlists(managers, config.get("WATCHLIST_FILE", "watchlist.json"),
                                            config.get("WATCHLIST_SYNC_INTERVAL_SECONDS", 30))),
        asyncio.create_task(reporter.run_loop()),
        asyncio.create_task(save_periodically(trending, store, config.get("TRENDING_SAVE_INTERVAL_SECONDS", 60)))
    ]

    try:
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for manager in managers.values():
            await manager.stop()
            close = getattr(manager.watcher.connector, "close", None)
            if close is not None:
                await close()
        await trending.stop()
        logger.info("Saving trending state before shutdown...")
        store.save(trending.to_dict())


def main():
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, str(config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )
    logger.info("Starting buy-alert watcher...")

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Stopped by user.")


if __name__ == "__main__":
    main()
