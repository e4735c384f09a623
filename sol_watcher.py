# Filename: sol_watcher.py

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from buy_classifier import SolanaBuyClassifier
from dedup_guard import ProcessedTxSet
from models import CHAIN_SOLANA, Venue, VenueBinding, WatchTarget
from watch_manager import ChainWatcher

logger = logging.getLogger("SolWatcher")


class SolanaWatcher(ChainWatcher):
    """Solana buy watcher: pool or bonding-curve discovery, account streams, balance-diff classification."""

    chain = CHAIN_SOLANA

    def __init__(self, connector, resolver, config: Dict[str, Any]):
        self.connector = connector
        self.resolver = resolver
        self.processed = ProcessedTxSet(
            high_water_mark=config.get("DEDUP_HIGH_WATER_MARK", 2000),
            evict_batch=config.get("DEDUP_EVICT_BATCH", 500)
        )
        self.classifier = SolanaBuyClassifier(
            connector,
            resolver,
            self.processed,
            dust_floor=config.get("SOL_DUST_FLOOR", 0.005),
            signature_window=config.get("SOL_SIGNATURE_WINDOW", 10),
            backfill_grace=config.get("SOL_BACKFILL_GRACE_SECONDS", 30)
        )

    async def resolve_venue(self, target: WatchTarget) -> Optional[Venue]:
        venue = await self.resolver.resolve_solana_venue(target.address)
        if venue is None or venue.kind != "bonding_curve":
            return venue

        # A derived curve only counts if the account exists; an RPC error does not veto it
        try:
            exists = await self.connector.account_exists(venue.venue_address)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[SOL] Could not confirm bonding curve {venue.venue_address}: {e}")
            return venue
        if not exists:
            logger.warning(f"[SOL] No pool and no bonding curve for {target.address}")
            return None
        return venue

    async def subscribe(self, venue: Venue, callback: Callable[[Any], None]) -> Any:
        return await self.connector.subscribe_account(venue.venue_address, callback)

    async def unsubscribe(self, handle: Any):
        await self.connector.unsubscribe(handle)

    async def classify(self, notification: Any, binding: VenueBinding) -> List:
        return await self.classifier.classify_tick(binding)
