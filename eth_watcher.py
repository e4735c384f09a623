# Filename: eth_watcher.py

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from buy_classifier import EthBuyClassifier
from models import CHAIN_ETH, SwapLog, Venue, VenueBinding, WatchTarget
from venue_resolver import WETH_ADDRESS, snapshot_from_pair
from watch_manager import ChainWatcher

logger = logging.getLogger("EthWatcher")


class EthWatcher(ChainWatcher):
    """Uniswap V2 buy watcher: pair discovery, Swap log streams, log classification."""

    chain = CHAIN_ETH

    def __init__(self, connector, resolver, config: Dict[str, Any]):
        self.connector = connector
        self.resolver = resolver
        self.native_address = WETH_ADDRESS
        self.classifier = EthBuyClassifier(connector, resolver, dust_floor=config.get("ETH_DUST_FLOOR", 0.0004))

    async def resolve_venue(self, target: WatchTarget) -> Optional[Venue]:
        pair = await self.resolver.find_eth_pair(target.address)
        if not pair:
            logger.warning(f"[ETH] Could not find a Uniswap V2 WETH pair for {target.address}")
            return None

        pair_address = pair["pairAddress"].lower()
        try:
            token0, token1 = await self.connector.get_pair_tokens(pair_address)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[ETH] Could not read pair legs for {pair_address}: {e}")
            return None

        if self.native_address not in (token0, token1) or target.address not in (token0, token1):
            logger.warning(f"[ETH] Pair {pair_address} does not trade {target.address} against WETH")
            return None

        return Venue(
            token_address=target.address,
            chain=CHAIN_ETH,
            venue_address=pair_address,
            kind="pair",
            dex_id=pair.get("dexId", "uniswap"),
            token0=token0,
            token1=token1,
            snapshot=snapshot_from_pair(pair, target.address)
        )

    async def subscribe(self, venue: Venue, callback: Callable[[Any], None]) -> Any:
        return await self.connector.subscribe_swaps(venue.venue_address, callback)

    async def unsubscribe(self, handle: Any):
        await self.connector.unsubscribe(handle)

    async def classify(self, notification: SwapLog, binding: VenueBinding) -> List:
        event = await self.classifier.classify(notification, binding, self.native_address)
        return [event] if event is not None else []
