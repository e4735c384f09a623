# Filename: watch_manager.py

import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from chain_utils import dedupe_targets
from models import BuyEvent, Venue, VenueBinding, WatchTarget

logger = logging.getLogger("WatchManager")


class ChainWatcher:
    """
    Chain-specific capability used by a WatchManager.
    One implementation per chain family; selected once when the manager is built.
    """

    chain: str = ""

    async def resolve_venue(self, target: WatchTarget) -> Optional[Venue]:
        raise NotImplementedError

    async def subscribe(self, venue: Venue, callback: Callable[[Any], None]) -> Any:
        raise NotImplementedError

    async def unsubscribe(self, handle: Any):
        raise NotImplementedError

    async def classify(self, notification: Any, binding: VenueBinding) -> List[BuyEvent]:
        raise NotImplementedError


class WatchManager:
    """
    Owns the set of watched tokens for one chain and reconciles it against the desired set.
    Every accepted BuyEvent goes to the trending engine and to the alert sink.
    """

    def __init__(self, watcher: ChainWatcher, on_buy: Optional[Callable[[BuyEvent], Any]] = None,
                 trending=None):
        self.watcher = watcher
        self.chain = watcher.chain
        self.on_buy = on_buy
        self.trending = trending
        self.bindings: Dict[str, VenueBinding] = {}
        self._update_lock = asyncio.Lock()
        self._pending: Set[asyncio.Task] = set()

    def watched_targets(self) -> Set[WatchTarget]:
        return {binding.target for binding in self.bindings.values()}

    def is_watching(self, address: str) -> bool:
        return address in self.bindings

    @staticmethod
    def _is_live(binding: VenueBinding) -> bool:
        return getattr(binding.handle, "active", True) is not False

    def live_count(self) -> int:
        """Number of bindings whose stream is still running."""
        return sum(1 for binding in self.bindings.values() if self._is_live(binding))

    async def update_watch_list(self, desired: Iterable):
        """
        Reconcile subscriptions with the desired set of tokens.
        Unresolvable tokens are skipped and picked up again by a later call.
        """
        desired = list(desired)
        async with self._update_lock:
            targets = dedupe_targets(desired, self.chain)
            if len(targets) < len(set(desired)):
                logger.debug(f"[WATCH] {self.chain}: ignored {len(set(desired)) - len(targets)} invalid or duplicate entries")

            for address in [a for a, binding in self.bindings.items() if not self._is_live(binding)]:
                logger.warning(f"[WATCH] {self.chain}: stream for {address} ended, resubscribing")
                await self._remove(address)

            wanted = {target.address: target for target in targets}
            to_remove = [address for address in self.bindings if address not in wanted]
            to_add = [target for address, target in wanted.items() if address not in self.bindings]

            for address in to_remove:
                await self._remove(address)

            for target in to_add:
                await self._add(target)

            if to_remove or to_add:
                logger.info(f"[WATCH] {self.chain}: now watching {len(self.bindings)} tokens "
                            f"(+{len(to_add)} requested, -{len(to_remove)} removed)")

    async def _remove(self, address: str):
        binding = self.bindings.pop(address)
        try:
            await self.watcher.unsubscribe(binding.handle)
            logger.info(f"[WATCH] {self.chain}: unsubscribed from {address}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[WATCH] {self.chain}: failed to unsubscribe {address}: {e}")

    async def _add(self, target: WatchTarget):
        try:
            venue = await self.watcher.resolve_venue(target)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[WATCH] {self.chain}: venue lookup crashed for {target.address}: {e}")
            venue = None
        if venue is None:
            logger.warning(f"[WATCH] {self.chain}: no venue found for {target.address}, will retry on next update")
            return

        address = target.address
        try:
            handle = await self.watcher.subscribe(venue, lambda notification: self._dispatch(address, notification))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[WATCH] {self.chain}: failed to subscribe to {address}: {e}")
            return

        self.bindings[address] = VenueBinding(target=target, venue=venue, handle=handle, subscribed_at=time.time())
        logger.info(f"[WATCH] {self.chain}: now watching {address} ({venue.kind} {venue.venue_address})")

    def _dispatch(self, address: str, notification: Any):
        task = asyncio.get_running_loop().create_task(self.handle_notification(address, notification))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def handle_notification(self, address: str, notification: Any) -> List[BuyEvent]:
        binding = self.bindings.get(address)
        if binding is None:
            return []

        try:
            events = await self.watcher.classify(notification, binding)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"[WATCH] {self.chain}: classification failed for {address}: {e}")
            return []

        if self.bindings.get(address) is not binding:
            logger.debug(f"[WATCH] {self.chain}: dropping {len(events)} events for removed token {address}")
            return []

        for event in events:
            self._emit(event)
        return events

    def _emit(self, event: BuyEvent):
        if self.trending is not None:
            try:
                self.trending.record(event)
            except Exception as e:
                logger.error(f"[WATCH] Trending update failed for {event.tx_id}: {e}")

        if self.on_buy is None:
            return
        try:
            if inspect.iscoroutinefunction(self.on_buy):
                task = asyncio.get_running_loop().create_task(self.on_buy(event))
                self._pending.add(task)
                task.add_done_callback(self._sink_done)
            else:
                self.on_buy(event)
        except Exception as e:
            logger.error(f"[WATCH] Alert sink failed for {event.tx_id}: {e}")

    def _sink_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[WATCH] Alert sink failed: {task.exception()}")

    async def drain(self):
        """Wait for in-flight notification handlers. Mostly useful in tests and at shutdown."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def stop(self):
        for task in list(self._pending):
            task.cancel()
        await asyncio.gather(*list(self._pending), return_exceptions=True)
        for address in list(self.bindings):
            await self._remove(address)
        logger.info(f"[WATCH] {self.chain}: stopped")
