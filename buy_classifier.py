"""
Buy classification
Turns raw chain notifications into canonical BuyEvents, dropping sells, transfers,
liquidity moves and dust
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from chain_utils import same_address
from dedup_guard import ProcessedTxSet
from models import (
    BuyEvent, CHAIN_ETH, CHAIN_SOLANA, MarketSnapshot, PLACEHOLDER_SYMBOL,
    SwapLog, VenueBinding
)
from venue_resolver import WSOL_MINT

logger = logging.getLogger("buy_classifier")

WEI_PER_ETH = 10 ** 18
LAMPORTS_PER_SOL = 1_000_000_000
DEFAULT_DECIMALS = 18


def estimate_usd(native_amount: float, token_amount: float, snapshot: Optional[MarketSnapshot],
                 native_address: str) -> float:
    """
    USD value of a buy from a venue snapshot.

    Aggregator prices describe the pair's base leg. Only a token/native pair yields a native
    to USD ratio; a native/token pair prices the native leg itself. Pairs quoted in another
    asset (USDC) value the tokens received instead.
    """
    if snapshot is None:
        return 0.0
    counter_is_native = same_address(snapshot.counter_address, native_address)
    if counter_is_native and snapshot.token_is_base:
        if snapshot.price_native > 0:
            return native_amount * (snapshot.price_usd / snapshot.price_native)
    elif counter_is_native:
        return native_amount * snapshot.price_usd
    return token_amount * snapshot.token_price_usd


class EthBuyClassifier:
    """
    Classifies decoded Uniswap V2 Swap logs.
    The native leg is taken from the pair's token0/token1, never inferred from address ordering.
    """

    def __init__(self, connector, resolver, dust_floor: float = 0.0004):
        self.connector = connector
        self.resolver = resolver
        self.dust_floor = dust_floor
        self._decimals_cache: Dict[str, int] = {}

    async def get_token_decimals(self, token_address: str) -> int:
        if token_address in self._decimals_cache:
            return self._decimals_cache[token_address]
        try:
            decimals = await self.connector.get_decimals(token_address)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[ETH] decimals() failed for {token_address}, assuming {DEFAULT_DECIMALS}: {e}")
            return DEFAULT_DECIMALS
        self._decimals_cache[token_address] = decimals
        return decimals

    @staticmethod
    def buy_legs(swap: SwapLog, binding: VenueBinding, native_address: str):
        """
        Extract (native_in, token_out) raw amounts when the swap is a buy of the watched token.

        Returns:
            Tuple of raw integer amounts, or None for sells, liquidity moves and anything else
        """
        venue = binding.venue
        if venue.token0 is None or venue.token1 is None:
            return None
        if venue.token0 == native_address:
            native_in, native_out = swap.amount0_in, swap.amount0_out
            token_in, token_out = swap.amount1_in, swap.amount1_out
        elif venue.token1 == native_address:
            native_in, native_out = swap.amount1_in, swap.amount1_out
            token_in, token_out = swap.amount0_in, swap.amount0_out
        else:
            return None

        if native_in > 0 and token_out > 0 and native_out == 0 and token_in == 0:
            return native_in, token_out
        return None

    async def classify(self, swap: SwapLog, binding: VenueBinding, native_address: str) -> Optional[BuyEvent]:
        legs = self.buy_legs(swap, binding, native_address)
        if legs is None:
            return None
        native_raw, token_raw = legs

        native_spent = native_raw / WEI_PER_ETH
        if native_spent <= self.dust_floor:
            logger.debug(f"[ETH] Dust swap ignored in {swap.tx_hash} ({native_spent:.6f} ETH)")
            return None

        token_address = binding.target.address
        decimals = await self.get_token_decimals(token_address)
        token_amount = token_raw / (10 ** decimals)

        snapshot = await self._fresh_snapshot(token_address) or binding.venue.snapshot
        is_new_holder = await self._was_empty_before(token_address, swap.to, swap.block_number)

        event = BuyEvent(
            token_address=token_address,
            chain=CHAIN_ETH,
            symbol=snapshot.symbol if snapshot else PLACEHOLDER_SYMBOL,
            buyer=swap.to,
            native_amount=native_spent,
            token_amount=token_amount,
            usd_value=estimate_usd(native_spent, token_amount, snapshot, native_address),
            tx_id=swap.tx_hash,
            timestamp=time.time(),
            is_new_holder=is_new_holder,
            market_cap_usd=snapshot.fdv if snapshot else None,
            dex="Uniswap V2",
            venue_address=binding.venue.venue_address
        )
        logger.info(f"[ETH MATCH] {token_address} bought by {swap.to} ({native_spent:.4f} ETH)")
        return event

    async def _fresh_snapshot(self, token_address: str) -> Optional[MarketSnapshot]:
        try:
            return await self.resolver.get_market_snapshot(token_address, CHAIN_ETH)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[ETH] Market refresh failed for {token_address}: {e}")
            return None

    async def _was_empty_before(self, token_address: str, owner: str, block_number: int) -> bool:
        try:
            balance = await self.connector.get_token_balance(token_address, owner, max(block_number - 1, 0))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"[ETH] Pre-trade balance unavailable for {owner}: {e}")
            return False
        return balance == 0


def _account_key(entry: Any) -> Optional[str]:
    if isinstance(entry, dict):
        return entry.get("pubkey")
    return entry


def _owned_token_amount(balances: List[Dict[str, Any]], mint: str, owner: str):
    """Sum the raw token amount an owner holds of a mint. Returns (raw, decimals)."""
    raw = 0
    decimals = None
    for entry in balances:
        if entry.get("mint") != mint or entry.get("owner") != owner:
            continue
        ui = entry["uiTokenAmount"]
        raw += int(ui["amount"])
        decimals = int(ui["decimals"])
    return raw, decimals


def measure_balance_diff(tx: Dict[str, Any], mint: str) -> Optional[Dict[str, Any]]:
    """
    Balance-diff view of a parsed transaction for its fee payer.

    Args:
        tx: getTransaction result in jsonParsed encoding
        mint: Watched token mint

    Returns:
        Dict with buyer, native_spent, token_delta and pre_token_raw, or None when the
        transaction failed or its data is incomplete
    """
    try:
        meta = tx["meta"]
        if meta is None or meta.get("err") is not None:
            return None
        buyer = _account_key(tx["transaction"]["message"]["accountKeys"][0])
        if not buyer:
            return None

        pre_lamports = meta["preBalances"][0]
        post_lamports = meta["postBalances"][0]
        if pre_lamports is None or post_lamports is None:
            return None

        pre_raw, pre_decimals = _owned_token_amount(meta.get("preTokenBalances") or [], mint, buyer)
        post_raw, post_decimals = _owned_token_amount(meta.get("postTokenBalances") or [], mint, buyer)
    except (KeyError, IndexError, TypeError, ValueError):
        return None

    decimals = post_decimals if post_decimals is not None else pre_decimals
    if decimals is None:
        token_delta = 0.0
    else:
        token_delta = (post_raw - pre_raw) / (10 ** decimals)

    return {
        "buyer": buyer,
        "native_spent": (pre_lamports - post_lamports) / LAMPORTS_PER_SOL,
        "token_delta": token_delta,
        "pre_token_raw": pre_raw
    }


class SolanaBuyClassifier:
    """
    Classifies account-change ticks by diffing balances of the venue's recent transactions.
    One tick may cover several unseen transactions; they are classified oldest-first.
    """

    def __init__(self, connector, resolver, dedup: ProcessedTxSet, dust_floor: float = 0.005,
                 signature_window: int = 10, backfill_grace: float = 30):
        self.connector = connector
        self.resolver = resolver
        self.dedup = dedup
        self.dust_floor = dust_floor
        self.signature_window = signature_window
        self.backfill_grace = backfill_grace

    async def classify_tick(self, binding: VenueBinding) -> List[BuyEvent]:
        venue_address = binding.venue.venue_address
        try:
            signatures = await self.connector.get_recent_signatures(venue_address, self.signature_window)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[SOL] Signature lookup failed for {venue_address}: {e}")
            return []

        cutoff = binding.subscribed_at - self.backfill_grace
        events = []
        snapshot_holder: Dict[str, Optional[MarketSnapshot]] = {}

        # RPC returns newest first
        for entry in reversed(signatures):
            signature = entry.get("signature")
            if not signature or entry.get("err") is not None:
                continue
            block_time = entry.get("blockTime")
            if block_time is not None and block_time < cutoff:
                continue
            if not self.dedup.admit_once(signature):
                continue

            try:
                tx = await self.connector.get_parsed_transaction(signature)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[SOL] Transaction fetch failed for {signature}: {e}")
                tx = None
            if tx is None:
                # Not retrievable yet, let a later tick retry it
                self.dedup.discard(signature)
                continue

            event = await self.classify_transaction(signature, tx, binding, snapshot_holder)
            if event is not None:
                events.append(event)
        return events

    async def classify_transaction(self, signature: str, tx: Dict[str, Any], binding: VenueBinding,
                                   snapshot_holder: Optional[Dict[str, Optional[MarketSnapshot]]] = None) -> Optional[BuyEvent]:
        mint = binding.target.address
        diff = measure_balance_diff(tx, mint)
        if diff is None:
            return None

        native_spent = diff["native_spent"]
        token_delta = diff["token_delta"]
        if native_spent <= self.dust_floor or token_delta <= 0:
            return None

        if snapshot_holder is None:
            snapshot_holder = {}
        if "snapshot" not in snapshot_holder:
            snapshot_holder["snapshot"] = await self._fresh_snapshot(mint) or binding.venue.snapshot
        snapshot = snapshot_holder["snapshot"]

        usd_value = estimate_usd(native_spent, token_delta, snapshot, WSOL_MINT)

        event = BuyEvent(
            token_address=mint,
            chain=CHAIN_SOLANA,
            symbol=snapshot.symbol if snapshot else PLACEHOLDER_SYMBOL,
            buyer=diff["buyer"],
            native_amount=native_spent,
            token_amount=token_delta,
            usd_value=usd_value,
            tx_id=signature,
            timestamp=float(tx.get("blockTime") or time.time()),
            is_new_holder=diff["pre_token_raw"] == 0,
            market_cap_usd=snapshot.fdv if snapshot else None,
            dex=binding.venue.dex_id,
            venue_address=binding.venue.venue_address
        )
        logger.info(f"[SOL MATCH] {mint} bought by {diff['buyer']} ({native_spent:.3f} SOL)")
        return event

    async def _fresh_snapshot(self, mint: str) -> Optional[MarketSnapshot]:
        try:
            return await self.resolver.get_market_snapshot(mint, CHAIN_SOLANA)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[SOL] Market refresh failed for {mint}: {e}")
            return None
