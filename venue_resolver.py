"""
Venue resolution for watched tokens
Finds the pair, pool or bonding-curve account whose activity signals trading for a token
"""

import asyncio
import aiohttp
import logging
from typing import Any, Dict, List, Optional

from solders.pubkey import Pubkey

from chain_utils import same_address
from models import CHAIN_ETH, CHAIN_SOLANA, MarketSnapshot, PLACEHOLDER_SYMBOL, Venue

logger = logging.getLogger("venue_resolver")

WETH_ADDRESS = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
WSOL_MINT = "So11111111111111111111111111111111111111112"
SUPPORTED_EVM_DEX_IDS = {"uniswap"}
PUMP_FUN_PROGRAM_ID = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
BONDING_CURVE_SEED = b"bonding-curve"

DEXSCREENER_CHAIN_IDS = {CHAIN_ETH: "ethereum", CHAIN_SOLANA: "solana"}


def _to_float(value, default: float = 0.0) -> float:
    try:
        if value is None or value == "":
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def _leg_address(pair: Dict[str, Any], leg: str) -> str:
    return str((pair.get(leg) or {}).get("address", "")).lower()


def select_eth_pair(pairs: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Pick the first Uniswap V2 style pair that trades against WETH.

    Args:
        pairs: Pairs as returned by the aggregator, in its order

    Returns:
        The first qualifying pair, or None
    """
    for pair in pairs:
        if pair.get("chainId", DEXSCREENER_CHAIN_IDS[CHAIN_ETH]) != DEXSCREENER_CHAIN_IDS[CHAIN_ETH]:
            continue
        if pair.get("dexId") not in SUPPORTED_EVM_DEX_IDS:
            continue
        labels = pair.get("labels")
        if labels and "v2" not in labels:
            continue
        if WETH_ADDRESS not in (_leg_address(pair, "baseToken"), _leg_address(pair, "quoteToken")):
            continue
        if not pair.get("pairAddress"):
            continue
        return pair
    return None


def select_solana_pair(pairs: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Pick the first listed (graduated) venue on Solana."""
    for pair in pairs:
        if pair.get("chainId", DEXSCREENER_CHAIN_IDS[CHAIN_SOLANA]) != DEXSCREENER_CHAIN_IDS[CHAIN_SOLANA]:
            continue
        if pair.get("pairAddress"):
            return pair
    return None


def derive_bonding_curve(mint: str, program_id: str = PUMP_FUN_PROGRAM_ID) -> Optional[str]:
    """Derive the pump.fun bonding-curve PDA for a mint. None if the mint is not a valid pubkey."""
    try:
        mint_key = Pubkey.from_string(mint)
        program = Pubkey.from_string(program_id)
    except ValueError:
        return None
    curve, _bump = Pubkey.find_program_address([BONDING_CURVE_SEED, bytes(mint_key)], program)
    return str(curve)


def snapshot_from_pair(pair: Dict[str, Any], token_address: str) -> MarketSnapshot:
    """
    Build a MarketSnapshot for the watched token from an aggregator pair record.
    The pair's orientation is kept, since its prices describe the base leg.
    """
    base = pair.get("baseToken") or {}
    quote = pair.get("quoteToken") or {}
    base_address = str(base.get("address") or "")
    quote_address = str(quote.get("address") or "")

    token_is_base = same_address(base_address, token_address) or not same_address(quote_address, token_address)
    if token_is_base:
        symbol = base.get("symbol")
        counter_address = quote_address or None
    else:
        symbol = quote.get("symbol")
        counter_address = base_address or None

    fdv = pair.get("fdv")
    return MarketSnapshot(
        symbol=symbol or PLACEHOLDER_SYMBOL,
        price_usd=_to_float(pair.get("priceUsd")),
        price_native=_to_float(pair.get("priceNative")),
        fdv=_to_float(fdv) if fdv not in (None, "") else None,
        pair_address=pair.get("pairAddress"),
        dex_id=pair.get("dexId"),
        token_is_base=token_is_base,
        counter_address=counter_address
    )


class VenueResolver:
    """
    Market-data backed venue discovery
    Every lookup is best-effort: failures come back as None or an empty list, never as exceptions
    """

    def __init__(self, config: Dict[str, Any]):
        self.base_url = config.get("MARKET_DATA_URL", "https://api.dexscreener.com/latest/dex/tokens").rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=config.get("MARKET_DATA_TIMEOUT_SECONDS", 10))

    async def fetch_pairs(self, token_address: str) -> List[Dict[str, Any]]:
        """
        Fetch every trading pair the aggregator knows for a token

        Args:
            token_address: Token address on any supported chain

        Returns:
            List of pair records (empty on error)
        """
        url = f"{self.base_url}/{token_address}"

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        logger.warning(f"[RESOLVER] Market data returned {response.status} for {token_address}")
                        return []

                    data = await response.json()

                    if not data or not isinstance(data.get("pairs"), list):
                        return []

                    return data["pairs"]

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[RESOLVER] Error fetching pairs for {token_address}: {e}")
            return []

    async def find_eth_pair(self, token_address: str) -> Optional[Dict[str, Any]]:
        pairs = await self.fetch_pairs(token_address)
        return select_eth_pair(pairs)

    async def resolve_solana_venue(self, mint: str) -> Optional[Venue]:
        """
        Resolve the venue of a Solana mint.
        A listed pool is preferred; otherwise the bonding-curve account is derived.
        """
        pair = select_solana_pair(await self.fetch_pairs(mint))
        if pair:
            return Venue(
                token_address=mint,
                chain=CHAIN_SOLANA,
                venue_address=pair["pairAddress"],
                kind="pool",
                dex_id=pair.get("dexId", "unknown"),
                snapshot=snapshot_from_pair(pair, mint)
            )

        curve = derive_bonding_curve(mint)
        if curve is None:
            logger.warning(f"[RESOLVER] {mint} is not a valid mint, no bonding curve derivable")
            return None

        return Venue(
            token_address=mint,
            chain=CHAIN_SOLANA,
            venue_address=curve,
            kind="bonding_curve",
            dex_id="pumpfun"
        )

    async def get_market_snapshot(self, token_address: str, chain: str) -> Optional[MarketSnapshot]:
        """
        Fresh market data for a token, preferring the same venue family used for watching

        Returns:
            MarketSnapshot or None when the aggregator has nothing usable
        """
        pairs = await self.fetch_pairs(token_address)
        if not pairs:
            return None

        if chain == CHAIN_ETH:
            pair = select_eth_pair(pairs)
        else:
            pair = select_solana_pair(pairs)
        if pair is None:
            pair = pairs[0]

        return snapshot_from_pair(pair, token_address)
