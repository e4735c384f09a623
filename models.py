# Filename: models.py

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

CHAIN_ETH = "eth"
CHAIN_SOLANA = "solana"
SUPPORTED_CHAINS = (CHAIN_ETH, CHAIN_SOLANA)

PLACEHOLDER_SYMBOL = "TOKEN"
UNKNOWN_MARKET_CAP = "Unknown"


@dataclass(frozen=True)
class WatchTarget:
    """A (chain, normalized address) pair the watchers are asked to monitor."""
    chain: str
    address: str


@dataclass
class MarketSnapshot:
    """
    Point-in-time market data for a token's trading venue.
    Prices come straight from the aggregator and describe the pair's base leg, which is not
    necessarily the watched token.
    """
    symbol: str
    price_usd: float = 0.0                      # USD price of the base leg
    price_native: float = 0.0                   # Base leg priced in quote units
    fdv: Optional[float] = None
    pair_address: Optional[str] = None
    dex_id: Optional[str] = None
    token_is_base: bool = True
    counter_address: Optional[str] = None       # The pair leg that is not the watched token

    @property
    def token_price_usd(self) -> float:
        if self.token_is_base:
            return self.price_usd
        if self.price_native <= 0:
            return 0.0
        return self.price_usd / self.price_native


@dataclass
class Venue:
    """Liquidity venue (pair, pool or bonding curve) discovered for a token."""
    token_address: str
    chain: str
    venue_address: str
    kind: str                                   # 'pair', 'pool' or 'bonding_curve'
    dex_id: str = "unknown"
    token0: Optional[str] = None                # EVM pair legs, read from the pair contract
    token1: Optional[str] = None
    snapshot: Optional[MarketSnapshot] = None   # Market data seen at discovery time


@dataclass
class VenueBinding:
    target: WatchTarget
    venue: Venue
    handle: Any                                 # Connector subscription handle
    subscribed_at: float


@dataclass
class SwapLog:
    """Decoded Uniswap V2 style Swap event."""
    amount0_in: int
    amount1_in: int
    amount0_out: int
    amount1_out: int
    sender: str
    to: str
    tx_hash: str
    block_number: int
    log_index: int = 0


@dataclass
class AccountChange:
    """'Something changed' tick for a watched Solana account. Carries no trade data."""
    account: str
    slot: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BuyEvent:
    """
    Canonical output of buy classification.
    Both legs are strictly positive and the native leg is above the chain's dust floor.
    """
    token_address: str
    chain: str
    symbol: str
    buyer: str
    native_amount: float
    token_amount: float
    usd_value: float
    tx_id: str
    timestamp: float
    is_new_holder: bool
    market_cap_usd: Optional[float] = None
    dex: str = "unknown"
    venue_address: str = ""

    @property
    def market_cap_label(self) -> str:
        if self.market_cap_usd is None:
            return UNKNOWN_MARKET_CAP
        return f"${round(self.market_cap_usd):,}"

    @property
    def native_label(self) -> str:
        if self.chain == CHAIN_ETH:
            return f"{self.native_amount:.4f} ETH"
        return f"{self.native_amount:.3f} SOL"


@dataclass
class TradeSample:
    token_address: str
    chain: str
    usd_amount: float
    timestamp: float
    symbol: str


@dataclass
class TrendingToken:
    token_address: str
    chain: str
    symbol: str
    score: float
    last_update: float


@dataclass
class SecurityResult:
    is_safe: bool
    risks: List[str]
    score: str                                  # 'SAFE', 'CAUTION' or 'DANGER'
    summary: str
