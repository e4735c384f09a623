import time

import pytest

from models import (
    BuyEvent, CHAIN_ETH, CHAIN_SOLANA, MarketSnapshot, Venue, VenueBinding, WatchTarget
)
from venue_resolver import WETH_ADDRESS

TOKEN = "0x1111111111111111111111111111111111111111"
PAIR = "0x2222222222222222222222222222222222222222"
BUYER = "0x3333333333333333333333333333333333333333"
MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
POOL = "58oQChx4yWmvKdwLLZzBi4ChoCc2fqCUWBkwMihLYQo2"
SOL_BUYER = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"


class FakeResolver:
    def __init__(self, snapshot=None, fail=False):
        self.snapshot = snapshot
        self.fail = fail
        self.calls = 0

    async def get_market_snapshot(self, token_address, chain):
        self.calls += 1
        if self.fail:
            raise RuntimeError("market data down")
        return self.snapshot


class FakeEthConnector:
    def __init__(self, decimals=18, balances=None, fail_decimals=False, fail_balance=False):
        self.decimals = decimals
        self.balances = balances or {}
        self.fail_decimals = fail_decimals
        self.fail_balance = fail_balance
        self.decimals_calls = 0
        self.balance_calls = []

    async def get_decimals(self, token_address):
        self.decimals_calls += 1
        if self.fail_decimals:
            raise RuntimeError("call reverted")
        return self.decimals

    async def get_token_balance(self, token_address, owner, block_identifier="latest"):
        self.balance_calls.append((token_address, owner, block_identifier))
        if self.fail_balance:
            raise RuntimeError("archive node required")
        return self.balances.get(owner, 0)


class FakeSolConnector:
    def __init__(self, signatures=None, transactions=None):
        self.signatures = signatures or []
        self.transactions = transactions or {}
        self.fetched = []

    async def get_recent_signatures(self, address, limit=10):
        return self.signatures[:limit]

    async def get_parsed_transaction(self, signature):
        self.fetched.append(signature)
        return self.transactions.get(signature)


@pytest.fixture
def snapshot():
    return MarketSnapshot(symbol="PEPE", price_usd=0.002, price_native=0.000001, fdv=1_500_000.0,
                          counter_address=WETH_ADDRESS)


@pytest.fixture
def eth_binding(snapshot):
    venue = Venue(
        token_address=TOKEN,
        chain=CHAIN_ETH,
        venue_address=PAIR,
        kind="pair",
        dex_id="uniswap",
        token0=WETH_ADDRESS,
        token1=TOKEN,
        snapshot=snapshot
    )
    return VenueBinding(target=WatchTarget(CHAIN_ETH, TOKEN), venue=venue, handle=None, subscribed_at=time.time())


@pytest.fixture
def sol_binding():
    venue = Venue(token_address=MINT, chain=CHAIN_SOLANA, venue_address=POOL, kind="pool", dex_id="raydium")
    return VenueBinding(target=WatchTarget(CHAIN_SOLANA, MINT), venue=venue, handle=None,
                        subscribed_at=time.time() - 5)


def make_sol_tx(buyer=SOL_BUYER, pre_lamports=2_000_000_000, post_lamports=1_000_000_000,
                pre_token=None, post_token=5_000_000_000, mint=MINT, decimals=6, block_time=None,
                err=None, owner=None):
    """Build a jsonParsed getTransaction result. Token amounts are raw integers; None means no account."""
    owner = owner or buyer

    def balance(raw):
        if raw is None:
            return []
        return [{
            "accountIndex": 3,
            "mint": mint,
            "owner": owner,
            "uiTokenAmount": {"amount": str(raw), "decimals": decimals, "uiAmount": raw / 10 ** decimals}
        }]

    return {
        "blockTime": block_time or int(time.time()),
        "transaction": {
            "message": {
                "accountKeys": [
                    {"pubkey": buyer, "signer": True, "writable": True},
                    {"pubkey": POOL, "signer": False, "writable": True}
                ]
            }
        },
        "meta": {
            "err": err,
            "preBalances": [pre_lamports, 0],
            "postBalances": [post_lamports, 0],
            "preTokenBalances": balance(pre_token),
            "postTokenBalances": balance(post_token)
        }
    }


def make_event(token=TOKEN, chain=CHAIN_ETH, usd=100.0, timestamp=None, symbol="PEPE", tx_id="0xabc"):
    return BuyEvent(
        token_address=token,
        chain=chain,
        symbol=symbol,
        buyer=BUYER,
        native_amount=0.05,
        token_amount=1000.0,
        usd_value=usd,
        tx_id=tx_id,
        timestamp=timestamp if timestamp is not None else time.time(),
        is_new_holder=False
    )
