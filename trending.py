"""
Trending engine
Ranks watched tokens by buy momentum. Two scoring models are available:
a sliding-window USD velocity and a decaying point score.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Callable, Dict, List, Optional, Tuple

from models import BuyEvent, TradeSample, TrendingToken

logger = logging.getLogger("trending")

TokenKey = Tuple[str, str]


class SlidingWindowTrending:
    """
    Momentum = USD bought in the last velocity window / minutes since the window's first trade.
    Trades are retained for the retention window and purged on every write.
    """

    def __init__(self, velocity_window: float = 3600, retention: float = 86400,
                 clock: Callable[[], float] = time.time):
        self.velocity_window = velocity_window
        self.retention = retention
        self.clock = clock
        self.trades = deque()

    def record(self, event: BuyEvent):
        self.trades.append(TradeSample(
            token_address=event.token_address,
            chain=event.chain,
            usd_amount=event.usd_value,
            timestamp=event.timestamp,
            symbol=event.symbol
        ))
        self.purge()
        score = self.velocity_score(event.token_address, event.chain)
        logger.debug(f"[TRENDING] {event.symbol} ({event.token_address}) momentum ${score:,.2f}/min")

    def purge(self):
        cutoff = self.clock() - self.retention
        if self.trades and min(t.timestamp for t in self.trades) > cutoff:
            return
        self.trades = deque(t for t in self.trades if t.timestamp > cutoff)

    def _recent(self, now: float) -> Dict[TokenKey, List[TradeSample]]:
        cutoff = now - self.velocity_window
        grouped: Dict[TokenKey, List[TradeSample]] = {}
        for trade in self.trades:
            if trade.timestamp > cutoff:
                grouped.setdefault((trade.chain, trade.token_address), []).append(trade)
        return grouped

    @staticmethod
    def _score(trades: List[TradeSample], now: float) -> float:
        total = sum(t.usd_amount for t in trades)
        first = min(t.timestamp for t in trades)
        minutes = max((now - first) / 60, 1)
        return total / minutes

    def velocity_score(self, token_address: str, chain: str) -> float:
        now = self.clock()
        trades = self._recent(now).get((chain, token_address))
        if not trades:
            return 0.0
        return self._score(trades, now)

    def leaderboard(self, limit: int = 10) -> List[TrendingToken]:
        if limit <= 0:
            return []
        now = self.clock()
        board = []
        for (chain, address), trades in self._recent(now).items():
            board.append(TrendingToken(
                token_address=address,
                chain=chain,
                symbol=trades[-1].symbol,
                score=self._score(trades, now),
                last_update=max(t.timestamp for t in trades)
            ))
        board.sort(key=lambda t: t.score, reverse=True)
        return board[:limit]

    def to_dict(self) -> Dict[str, Any]:
        return {"model": "sliding", "trades": [vars(t) for t in self.trades]}

    def load_dict(self, data: Dict[str, Any]):
        if not data or data.get("model") != "sliding":
            return
        self.trades = deque(TradeSample(**t) for t in data.get("trades", []))
        self.purge()
        logger.info(f"[TRENDING] Restored {len(self.trades)} trades")

    async def start(self):
        return None

    async def stop(self):
        return None


class DecayingTrending:
    """
    Each buy adds fixed points (more above the whale threshold).
    A timer multiplies every score by the decay factor and drops scores under the prune floor.
    """

    def __init__(self, whale_usd: float = 1000.0, whale_points: float = 5.0, base_points: float = 1.0,
                 decay_factor: float = 0.9, decay_interval: float = 1800, prune_floor: float = 0.1,
                 clock: Callable[[], float] = time.time):
        self.whale_usd = whale_usd
        self.whale_points = whale_points
        self.base_points = base_points
        self.decay_factor = decay_factor
        self.decay_interval = decay_interval
        self.prune_floor = prune_floor
        self.clock = clock
        self.tokens: Dict[TokenKey, TrendingToken] = {}
        self._task: Optional[asyncio.Task] = None

    def record(self, event: BuyEvent):
        key = (event.chain, event.token_address)
        points = self.whale_points if event.usd_value >= self.whale_usd else self.base_points
        token = self.tokens.get(key)
        if token is None:
            token = TrendingToken(event.token_address, event.chain, event.symbol, 0.0, self.clock())
            self.tokens[key] = token
        token.score += points
        token.symbol = event.symbol
        token.last_update = self.clock()

    def apply_decay(self):
        for key, token in list(self.tokens.items()):
            token.score *= self.decay_factor
            if token.score < self.prune_floor:
                del self.tokens[key]
        logger.debug(f"[TRENDING] Decay applied, {len(self.tokens)} tokens left")

    def leaderboard(self, limit: int = 10) -> List[TrendingToken]:
        if limit <= 0:
            return []
        board = sorted(self.tokens.values(), key=lambda t: t.score, reverse=True)
        return board[:limit]

    def to_dict(self) -> Dict[str, Any]:
        return {"model": "decay", "tokens": [vars(t) for t in self.tokens.values()]}

    def load_dict(self, data: Dict[str, Any]):
        if not data or data.get("model") != "decay":
            return
        for item in data.get("tokens", []):
            token = TrendingToken(**item)
            self.tokens[(token.chain, token.token_address)] = token
        logger.info(f"[TRENDING] Restored {len(self.tokens)} scores")

    async def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._decay_loop())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _decay_loop(self):
        while True:
            await asyncio.sleep(self.decay_interval)
            self.apply_decay()


def build_trending_engine(config: Dict[str, Any]):
    model = config.get("TRENDING_MODEL", "sliding")
    if model == "decay":
        return DecayingTrending(
            whale_usd=config.get("TRENDING_WHALE_USD", 1000.0),
            whale_points=config.get("TRENDING_WHALE_POINTS", 5.0),
            base_points=config.get("TRENDING_BASE_POINTS", 1.0),
            decay_factor=config.get("TRENDING_DECAY_FACTOR", 0.9),
            decay_interval=config.get("TRENDING_DECAY_INTERVAL_SECONDS", 1800),
            prune_floor=config.get("TRENDING_PRUNE_FLOOR", 0.1)
        )
    if model != "sliding":
        logger.warning(f"[TRENDING] Unknown model '{model}', using sliding window")
    return SlidingWindowTrending(
        velocity_window=config.get("TRENDING_VELOCITY_WINDOW_SECONDS", 3600),
        retention=config.get("TRENDING_RETENTION_SECONDS", 86400)
    )
