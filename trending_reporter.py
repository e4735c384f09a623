# Filename: trending_reporter.py

import asyncio
import logging
import time
from typing import Callable, List, Optional

from models import CHAIN_SOLANA, TrendingToken
from security_scanner import SecurityScanner, badge

logger = logging.getLogger("TrendingReporter")


def time_ago(last_update: float, now: float) -> str:
    seconds = int(now - last_update)
    minutes = seconds // 60
    if minutes > 0:
        return "1 minute ago" if minutes == 1 else f"{minutes} minutes ago"
    if seconds > 10:
        return f"{seconds} seconds ago"
    return "Just now"


class TrendingReporter:
    """Periodically reads the leaderboard, adds security badges and hands the report to a sink."""

    def __init__(self, trending, scanner: Optional[SecurityScanner] = None, interval: float = 300,
                 size: int = 5, sink: Optional[Callable[[str], None]] = None):
        self.trending = trending
        self.scanner = scanner
        self.interval = interval
        self.size = size
        self.sink = sink

    async def build_report(self) -> str:
        board: List[TrendingToken] = self.trending.leaderboard(self.size)
        if not board:
            return ""

        now = time.time()
        lines = ["GLOBAL TRENDING"]
        for rank, token in enumerate(board, start=1):
            network = "SOL" if token.chain == CHAIN_SOLANA else "ETH"
            title = f"#{rank} {token.symbol} ({network})"
            risks = []
            if self.scanner is not None:
                result = await asyncio.to_thread(self.scanner.scan, token.token_address, token.chain)
                if badge(result):
                    title += f" [{badge(result)}]"
                risks = result.risks
            lines.append(title)
            lines.append(f"   Momentum: ${token.score:,.2f}/min | {time_ago(token.last_update, now)}")
            lines.append(f"   CA: {token.token_address}")
            if risks:
                lines.append(f"   Risks: {', '.join(risks)}")
        return "\n".join(lines)

    async def send_report(self):
        try:
            report = await self.build_report()
            if not report:
                return
            if self.sink:
                self.sink(report)
            else:
                logger.info("[TRENDING REPORT]\n" + report)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[Reporter Error] Failed to build trending report: {e}")

    async def run_loop(self):
        while True:
            await asyncio.sleep(self.interval)
            await self.send_report()
