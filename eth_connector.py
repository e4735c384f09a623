# Filename: eth_connector.py

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from web3 import AsyncWeb3, Web3

from models import SwapLog

logger = logging.getLogger("EthConnector")

UNISWAP_V2_PAIR_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "sender", "type": "address"},
            {"indexed": False, "name": "amount0In", "type": "uint256"},
            {"indexed": False, "name": "amount1In", "type": "uint256"},
            {"indexed": False, "name": "amount0Out", "type": "uint256"},
            {"indexed": False, "name": "amount1Out", "type": "uint256"},
            {"indexed": True, "name": "to", "type": "address"}
        ],
        "name": "Swap",
        "type": "event"
    },
    {"inputs": [], "name": "token0", "outputs": [{"name": "", "type": "address"}],
     "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "token1", "outputs": [{"name": "", "type": "address"}],
     "stateMutability": "view", "type": "function"}
]

ERC20_ABI = [
    {"inputs": [], "name": "decimals", "outputs": [{"name": "", "type": "uint8"}],
     "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "owner", "type": "address"}], "name": "balanceOf",
     "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"}
]

SWAP_TOPIC = Web3.to_hex(Web3.keccak(text="Swap(address,uint256,uint256,uint256,uint256,address)"))


class LogSubscription:
    """Handle for one pair's Swap log stream. Backed by a polling task."""

    def __init__(self, pair_address: str):
        self.pair_address = pair_address
        self.task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self.task is not None and not self.task.done()


class EthConnector:
    """
    Thin wrapper around an Ethereum JSON-RPC endpoint.
    Swap subscriptions poll eth_getLogs per pair and hand decoded logs to a single callback.
    """

    def __init__(self, rpc_url: str, poll_interval: float = 4, w3: Optional[AsyncWeb3] = None):
        if not rpc_url and w3 is None:
            raise ValueError("ETH_RPC_URL must be provided")
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self.poll_interval = poll_interval

    def _pair_contract(self, pair_address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(pair_address), abi=UNISWAP_V2_PAIR_ABI)

    def _token_contract(self, token_address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)

    async def get_pair_tokens(self, pair_address: str) -> Tuple[str, str]:
        contract = self._pair_contract(pair_address)
        token0 = await contract.functions.token0().call()
        token1 = await contract.functions.token1().call()
        return token0.lower(), token1.lower()

    async def get_decimals(self, token_address: str) -> int:
        return int(await self._token_contract(token_address).functions.decimals().call())

    async def get_token_balance(self, token_address: str, owner: str, block_identifier: Any = "latest") -> int:
        contract = self._token_contract(token_address)
        balance = await contract.functions.balanceOf(Web3.to_checksum_address(owner)).call(
            block_identifier=block_identifier
        )
        return int(balance)

    async def subscribe_swaps(self, pair_address: str, callback: Callable[[SwapLog], None]) -> LogSubscription:
        """
        Start streaming Swap events of a pair, beginning at the current block.

        Args:
            pair_address: Pair contract address
            callback: Called once per decoded log

        Returns:
            LogSubscription handle, to be passed to unsubscribe()
        """
        start_block = await self.w3.eth.block_number
        handle = LogSubscription(pair_address)
        handle.task = asyncio.create_task(self._poll_loop(handle, start_block + 1, callback))
        logger.info(f"[ETH] Polling Swap logs for pair {pair_address} from block {start_block + 1}")
        return handle

    async def unsubscribe(self, handle: LogSubscription):
        if handle.task is None:
            return
        handle.task.cancel()
        try:
            await handle.task
        except asyncio.CancelledError:
            pass
        logger.info(f"[ETH] Stopped polling pair {handle.pair_address}")

    async def _poll_loop(self, handle: LogSubscription, from_block: int, callback: Callable[[SwapLog], None]):
        contract = self._pair_contract(handle.pair_address)
        while True:
            try:
                current_block = await self.w3.eth.block_number
                if current_block >= from_block:
                    logs = await self.w3.eth.get_logs({
                        "address": Web3.to_checksum_address(handle.pair_address),
                        "topics": [SWAP_TOPIC],
                        "fromBlock": from_block,
                        "toBlock": current_block
                    })
                    for raw_log in logs:
                        swap = self._decode_swap(contract, raw_log)
                        if swap is not None:
                            callback(swap)
                    from_block = current_block + 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[ETH] Log poll failed for {handle.pair_address}: {e}")
            await asyncio.sleep(self.poll_interval)

    @staticmethod
    def _decode_swap(contract, raw_log: Dict[str, Any]) -> Optional[SwapLog]:
        try:
            event = contract.events.Swap().process_log(raw_log)
        except Exception as e:
            logger.debug(f"[ETH] Skipping undecodable log: {e}")
            return None
        args = event["args"]
        return SwapLog(
            amount0_in=int(args["amount0In"]),
            amount1_in=int(args["amount1In"]),
            amount0_out=int(args["amount0Out"]),
            amount1_out=int(args["amount1Out"]),
            sender=str(args["sender"]),
            to=str(args["to"]),
            tx_hash=Web3.to_hex(event["transactionHash"]),
            block_number=int(event["blockNumber"]),
            log_index=int(event["logIndex"])
        )
