# Filename: sol_connector.py

import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import websockets
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solders.pubkey import Pubkey
from solders.signature import Signature

from models import AccountChange

logger = logging.getLogger("SolConnector")

RECONNECT_DELAY_SECONDS = 5
SUBSCRIBE_TIMEOUT_SECONDS = 10
SUBSCRIBE_REQUEST_ID = 1


class SubscriptionError(Exception):
    """The node rejected an account subscription or never acknowledged it."""


class AccountSubscription:
    """Handle for one account-change stream. Backed by a websocket reader task."""

    def __init__(self, account: str):
        self.account = account
        self.subscription_id: Optional[int] = None
        self.task: Optional[asyncio.Task] = None
        self.acknowledged: Optional[asyncio.Future] = None

    @property
    def active(self) -> bool:
        return self.task is not None and not self.task.done()

    def settle(self, subscription_id: Optional[int] = None, error: Optional[Exception] = None):
        if self.acknowledged is None or self.acknowledged.done():
            return
        if error is not None:
            self.acknowledged.set_exception(error)
        else:
            self.acknowledged.set_result(subscription_id)


class SolanaConnector:
    """
    Solana RPC access: HTTP queries through AsyncClient, account subscriptions over websocket.
    Query results are returned as plain JSON-RPC dicts.
    """

    def __init__(self, rpc_url: str, ws_url: str, commitment: str = "confirmed", client: Optional[AsyncClient] = None,
                 subscribe_timeout: float = SUBSCRIBE_TIMEOUT_SECONDS):
        if not rpc_url or not ws_url:
            raise ValueError("SOL_RPC_URL and SOL_WS_URL must be provided")
        self.ws_url = ws_url
        self.commitment = Commitment(commitment)
        self.client = client or AsyncClient(rpc_url, commitment=self.commitment)
        self.subscribe_timeout = subscribe_timeout

    async def close(self):
        await self.client.close()

    async def get_recent_signatures(self, address: str, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Most recent signatures touching an account, newest first

        Returns:
            List of {"signature", "slot", "err", "blockTime"} dicts
        """
        resp = await self.client.get_signatures_for_address(
            Pubkey.from_string(address), limit=limit, commitment=self.commitment
        )
        return json.loads(resp.to_json()).get("result") or []

    async def get_parsed_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        resp = await self.client.get_transaction(
            Signature.from_string(signature),
            encoding="jsonParsed",
            commitment=self.commitment,
            max_supported_transaction_version=0
        )
        return json.loads(resp.to_json()).get("result")

    async def account_exists(self, address: str) -> bool:
        resp = await self.client.get_account_info(Pubkey.from_string(address), commitment=self.commitment)
        return resp.value is not None

    async def subscribe_account(self, account: str, callback: Callable[[AccountChange], None]) -> AccountSubscription:
        """
        Open an accountSubscribe stream for an account and wait for the node to acknowledge it.

        Args:
            account: Account to watch (pool or bonding curve)
            callback: Called with an AccountChange on every notification

        Returns:
            AccountSubscription handle, to be passed to unsubscribe()

        Raises:
            SubscriptionError: the node rejected the subscription or did not answer in time
        """
        Pubkey.from_string(account)
        handle = AccountSubscription(account)
        handle.acknowledged = asyncio.get_running_loop().create_future()
        handle.task = asyncio.create_task(self._listen(handle, callback))

        try:
            await asyncio.wait_for(handle.acknowledged, self.subscribe_timeout)
        except asyncio.TimeoutError:
            await self.unsubscribe(handle)
            raise SubscriptionError(f"accountSubscribe for {account} was not acknowledged")
        except SubscriptionError:
            await self.unsubscribe(handle)
            raise
        return handle

    async def unsubscribe(self, handle: AccountSubscription):
        if handle.task is None:
            return
        handle.task.cancel()
        try:
            await handle.task
        except asyncio.CancelledError:
            pass
        logger.info(f"[SOL] Closed account stream for {handle.account}")

    async def _listen(self, handle: AccountSubscription, callback: Callable[[AccountChange], None]):
        request = {
            "jsonrpc": "2.0",
            "id": SUBSCRIBE_REQUEST_ID,
            "method": "accountSubscribe",
            "params": [handle.account, {"encoding": "base64", "commitment": str(self.commitment)}]
        }
        while True:
            try:
                async with websockets.connect(self.ws_url) as ws:
                    await ws.send(json.dumps(request))
                    async for raw_msg in ws:
                        try:
                            msg = json.loads(raw_msg)
                        except ValueError as e:
                            logger.warning(f"[SOL] Failed to parse websocket message: {e}")
                            continue

                        if msg.get("id") == SUBSCRIBE_REQUEST_ID:
                            if "error" in msg:
                                # A rejected subscription ends the stream; the watcher re-adds it later
                                logger.error(f"[SOL] accountSubscribe rejected for {handle.account}: {msg['error']}")
                                handle.settle(error=SubscriptionError(str(msg["error"])))
                                return
                            handle.subscription_id = msg.get("result")
                            handle.settle(handle.subscription_id)
                            logger.info(f"[SOL] Subscribed to account {handle.account} (id {handle.subscription_id})")
                            continue

                        if msg.get("method") != "accountNotification":
                            continue
                        result = msg.get("params", {}).get("result", {})
                        callback(AccountChange(
                            account=handle.account,
                            slot=(result.get("context") or {}).get("slot"),
                            raw=result
                        ))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[SOL] WebSocket error for {handle.account}: {e}")
            await asyncio.sleep(RECONNECT_DELAY_SECONDS)
