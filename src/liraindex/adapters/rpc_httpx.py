from __future__ import annotations
import asyncio, itertools, logging, httpx
from dataclasses import replace
from typing import Any

from ..domain.decoding import decode_log
from ..domain.errors import DecodeError, RpcError
from ..domain.events import EVENT_SPECS
from ..domain.models import ContractBinding, RawLogEvent
from ..domain.value_types import EventKind
from ..ports.rpc import ChainClient, LogCallback

logger = logging.getLogger(__name__)

def _to_hex_block(n: int) -> str: return hex(int(n))

def _filter_param(binding: ContractBinding, event: EventKind) -> dict[str, Any]:
    return {"address": str(binding.address), "topics": [[EVENT_SPECS[event].topic0]]}


class FilterSubscription:
    """Polls an `eth_newFilter` filter and pushes decoded logs to a callback."""

    def __init__(self, rpc: "HttpxChainClient", binding: ContractBinding, event: EventKind,
                 callback: LogCallback, interval_s: float) -> None:
        self.rpc = rpc
        self.binding = binding
        self.event = event
        self.callback = callback
        self.interval_s = interval_s
        self.filter_id: str | None = None
        self._task = asyncio.create_task(self._run(), name=f"sub:{binding.name.value}.{event.value}")

    async def _install(self) -> None:
        self.filter_id = await self.rpc.call("eth_newFilter", [_filter_param(self.binding, self.event)])

    async def _run(self) -> None:
        spec = EVENT_SPECS[self.event]
        while True:
            try:
                if self.filter_id is None:
                    await self._install()
                changes = await self.rpc.call("eth_getFilterChanges", [self.filter_id])
                for rl in changes or []:
                    if rl.get("removed"):
                        continue
                    try:
                        self.callback(decode_log(spec, rl))
                    except DecodeError as e:
                        logger.warning("Undecodable %s.%s log: %s", self.binding.name.value, self.event.value, e)
            except asyncio.CancelledError:
                raise
            except RpcError as e:
                # nodes drop idle filters; reinstall on the next round
                logger.warning("Filter %s.%s lost (%s), reinstalling",
                               self.binding.name.value, self.event.value, e)
                self.filter_id = None
            except httpx.HTTPError as e:
                logger.warning("Subscription poll failed for %s.%s: %s",
                               self.binding.name.value, self.event.value, e)
            except Exception:
                logger.exception("Subscription poll failed for %s.%s", self.binding.name.value, self.event.value)
            await asyncio.sleep(self.interval_s)

    def cancel(self) -> None:
        self._task.cancel()

    async def aclose(self) -> None:
        self.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        if self.filter_id is not None:
            try:
                await self.rpc.call("eth_uninstallFilter", [self.filter_id])
            except (RpcError, httpx.HTTPError) as e:
                logger.debug("eth_uninstallFilter failed: %s", e)


class HttpxChainClient(ChainClient):
    def __init__(self, rpc_url: str, timeout_s: int = 20, max_conn: int = 64,
                 subscription_interval_s: float = 2.0, client: httpx.AsyncClient | None = None) -> None:
        self.rpc_url = rpc_url
        self.subscription_interval_s = subscription_interval_s
        self.client = client or httpx.AsyncClient(
            http2=True,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max_conn//2),
        )
        self._ids = itertools.count(1)
        self._subs: list[FilterSubscription] = []
        self._timestamps: dict[int, int] = {}
        self._sem = asyncio.Semaphore(8)

    async def call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        # retry on 429 with simple backoff
        for attempt in range(3):
            r = await self.client.post(self.rpc_url, json=payload)
            if r.status_code == 429:
                ra = r.headers.get("Retry-After")
                delay = max(1.0, float(ra)) if ra and ra.isdigit() else (1.0 * (2**attempt))
                await asyncio.sleep(delay); continue
            r.raise_for_status()
            data = r.json()
            if "error" in data:
                err = data["error"]
                if isinstance(err, dict):
                    raise RpcError(f"{method} RPC error code={err.get('code')} message={err.get('message')}",
                                   code=err.get("code"))
                raise RpcError(f"{method} RPC error: {err}")
            if "result" not in data:
                raise RpcError(f"{method}: malformed response")
            return data["result"]
        raise RpcError(f"Rate limited: retries exhausted for {method}", code=429)

    async def latest_block(self) -> int:
        return int(await self.call("eth_blockNumber", []), 16)

    async def _block_timestamp(self, block_number: int) -> int | None:
        if block_number in self._timestamps:
            return self._timestamps[block_number]
        async with self._sem:
            block = await self.call("eth_getBlockByNumber", [_to_hex_block(block_number), False])
        if not block:
            return None
        ts = int(block["timestamp"], 16)
        if len(self._timestamps) > 4096:
            self._timestamps.clear()
        self._timestamps[block_number] = ts
        return ts

    async def get_logs(self, binding: ContractBinding, event: EventKind,
                       from_block: int, to_block: int) -> list[RawLogEvent]:
        spec = EVENT_SPECS[event]
        params = _filter_param(binding, event) | {
            "fromBlock": _to_hex_block(from_block),
            "toBlock": _to_hex_block(to_block),
        }
        res = await self.call("eth_getLogs", [params])
        typed: list[RawLogEvent] = []
        for rl in res or []:
            if rl.get("removed"):
                continue
            try:
                typed.append(decode_log(spec, rl))
            except DecodeError as e:
                logger.warning("Skipping undecodable %s.%s log: %s", binding.name.value, event.value, e)

        missing = sorted({ev.block_number for ev in typed if ev.block_timestamp is None})
        if missing:
            stamps = dict(zip(missing, await asyncio.gather(*(self._block_timestamp(b) for b in missing))))
            typed = [ev if ev.block_timestamp is not None else replace(ev, block_timestamp=stamps.get(ev.block_number))
                     for ev in typed]
        typed.sort(key=RawLogEvent.order_key)
        return typed

    def subscribe(self, binding: ContractBinding, event: EventKind, callback: LogCallback) -> FilterSubscription:
        sub = FilterSubscription(self, binding, event, callback, self.subscription_interval_s)
        self._subs.append(sub)
        return sub

    async def close(self) -> None:
        subs, self._subs = self._subs, []
        await asyncio.gather(*(s.aclose() for s in subs))
        await self.client.aclose()
