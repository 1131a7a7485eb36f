"""Builders and fakes shared by the test modules."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select

from liraindex.config import IndexerSettings, load_settings
from liraindex.domain.models import ContractBinding, RawLogEvent
from liraindex.domain.value_types import Address, EventKind, TxHash, normalize_address

TOKEN = "0x" + "aa" * 20
REGISTRY = "0x" + "1e" * 20
FACTORY = "0x" + "fa" * 20
USER_FACTORY = "0x" + "fb" * 20
PROFILE = "0x" + "9f" * 20
SOCIAL = "0x" + "50" * 20

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
CAROL = "0x" + "cc" * 20
ZERO = "0x" + "00" * 20


def tx(n: int) -> str:
    return "0x" + f"{n:064x}"


def make_log(
    event: EventKind,
    address: str,
    block: int = 1,
    log_index: int = 0,
    tx_hash: str | None = None,
    timestamp: int | None = 1_700_000_000,
    **args: Any,
) -> RawLogEvent:
    return RawLogEvent(
        address=normalize_address(address),
        event=event,
        args=args,
        tx_hash=TxHash(tx_hash or tx(block * 1000 + log_index)),
        block_number=block,
        log_index=log_index,
        block_timestamp=timestamp,
    )


def make_settings(**env: str) -> IndexerSettings:
    base = {
        "INDEXER_NETWORK": "base-sepolia",
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "INDEXER_POLL_INTERVAL": "10",
        "INDEXER_BATCH_SIZE": "1000",
        "INDEXER_RETRY_ATTEMPTS": "3",
        "INDEXER_RETRY_DELAY": "0",
    }
    base.update(env)
    return load_settings(base)


async def rows(store, model, **filters) -> list:
    stmt = select(model)
    for k, v in filters.items():
        stmt = stmt.where(getattr(model, k) == v)
    async with store.sessions() as session:
        return list((await session.execute(stmt)).scalars())


async def apply(store, handler, *logs: RawLogEvent) -> None:
    for log in logs:
        async with store.unit_of_work() as uow:
            await handler(uow, log)


class FakeSubscription:
    def __init__(self, binding: ContractBinding, event: EventKind, callback) -> None:
        self.binding = binding
        self.event = event
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        self.active = False


class FakeChainClient:
    """In-memory chain: a head block, a log list, scripted transient failures."""

    def __init__(self, head: int = 0, logs: list[RawLogEvent] | None = None) -> None:
        self.head = head
        self.logs: list[RawLogEvent] = list(logs or [])
        self.calls: list[tuple[str, EventKind, int, int]] = []
        self.failures: dict[EventKind, int] = {}
        self.subscriptions: list[FakeSubscription] = []
        self.closed = False

    async def latest_block(self) -> int:
        return self.head

    async def get_logs(self, binding: ContractBinding, event: EventKind, from_block: int, to_block: int):
        self.calls.append((binding.name.value, event, from_block, to_block))
        if self.failures.get(event, 0) > 0:
            self.failures[event] -= 1
            raise ConnectionError(f"transient failure querying {event.value}")
        return sorted(
            (lg for lg in self.logs
             if lg.address == binding.address and lg.event == event and from_block <= lg.block_number <= to_block),
            key=RawLogEvent.order_key,
        )

    def subscribe(self, binding: ContractBinding, event: EventKind, callback) -> FakeSubscription:
        sub = FakeSubscription(binding, event, callback)
        self.subscriptions.append(sub)
        return sub

    def emit(self, log: RawLogEvent) -> None:
        for sub in self.subscriptions:
            if sub.active and sub.binding.address == Address(log.address) and sub.event == log.event:
                sub.callback(log)

    async def close(self) -> None:
        self.closed = True
