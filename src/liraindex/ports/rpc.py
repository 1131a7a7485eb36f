# liraindex/ports/rpc.py
from __future__ import annotations

from typing import Callable, Protocol
from ..domain.models import ContractBinding, RawLogEvent
from ..domain.value_types import EventKind

LogCallback = Callable[[RawLogEvent], None]


class Subscription(Protocol):
    def cancel(self) -> None:
        """Stop delivering logs to the callback."""


class ChainClient(Protocol):
    """Port defining the contract for an EVM JSON-RPC logs client."""

    async def latest_block(self) -> int:
        """Return the latest block number as an integer."""

    async def get_logs(
        self,
        binding: ContractBinding,
        event: EventKind,
        from_block: int,
        to_block: int,
    ) -> list[RawLogEvent]:
        """Return decoded logs for [from_block, to_block] inclusive, in chain order."""

    def subscribe(self, binding: ContractBinding, event: EventKind, callback: LogCallback) -> Subscription:
        """Push every new matching log to `callback` until cancelled."""

    async def close(self) -> None:
        """Cancel subscriptions and release the transport."""
