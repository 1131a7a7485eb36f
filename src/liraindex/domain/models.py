from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping
from .value_types import Address, ContractKind, EventKind, TxHash

@dataclass(slots=True, frozen=True)
class BlockRange:
    start: int
    end: int

@dataclass(slots=True, frozen=True)
class RawLogEvent:
    address: Address                   # emitting contract
    event: EventKind
    args: Mapping[str, Any]
    tx_hash: TxHash
    block_number: int
    log_index: int
    block_timestamp: int | None = None  # unix seconds

    def order_key(self) -> tuple[int, int]:
        return (self.block_number, self.log_index)

@dataclass(slots=True, frozen=True)
class ContractBinding:
    """A configured contract resolved to an address and the events it is tracked for."""
    name: ContractKind
    address: Address
    events: tuple[EventKind, ...] = field(default_factory=tuple)

@dataclass(slots=True, frozen=True)
class Checkpoint:
    contract_name: str
    contract_address: str | None
    last_block: int
