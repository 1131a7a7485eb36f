# liraindex/ports/storage.py
from __future__ import annotations

from typing import Any, AsyncContextManager, Mapping, Protocol
from ..domain.models import Checkpoint, ContractBinding
from ..domain.value_types import EdgeType, RoleKind


class UnitOfWork(Protocol):
    """Transactional write primitives over the projected entities.

    Everything done through one unit of work commits or rolls back together.
    Addresses passed in are expected to be lower-cased already.
    """

    async def record_token_event(
        self,
        *,
        token_address: str,
        emitter_address: str,
        event_type: str,
        tx_hash: str,
        block_number: int,
        log_index: int,
        block_timestamp: int | None = None,
        from_address: str | None = None,
        to_address: str | None = None,
        amount: int | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> bool:
        """Append an audit row; False (and no write) if (tx_hash, log_index) is already stored."""

    async def token_event_exists(self, tx_hash: str, log_index: int) -> bool: ...

    async def upsert_token(self, address: str, *, create: Mapping[str, Any], update: Mapping[str, Any]) -> bool:
        """Create the token from `create` or apply `update`; True when created."""

    async def ensure_token_stat(self, token_address: str, *, holder_count: int = 0) -> bool: ...

    async def bump_token_stat(
        self, token_address: str, *, transactions: int = 0, holders: int = 0, volume: int = 0,
    ) -> None: ...

    async def ensure_user(self, wallet_address: str) -> int:
        """Return the user id, creating the row on first sighting."""

    async def find_user(self, wallet_address: str) -> int | None: ...

    async def set_user_handle(self, user_id: int, handle: str | None) -> None: ...

    async def upsert_profile(self, user_id: int, *, create: Mapping[str, Any], update: Mapping[str, Any]) -> bool: ...

    async def upsert_role(
        self, user_id: int, token_address: str, role: RoleKind, *, balance: int | None = None,
    ) -> bool:
        """Ensure the (user, token, role) triple; True when created. `balance` is set when given."""

    async def adjust_role_balance(self, user_id: int, token_address: str, role: RoleKind, delta: int) -> int: ...

    async def upsert_edge(self, follower_id: int, following_id: int, edge_type: EdgeType) -> bool: ...

    async def delete_edge(self, follower_id: int, following_id: int, edge_type: EdgeType) -> int:
        """Delete the edge if present; returns the number of rows removed."""


class ProjectionStore(Protocol):
    """Port for the relational read model."""

    def unit_of_work(self) -> AsyncContextManager[UnitOfWork]: ...

    async def close(self) -> None: ...


class CheckpointStore(Protocol):
    """Port resolving and persisting the last fully applied block per contract."""

    async def load(self, binding: ContractBinding, start_block: int) -> int: ...

    async def save(self, binding: ContractBinding, block: int) -> int:
        """Persist `block` unless a higher value is stored; returns the stored value."""

    async def all(self) -> list[Checkpoint]: ...
