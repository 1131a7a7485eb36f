# liraindex/adapters/checkpoint_sql.py
from __future__ import annotations

import logging

from sqlalchemy import func, select

from ..domain.models import Checkpoint, ContractBinding
from ..ports.storage import CheckpointStore
from .sql_models import CheckpointRow, TokenEvent
from .sql_store import SqlProjectionStore

logger = logging.getLogger(__name__)


class SqlCheckpointStore(CheckpointStore):
    """
    Checkpoints resolved from the persisted `checkpoints` table and the audit log.

    A contract's checkpoint is the highest of: the stored row, the highest
    block of any audit event it emitted, the configured start block, and 0.
    Saves never lower a stored value.
    """
    def __init__(self, store: SqlProjectionStore) -> None:
        self.store = store

    async def load(self, binding: ContractBinding, start_block: int) -> int:
        async with self.store.sessions() as session:
            row = await session.get(CheckpointRow, binding.name.value)
            stmt = select(func.max(TokenEvent.block_number)).where(
                TokenEvent.emitter_address == binding.address
            )
            last_event = (await session.execute(stmt)).scalar_one_or_none()
        stored = row.last_block if row is not None else 0
        return max(stored, last_event or 0, start_block or 0, 0)

    async def save(self, binding: ContractBinding, block: int) -> int:
        async with self.store.sessions() as session:
            async with session.begin():
                row = await session.get(CheckpointRow, binding.name.value)
                if row is None:
                    row = CheckpointRow(contract_name=binding.name.value,
                                        contract_address=binding.address, last_block=block)
                    session.add(row)
                elif block > row.last_block:
                    row.last_block = block
                    row.contract_address = binding.address
                stored = row.last_block
        return stored

    async def all(self) -> list[Checkpoint]:
        async with self.store.sessions() as session:
            rows = (await session.execute(select(CheckpointRow).order_by(CheckpointRow.contract_name))).scalars()
            return [Checkpoint(r.contract_name, r.contract_address, r.last_block) for r in rows]
