"""
LiraToken handlers: Transfer and Approval.

Both are deduplicated on (tx_hash, log_index); a replayed log changes nothing.
"""

from __future__ import annotations

import logging

from ...domain.models import RawLogEvent
from ...ports.storage import UnitOfWork
from .common import addr, is_zero, record

logger = logging.getLogger(__name__)


async def _credit_holder(uow: UnitOfWork, holder: str, token: str, delta: int) -> bool:
    user_id = await uow.ensure_user(holder)
    created = await uow.upsert_role(user_id, token, "holder")
    await uow.adjust_role_balance(user_id, token, "holder", delta)
    return created


async def handle_transfer(uow: UnitOfWork, log: RawLogEvent) -> None:
    token = log.address
    sender, receiver = addr(log, "from"), addr(log, "to")
    value = int(log.args["value"])

    if not await record(uow, log, token_address=token, from_address=sender,
                        to_address=receiver, amount=value):
        logger.debug("Transfer already indexed: %s-%d", log.tx_hash, log.log_index)
        return

    new_holders = 0
    if not is_zero(sender):
        new_holders += await _credit_holder(uow, sender, token, -value)
    if not is_zero(receiver):
        new_holders += await _credit_holder(uow, receiver, token, value)
    await uow.bump_token_stat(token, transactions=1, holders=new_holders, volume=value)

    logger.info("Transfer indexed: %s %s -> %s", log.tx_hash, sender, receiver)


async def handle_approval(uow: UnitOfWork, log: RawLogEvent) -> None:
    token = log.address
    if not await record(uow, log, token_address=token, from_address=addr(log, "owner"),
                        to_address=addr(log, "spender"), amount=int(log.args["value"])):
        return
    await uow.bump_token_stat(token, transactions=1)
    logger.info("Approval indexed: %s", log.tx_hash)
