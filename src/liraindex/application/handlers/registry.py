"""LiraTokenRegistry handlers."""

from __future__ import annotations

import logging
from typing import Any

from ...domain.models import RawLogEvent
from ...domain.value_types import ZERO_ADDRESS
from ...ports.storage import UnitOfWork
from .common import addr, record, token_type_name

logger = logging.getLogger(__name__)


def _placeholder(owner: str, **fields: Any) -> dict[str, Any]:
    # name/symbol are not part of the registry events
    return {
        "name": "Unknown",
        "symbol": "UNK",
        "decimals": 18,
        "token_type": "PROJECT",
        "creator_address": owner,
        "owner_address": owner,
        "is_active": True,
        "extra": {},
    } | fields


async def handle_token_registered(uow: UnitOfWork, log: RawLogEvent) -> None:
    token, owner = addr(log, "tokenAddress"), addr(log, "owner")
    token_type = token_type_name(log.args["tokenType"])
    registry_id = int(log.args["registryId"])

    if not await record(uow, log, token_address=token, to_address=owner,
                        metadata={"tokenType": int(log.args["tokenType"]), "registryId": registry_id}):
        return

    await uow.upsert_token(
        token,
        create=_placeholder(owner, token_type=token_type, registry_id=registry_id),
        update={"token_type": token_type, "owner_address": owner, "registry_id": registry_id, "is_active": True},
    )
    user_id = await uow.ensure_user(owner)
    await uow.upsert_role(user_id, token, "creator")
    logger.info("TokenRegistered: %s by %s type=%s id=%d", token, owner, token_type, registry_id)


async def handle_token_updated(uow: UnitOfWork, log: RawLogEvent) -> None:
    token, owner = addr(log, "tokenAddress"), addr(log, "owner")
    token_type = token_type_name(log.args["tokenType"])

    if not await record(uow, log, token_address=token, to_address=owner,
                        metadata={"tokenType": int(log.args["tokenType"])}):
        return

    await uow.upsert_token(
        token,
        create=_placeholder(owner, token_type=token_type),
        update={"token_type": token_type, "owner_address": owner},
    )
    logger.info("Token updated: %s", token)


async def handle_token_removed(uow: UnitOfWork, log: RawLogEvent) -> None:
    token = addr(log, "tokenAddress")
    if not await record(uow, log, token_address=token):
        return
    # tokens are never deleted, only deactivated
    await uow.upsert_token(
        token,
        create=_placeholder(ZERO_ADDRESS, is_active=False),
        update={"is_active": False},
    )
    logger.info("Token removed: %s", token)
