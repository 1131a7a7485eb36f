"""Token factory handlers (TokenLaunchFactory and LiraUserTokenFactory)."""

from __future__ import annotations

import logging
from datetime import datetime, UTC

from ...domain.models import RawLogEvent
from ...domain.value_types import TokenType
from ...ports.storage import UnitOfWork
from .common import Handler, addr, record

logger = logging.getLogger(__name__)


def _launched_at(log: RawLogEvent) -> datetime:
    if log.block_timestamp is not None:
        return datetime.fromtimestamp(log.block_timestamp, UTC)
    return datetime.now(UTC)


async def handle_token_launched(uow: UnitOfWork, log: RawLogEvent) -> None:
    token, creator = addr(log, "tokenAddress"), addr(log, "creator")
    name, symbol = log.args["name"], log.args["symbol"]
    total_supply = int(log.args["totalSupply"])

    if not await record(uow, log, token_address=token, to_address=creator, amount=total_supply,
                        metadata={"name": name, "symbol": symbol}):
        return

    launched_at = _launched_at(log)
    await uow.upsert_token(
        token,
        create={
            "name": name, "symbol": symbol, "decimals": 18, "total_supply": str(total_supply),
            "token_type": "PROJECT", "creator_address": creator, "owner_address": creator,
            "is_active": True, "launched_at": launched_at, "extra": {},
        },
        update={"name": name, "symbol": symbol, "total_supply": str(total_supply), "launched_at": launched_at},
    )
    await uow.ensure_token_stat(token, holder_count=1)

    user_id = await uow.ensure_user(creator)
    await uow.upsert_role(user_id, token, "creator", balance=total_supply)
    logger.info("TokenLaunched: %s (%s) at %s by %s", name, symbol, token, creator)


def _user_token_created(token_type: TokenType) -> Handler:
    async def handler(uow: UnitOfWork, log: RawLogEvent) -> None:
        token, creator = addr(log, "tokenAddress"), addr(log, "creator")
        name, symbol = log.args.get("name", "Unknown"), log.args.get("symbol", "UNK")

        if not await record(uow, log, token_address=token, to_address=creator,
                            metadata={"name": name, "symbol": symbol, "tokenType": token_type}):
            return

        launched_at = _launched_at(log)
        await uow.upsert_token(
            token,
            create={
                "name": name, "symbol": symbol, "decimals": 18, "token_type": token_type,
                "creator_address": creator, "owner_address": creator,
                "is_active": True, "launched_at": launched_at, "extra": {},
            },
            update={"name": name, "symbol": symbol, "token_type": token_type, "launched_at": launched_at},
        )
        user_id = await uow.ensure_user(creator)
        await uow.upsert_role(user_id, token, "creator")
        logger.info("%s: %s (%s) at %s by %s", log.event.value, name, symbol, token, creator)
    return handler


handle_reputation_token_created = _user_token_created("USER")
handle_social_token_created = _user_token_created("SOCIAL")
handle_access_token_created = _user_token_created("USER")
