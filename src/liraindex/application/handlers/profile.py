"""LiraProfile handlers."""

from __future__ import annotations

import logging

from ...domain.models import RawLogEvent
from ...ports.storage import UnitOfWork
from .common import addr

logger = logging.getLogger(__name__)


async def handle_profile_created(uow: UnitOfWork, log: RawLogEvent) -> None:
    wallet = addr(log, "userAddress")
    handle = log.args["handle"]
    metadata_uri = log.args.get("metadataURI") or None

    user_id = await uow.ensure_user(wallet)
    await uow.set_user_handle(user_id, handle)
    await uow.upsert_profile(
        user_id,
        create={"handle": handle, "metadata_uri": metadata_uri},
        update={"handle": handle, "metadata_uri": metadata_uri},
    )
    logger.info("ProfileCreated: %s for %s", handle, wallet)


async def handle_profile_updated(uow: UnitOfWork, log: RawLogEvent) -> None:
    wallet = addr(log, "userAddress")
    metadata_uri = log.args.get("metadataURI") or None

    user_id = await uow.ensure_user(wallet)
    await uow.upsert_profile(user_id, create={"metadata_uri": metadata_uri}, update={"metadata_uri": metadata_uri})
    logger.info("ProfileUpdated: %s", wallet)


async def handle_handle_updated(uow: UnitOfWork, log: RawLogEvent) -> None:
    wallet = addr(log, "userAddress")
    new_handle = log.args["newHandle"]

    user_id = await uow.ensure_user(wallet)
    await uow.set_user_handle(user_id, new_handle)
    await uow.upsert_profile(user_id, create={"handle": new_handle}, update={"handle": new_handle})
    logger.info("HandleUpdated: %s -> %s for %s", log.args.get("oldHandle"), new_handle, wallet)


async def handle_primary_token_linked(uow: UnitOfWork, log: RawLogEvent) -> None:
    wallet, token = addr(log, "userAddress"), addr(log, "tokenAddress")

    user_id = await uow.find_user(wallet)
    if user_id is None:
        logger.warning("User not found for PrimaryTokenLinked: %s", wallet)
        return

    await uow.upsert_profile(
        user_id,
        create={"primary_token_address": token},
        update={"primary_token_address": token},
    )
    logger.info("PrimaryTokenLinked: %s for %s", token, wallet)
