"""
LiraSocialGraph handlers.

Edges are (follower, following, edge_type) triples; the same columns carry
blocker/blocked and muter/muted for block and mute edges.
"""

from __future__ import annotations

import logging

from ...domain.models import RawLogEvent
from ...domain.value_types import EdgeType
from ...ports.storage import UnitOfWork
from .common import Handler, addr

logger = logging.getLogger(__name__)


async def _pair(uow: UnitOfWork, log: RawLogEvent, src: str, dst: str) -> tuple[int, int]:
    return await uow.ensure_user(addr(log, src)), await uow.ensure_user(addr(log, dst))


def _create_edge(edge_type: EdgeType, src: str, dst: str) -> Handler:
    async def handler(uow: UnitOfWork, log: RawLogEvent) -> None:
        a, b = await _pair(uow, log, src, dst)
        await uow.upsert_edge(a, b, edge_type)
        logger.info("%s: %s -> %s", log.event.value, log.args[src], log.args[dst])
    return handler


def _remove_edge(edge_type: EdgeType, src: str, dst: str) -> Handler:
    async def handler(uow: UnitOfWork, log: RawLogEvent) -> None:
        a, b = await _pair(uow, log, src, dst)
        removed = await uow.delete_edge(a, b, edge_type)
        logger.info("%s: %s -> %s (removed=%d)", log.event.value, log.args[src], log.args[dst], removed)
    return handler


async def handle_blocked(uow: UnitOfWork, log: RawLogEvent) -> None:
    blocker, blocked = await _pair(uow, log, "blocker", "blocked")
    await uow.upsert_edge(blocker, blocked, "block")
    # a block severs follows both ways, in the same unit of work
    await uow.delete_edge(blocker, blocked, "follow")
    await uow.delete_edge(blocked, blocker, "follow")
    logger.info("Blocked: %s -> %s", log.args["blocker"], log.args["blocked"])


handle_followed = _create_edge("follow", "follower", "following")
handle_unfollowed = _remove_edge("follow", "follower", "following")
handle_unblocked = _remove_edge("block", "blocker", "blocked")
handle_muted = _create_edge("mute", "muter", "muted")
handle_unmuted = _remove_edge("mute", "muter", "muted")
