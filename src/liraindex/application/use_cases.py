from __future__ import annotations

import asyncio
import logging
import signal

from ..adapters.checkpoint_sql import SqlCheckpointStore
from ..adapters.rpc_httpx import HttpxChainClient
from ..adapters.sql_store import SqlProjectionStore
from ..config import IndexerSettings
from ..domain.models import Checkpoint
from .orchestrator import Indexer
from .retry import RetryPolicy
from .router import EventRouter

logger = logging.getLogger(__name__)


def build_indexer(settings: IndexerSettings, *, store: SqlProjectionStore | None = None) -> Indexer:
    """Wire the production adapters into an `Indexer`; the indexer owns them from here on."""
    store = store or SqlProjectionStore(settings.database_url)
    chain = HttpxChainClient(settings.network.rpc_url, subscription_interval_s=min(settings.poll_interval_s, 2.0))
    return Indexer(
        settings=settings,
        chain=chain,
        store=store,
        checkpoint_store=SqlCheckpointStore(store),
        router=EventRouter(),
        retry=RetryPolicy(attempts=settings.retry_attempts, base_delay=settings.retry_delay_s),
    )


async def init_db(settings: IndexerSettings) -> None:
    store = SqlProjectionStore(settings.database_url)
    try:
        await store.create_schema()
    finally:
        await store.close()


async def run_indexer(settings: IndexerSettings, *, create_schema: bool = False) -> None:
    """Run until SIGINT/SIGTERM."""
    store = SqlProjectionStore(settings.database_url)
    if create_schema:
        await store.create_schema()
    indexer = build_indexer(settings, store=store)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: _on_signal(indexer, s))

    await indexer.initialize()
    await indexer.start()
    await indexer.wait_stopped()


def _on_signal(indexer: Indexer, sig: signal.Signals) -> None:
    logger.info("Received %s, shutting down...", sig.name)
    asyncio.ensure_future(indexer.stop())


async def backfill_once(settings: IndexerSettings, *, create_schema: bool = False) -> dict[str, int]:
    """Catch every contract up to the current head once, without subscriptions or polling."""
    store = SqlProjectionStore(settings.database_url)
    if create_schema:
        await store.create_schema()
    indexer = build_indexer(settings, store=store)
    try:
        await indexer.initialize()
        return await indexer.backfill()
    finally:
        await indexer.stop()


async def list_checkpoints(settings: IndexerSettings) -> list[Checkpoint]:
    store = SqlProjectionStore(settings.database_url)
    try:
        return await SqlCheckpointStore(store).all()
    finally:
        await store.close()
