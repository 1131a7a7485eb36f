"""
Indexer lifecycle: initialize -> load checkpoints -> subscribe -> backfill -> poll.

Every log reaches the store through `process_event`, which routes it to its
handler inside one unit of work. Range passes (backfill and poll ticks) are
serialized by one lock, merge the logs of all tracked events of a contract,
apply them in (block_number, log_index) order and only then advance that
contract's checkpoint. Live logs are queued per contract in the same order
and drained by one worker per contract. Every application, live or ranged,
holds one apply lock, so no two units of work overlap.
"""

from __future__ import annotations

import asyncio
import functools
import itertools
import logging
import math
from enum import Enum

from ..config import IndexerSettings
from ..domain.events import spec_for
from ..domain.models import BlockRange, ContractBinding, RawLogEvent
from ..domain.value_types import ContractKind, EventKind, normalize_address
from ..ports.rpc import ChainClient, Subscription
from ..ports.storage import CheckpointStore, ProjectionStore
from .planning import plan_chunks
from .retry import RetryPolicy
from .router import EventRouter

logger = logging.getLogger(__name__)

_SUMMARY_KEYS = ("logs", "applied", "failed", "ranges_failed")


def _summary() -> dict[str, int]:
    return dict.fromkeys(_SUMMARY_KEYS, 0)


class IndexerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    BACKFILL_RUNNING = "backfill_running"
    LIVE_POLLING = "live_polling"
    STOPPED = "stopped"


class Indexer:
    def __init__(
        self,
        *,
        settings: IndexerSettings,
        chain: ChainClient,
        store: ProjectionStore,
        checkpoint_store: CheckpointStore,
        router: EventRouter | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self.settings = settings
        self.chain = chain
        self.store = store
        self.checkpoint_store = checkpoint_store
        self.router = router or EventRouter()
        self.retry = retry or RetryPolicy(attempts=settings.retry_attempts, base_delay=settings.retry_delay_s)

        self.state = IndexerState.UNINITIALIZED
        self.bindings: dict[ContractKind, ContractBinding] = {}
        self.checkpoints: dict[ContractKind, int] = {}

        self._running = False
        self._stop_requested = False
        self._tick_lock = asyncio.Lock()
        self._apply_lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._stopped = asyncio.Event()
        self._poll_task: asyncio.Task[None] | None = None
        self._subscriptions: list[Subscription] = []
        self._queues: dict[ContractKind, asyncio.PriorityQueue] = {}
        self._workers: list[asyncio.Task[None]] = []
        self._seq = itertools.count()

    @property
    def running(self) -> bool:
        return self._running

    # ---- setup ---------------------------------------------------------------

    async def initialize(self) -> None:
        """Resolve configured contracts into bindings, validate routes, load checkpoints."""
        self.state = IndexerState.INITIALIZING
        logger.info("Initializing indexer for %s", self.settings.network.name)

        for cfg in self.settings.contracts:
            if not cfg.address:
                logger.warning("Contract %s has no address configured, skipping", cfg.name.value)
                continue
            try:
                address = normalize_address(cfg.address)
            except ValueError:
                logger.warning("Contract %s has an invalid address %r, skipping", cfg.name.value, cfg.address)
                continue

            events: list[EventKind] = []
            for name in cfg.events:
                spec = spec_for(name)
                if spec is None:
                    logger.warning("No ABI known for %s.%s, not tracked", cfg.name.value, name)
                    continue
                events.append(spec.kind)
            if not events:
                logger.warning("Contract %s has no trackable events, skipping", cfg.name.value)
                continue

            self.bindings[cfg.name] = ContractBinding(name=cfg.name, address=address, events=tuple(events))
            logger.info("Initialized contract: %s at %s", cfg.name.value, address)

        self.router.validate(self.bindings.values())
        await self.load_checkpoints()

    async def load_checkpoints(self) -> None:
        logger.info("Loading checkpoints...")
        for kind, binding in self.bindings.items():
            cp = await self.checkpoint_store.load(binding, self.settings.network.start_block)
            self.checkpoints[kind] = max(cp, self.checkpoints.get(kind, 0))
            logger.info("%s checkpoint: block %d", kind.value, self.checkpoints[kind])

    async def save_checkpoint(self, binding: ContractBinding, block: int) -> None:
        stored = await self.checkpoint_store.save(binding, block)
        self.checkpoints[binding.name] = max(self.checkpoints.get(binding.name, 0), stored)

    # ---- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            logger.warning("Indexer is already running")
            return
        if self.state is IndexerState.UNINITIALIZED and not self._stop_requested:
            await self.initialize()
        if self._stop_requested:
            logger.warning("Indexer was stopped, not starting")
            return

        self._running = True
        logger.info("Starting indexer...")

        if self.settings.subscribe:
            self.subscribe_to_events()

        self.state = IndexerState.BACKFILL_RUNNING
        await self.backfill()
        if self._stop_requested:
            return

        self.state = IndexerState.LIVE_POLLING
        self._poll_task = asyncio.create_task(self._poll_loop(), name="liraindex-poll")
        logger.info("Indexer started successfully")

    async def stop(self) -> None:
        """Stop new work, let in-flight work finish, then release the RPC and store handles."""
        if self._stop_requested:
            await self._stopped.wait()
            return
        self._stop_requested = True
        self._wake.set()
        logger.info("Stopping indexer...")

        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions.clear()

        if self._poll_task is not None:
            await self._poll_task
        async with self._tick_lock:
            pass

        for q in self._queues.values():
            q.put_nowait((math.inf, math.inf, next(self._seq), None))
        await asyncio.gather(*self._workers)
        self._workers.clear()

        await self.chain.close()
        await self.store.close()

        self._running = False
        self.state = IndexerState.STOPPED
        self._stopped.set()
        logger.info("Indexer stopped")

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    # ---- live subscriptions --------------------------------------------------

    def subscribe_to_events(self) -> None:
        logger.info("Subscribing to real-time events...")
        for binding in self.bindings.values():
            q: asyncio.PriorityQueue = asyncio.PriorityQueue()
            self._queues[binding.name] = q
            self._workers.append(asyncio.create_task(self._drain(binding, q), name=f"live:{binding.name.value}"))
            for ev in binding.events:
                callback = functools.partial(self._enqueue, binding.name)
                self._subscriptions.append(self.chain.subscribe(binding, ev, callback))
                logger.info("Subscribed to %s.%s", binding.name.value, ev.value)

    def _enqueue(self, contract: ContractKind, log: RawLogEvent) -> None:
        if self._stop_requested:
            return
        self._queues[contract].put_nowait((log.block_number, log.log_index, next(self._seq), log))

    async def _drain(self, binding: ContractBinding, q: asyncio.PriorityQueue) -> None:
        while True:
            *_, log = await q.get()
            if log is None:
                return
            await self.process_event(binding.name, log.event, log)

    # ---- range passes --------------------------------------------------------

    async def backfill(self) -> dict[str, int]:
        """One catch-up pass per contract up to the head seen at the start of the pass."""
        logger.info("Backfilling historical events...")
        async with self._tick_lock:
            try:
                head = await self.chain.latest_block()
            except Exception as e:
                logger.error("Backfill skipped, could not read the chain head: %s", e)
                return _summary()
            totals = await self._catch_up_all(head)
        logger.info("Backfill complete: %s", totals)
        return totals

    async def poll_once(self) -> dict[str, int]:
        """One poll tick: catch every contract up to the current head."""
        async with self._tick_lock:
            try:
                head = await self.chain.latest_block()
            except Exception as e:
                logger.error("Polling error: %s", e)
                return _summary()
            return await self._catch_up_all(head)

    async def _poll_loop(self) -> None:
        logger.info("Polling started (interval: %dms)", self.settings.poll_interval_ms)
        while not self._stop_requested:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.settings.poll_interval_s)
            except asyncio.TimeoutError:
                pass
            if self._stop_requested:
                break
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Polling error")

    async def _catch_up_all(self, head: int) -> dict[str, int]:
        totals = _summary()
        for binding in self.bindings.values():
            if self._stop_requested:
                break
            res = await self.catch_up(binding, head)
            for k in _SUMMARY_KEYS:
                totals[k] += res[k]
        return totals

    async def catch_up(self, binding: ContractBinding, head: int) -> dict[str, int]:
        """Apply [checkpoint+1, head] for one contract, chunk by chunk."""
        res = _summary()
        checkpoint = self.checkpoints.get(binding.name, 0)
        if checkpoint >= head:
            logger.debug("%s is up to date", binding.name.value)
            return res

        logger.info("Catching up %s from block %d to %d", binding.name.value, checkpoint + 1, head)
        for chunk in plan_chunks(checkpoint + 1, head, self.settings.batch_size):
            if self._stop_requested:
                break
            try:
                logs = await self.fetch_range(binding, chunk)
            except Exception as e:
                logger.error("Giving up on %s blocks %d-%d for this pass: %s",
                             binding.name.value, chunk.start, chunk.end, e)
                res["ranges_failed"] += 1
                break

            res["logs"] += len(logs)
            for log in logs:
                if await self.process_event(binding.name, log.event, log):
                    res["applied"] += 1
                else:
                    res["failed"] += 1
            await self.save_checkpoint(binding, chunk.end)
        return res

    async def fetch_range(self, binding: ContractBinding, chunk: BlockRange) -> list[RawLogEvent]:
        """Query every tracked event of `binding` over `chunk`, merged in chain order."""
        logs: list[RawLogEvent] = []
        for ev in binding.events:
            found = await self.retry.run(
                functools.partial(self.chain.get_logs, binding, ev, chunk.start, chunk.end),
                on_retry=functools.partial(self._log_retry, binding, ev, chunk),
            )
            if found:
                logger.info("Found %d %s events for %s", len(found), ev.value, binding.name.value)
            logs.extend(found)
        logs.sort(key=RawLogEvent.order_key)
        return logs

    @staticmethod
    def _log_retry(binding: ContractBinding, ev: EventKind, chunk: BlockRange,
                   attempt: int, attempts: int, error: BaseException, delay: float | None) -> None:
        if delay is None:
            logger.error("%s.%s blocks %d-%d failed after %d attempts: %s",
                         binding.name.value, ev.value, chunk.start, chunk.end, attempts, error)
        else:
            logger.warning("%s.%s blocks %d-%d attempt %d/%d failed, retrying in %.2fs: %s",
                           binding.name.value, ev.value, chunk.start, chunk.end, attempt, attempts, delay, error)

    # ---- dispatch ------------------------------------------------------------

    async def process_event(self, contract: ContractKind, event: EventKind, log: RawLogEvent) -> bool:
        """Apply one log; returns False when it was dropped or its handler failed."""
        handler = self.router.route(contract, event)
        if handler is None:
            logger.warning("No handler found for %s.%s", contract.value, event.value)
            return False

        logger.debug("Processing %s.%s at block %d", contract.value, event.value, log.block_number)
        try:
            # live workers and range passes share the store; one log at a time
            async with self._apply_lock, self.store.unit_of_work() as uow:
                await handler(uow, log)
        except Exception:
            logger.exception("Error processing %s.%s (tx %s, log %d)",
                             contract.value, event.value, log.tx_hash, log.log_index)
            return False
        return True
