import asyncio

import pytest

from liraindex.adapters.checkpoint_sql import SqlCheckpointStore
from liraindex.adapters.sql_models import Token, TokenEvent, TokenStat, User, UserTokenRole
from liraindex.adapters.sql_store import SqlProjectionStore
from liraindex.application.orchestrator import Indexer, IndexerState
from liraindex.application.retry import RetryPolicy
from liraindex.application.router import EventRouter
from liraindex.domain.value_types import ContractKind, EventKind

from factories import (
    ALICE,
    BOB,
    CAROL,
    REGISTRY,
    TOKEN,
    ZERO,
    FakeChainClient,
    make_log,
    make_settings,
    rows,
)


def _indexer(store, chain, router=None, **env):
    env.setdefault("LIRA_TOKEN_ADDRESS", TOKEN)
    env.setdefault("INDEXER_SUBSCRIBE", "false")
    return Indexer(
        settings=make_settings(**env),
        chain=chain,
        store=store,
        checkpoint_store=SqlCheckpointStore(store),
        router=router,
        retry=RetryPolicy(attempts=3, base_delay=0.0),
    )


def _transfer(block, log_index=0, *, sender=ZERO, receiver=ALICE, value=100):
    return make_log(EventKind.TRANSFER, TOKEN, block=block, log_index=log_index,
                    **{"from": sender, "to": receiver, "value": value})


async def _balances(store):
    wallets = {u.id: u.wallet_address for u in await rows(store, User)}
    return {wallets[r.user_id]: int(r.balance) for r in await rows(store, UserTokenRole, role="holder")}


async def _eventually(predicate, timeout=2.0):
    async def wait():
        while not await predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(wait(), timeout)


@pytest.mark.asyncio
async def test_initialize_binds_only_configured_contracts(store):
    indexer = _indexer(store, FakeChainClient(), LIRA_TOKEN_EVENTS="Transfer,NotAnEvent")
    await indexer.initialize()
    assert list(indexer.bindings) == [ContractKind.LIRA_TOKEN]
    assert indexer.bindings[ContractKind.LIRA_TOKEN].events == (EventKind.TRANSFER,)
    assert indexer.checkpoints == {ContractKind.LIRA_TOKEN: 0}


@pytest.mark.asyncio
async def test_empty_range_still_advances_checkpoint(store):
    chain = FakeChainClient(head=150)
    indexer = _indexer(store, chain, START_BLOCK_SEPOLIA="100")
    await indexer.initialize()
    assert indexer.checkpoints[ContractKind.LIRA_TOKEN] == 100

    summary = await indexer.poll_once()
    assert summary == {"logs": 0, "applied": 0, "failed": 0, "ranges_failed": 0}
    assert indexer.checkpoints[ContractKind.LIRA_TOKEN] == 150
    assert {(c[2], c[3]) for c in chain.calls} == {(101, 150)}
    [cp] = await indexer.checkpoint_store.all()
    assert cp.last_block == 150


@pytest.mark.asyncio
async def test_transient_failures_are_retried(store):
    chain = FakeChainClient(head=10, logs=[_transfer(5)])
    chain.failures[EventKind.TRANSFER] = 2
    indexer = _indexer(store, chain)
    await indexer.initialize()

    summary = await indexer.backfill()
    assert [c for c in chain.calls if c[1] is EventKind.TRANSFER] == [("LiraToken", EventKind.TRANSFER, 1, 10)] * 3
    assert summary["applied"] == 1
    assert indexer.checkpoints[ContractKind.LIRA_TOKEN] == 10
    assert await _balances(store) == {ALICE: 100}


@pytest.mark.asyncio
async def test_exhausted_retries_keep_checkpoint(store):
    chain = FakeChainClient(head=10, logs=[_transfer(5)])
    chain.failures[EventKind.TRANSFER] = 3
    indexer = _indexer(store, chain)
    await indexer.initialize()

    summary = await indexer.backfill()
    assert summary["ranges_failed"] == 1
    assert indexer.checkpoints[ContractKind.LIRA_TOKEN] == 0
    assert await store.count(TokenEvent) == 0

    # the next tick retries the same range
    summary = await indexer.poll_once()
    assert summary["applied"] == 1
    assert indexer.checkpoints[ContractKind.LIRA_TOKEN] == 10


@pytest.mark.asyncio
async def test_failing_handler_does_not_block_later_logs(store):
    bad = make_log(EventKind.TOKEN_REGISTERED, REGISTRY, block=3,
                   tokenAddress=TOKEN, owner=ALICE, tokenType=9, registryId=1)
    good = make_log(EventKind.TOKEN_REGISTERED, REGISTRY, block=4,
                    tokenAddress=CAROL, owner=BOB, tokenType=0, registryId=2)
    chain = FakeChainClient(head=5, logs=[bad, good])
    indexer = _indexer(store, chain, LIRA_TOKEN_ADDRESS="", LIRA_REGISTRY_ADDRESS=REGISTRY)
    await indexer.initialize()

    summary = await indexer.backfill()
    assert summary == {"logs": 2, "applied": 1, "failed": 1, "ranges_failed": 0}
    assert [t.contract_address for t in await rows(store, Token)] == [CAROL]
    assert indexer.checkpoints[ContractKind.TOKEN_REGISTRY] == 5


@pytest.mark.asyncio
async def test_unrouted_event_is_dropped(store):
    indexer = _indexer(store, FakeChainClient(), router=EventRouter({}))
    assert await indexer.process_event(ContractKind.LIRA_TOKEN, EventKind.TRANSFER, _transfer(1)) is False
    assert await store.count(TokenEvent) == 0


@pytest.mark.asyncio
async def test_logs_of_different_events_apply_in_chain_order(store):
    approval = make_log(EventKind.APPROVAL, TOKEN, block=2, log_index=0, owner=ALICE, spender=BOB, value=1)
    chain = FakeChainClient(head=3, logs=[_transfer(2, 1), approval, _transfer(1, 4)])
    indexer = _indexer(store, chain)
    await indexer.initialize()
    await indexer.backfill()

    events = sorted(await rows(store, TokenEvent), key=lambda e: e.id)
    assert [(e.block_number, e.log_index) for e in events] == [(1, 4), (2, 0), (2, 1)]


@pytest.mark.asyncio
async def test_split_ranges_match_single_pass(store):
    logs = [
        _transfer(1, value=1000),
        _transfer(3, 0, sender=ALICE, receiver=BOB, value=100),
        _transfer(3, 1, sender=BOB, receiver=CAROL, value=40),
        make_log(EventKind.APPROVAL, TOKEN, block=5, owner=CAROL, spender=ALICE, value=7),
        _transfer(6, sender=ALICE, receiver=CAROL, value=10),
    ]

    single = _indexer(store, FakeChainClient(head=6, logs=logs))
    await single.initialize()
    await single.backfill()

    other = SqlProjectionStore("sqlite+aiosqlite:///:memory:")
    await other.create_schema()
    try:
        chain = FakeChainClient(head=3, logs=logs)
        split = _indexer(other, chain, INDEXER_BATCH_SIZE="2")
        await split.initialize()
        await split.backfill()
        chain.head = 6
        await split.poll_once()
        assert {(c[2], c[3]) for c in chain.calls} == {(1, 2), (3, 3), (4, 5), (6, 6)}

        assert await _balances(other) == await _balances(store) == {ALICE: 890, BOB: 60, CAROL: 50}
        [a] = await rows(store, TokenStat)
        [b] = await rows(other, TokenStat)
        assert (a.holder_count, a.transaction_count, a.volume_total) == \
               (b.holder_count, b.transaction_count, b.volume_total) == (3, 5, "1150")
        assert split.checkpoints == single.checkpoints == {ContractKind.LIRA_TOKEN: 6}
    finally:
        await other.close()


@pytest.mark.asyncio
async def test_checkpoint_survives_restart(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'index.db'}"
    first_store = SqlProjectionStore(url)
    await first_store.create_schema()
    first = _indexer(first_store, FakeChainClient(head=50, logs=[_transfer(20)]))
    await first.initialize()
    await first.backfill()
    await first.stop()

    chain = FakeChainClient(head=60, logs=[_transfer(20), _transfer(55, receiver=BOB)])
    second = _indexer(SqlProjectionStore(url), chain)
    await second.initialize()
    assert second.checkpoints[ContractKind.LIRA_TOKEN] == 50

    summary = await second.backfill()
    assert summary["logs"] == 1
    assert {(c[2], c[3]) for c in chain.calls} == {(51, 60)}
    assert await _balances(second.store) == {ALICE: 100, BOB: 100}
    await second.stop()


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_releases_everything(store):
    chain = FakeChainClient(head=0)
    indexer = _indexer(store, chain, INDEXER_SUBSCRIBE="true", INDEXER_POLL_INTERVAL="60000")

    await indexer.start()
    assert indexer.running
    assert indexer.state is IndexerState.LIVE_POLLING
    assert len(chain.subscriptions) == 2

    await indexer.start()
    assert len(chain.subscriptions) == 2

    await indexer.stop()
    assert not indexer.running
    assert indexer.state is IndexerState.STOPPED
    assert chain.closed
    assert not any(s.active for s in chain.subscriptions)

    # a second stop is harmless
    await indexer.stop()


@pytest.mark.asyncio
async def test_live_logs_apply_in_order_and_dedupe_with_polling(store):
    chain = FakeChainClient(head=0)
    indexer = _indexer(store, chain, INDEXER_SUBSCRIBE="true", INDEXER_POLL_INTERVAL="60000")
    await indexer.start()

    mint, move = _transfer(6, value=1000), _transfer(7, sender=ALICE, receiver=BOB, value=100)
    # delivered out of order within one burst
    chain.emit(move)
    chain.emit(mint)

    async def both_applied():
        return await store.count(TokenEvent) == 2
    await _eventually(both_applied)
    assert await _balances(store) == {ALICE: 900, BOB: 100}

    # polling later sees the same logs; nothing is applied twice
    chain.logs = [mint, move]
    chain.head = 7
    summary = await indexer.poll_once()
    assert summary["logs"] == 2
    assert await store.count(TokenEvent) == 2
    assert await _balances(store) == {ALICE: 900, BOB: 100}

    await indexer.stop()


@pytest.mark.asyncio
async def test_unreachable_head_skips_pass(store):
    class DownChain(FakeChainClient):
        async def latest_block(self):
            raise ConnectionError("node unreachable")

    indexer = _indexer(store, DownChain())
    await indexer.initialize()
    assert await indexer.backfill() == {"logs": 0, "applied": 0, "failed": 0, "ranges_failed": 0}
    assert await indexer.poll_once() == {"logs": 0, "applied": 0, "failed": 0, "ranges_failed": 0}
    assert indexer.checkpoints[ContractKind.LIRA_TOKEN] == 0


@pytest.mark.asyncio
async def test_start_after_stop_does_nothing(store):
    chain = FakeChainClient(head=10, logs=[_transfer(5)])
    indexer = _indexer(store, chain, INDEXER_SUBSCRIBE="true")
    await indexer.initialize()
    await indexer.stop()

    await indexer.start()
    assert not indexer.running
    assert indexer.state is IndexerState.STOPPED
    assert chain.subscriptions == []
    assert chain.calls == []


@pytest.mark.asyncio
async def test_ticks_never_overlap(store):
    class GatedChain(FakeChainClient):
        def __init__(self, **kw):
            super().__init__(**kw)
            self.gate = asyncio.Event()
            self.entered = asyncio.Event()
            self.first_tick = None
            self.first_tick_done_on_entry = []

        async def get_logs(self, binding, event, from_block, to_block):
            self.first_tick_done_on_entry.append(self.first_tick is not None and self.first_tick.done())
            self.entered.set()
            await self.gate.wait()
            return await super().get_logs(binding, event, from_block, to_block)

    chain = GatedChain(head=10, logs=[_transfer(5), _transfer(15, receiver=BOB)])
    indexer = _indexer(store, chain, LIRA_TOKEN_EVENTS="Transfer")
    await indexer.initialize()

    first = asyncio.create_task(indexer.poll_once())
    chain.first_tick = first
    await chain.entered.wait()
    chain.head = 20
    second = asyncio.create_task(indexer.poll_once())
    for _ in range(20):
        await asyncio.sleep(0)
    assert len(chain.first_tick_done_on_entry) == 1
    assert not second.done()

    chain.gate.set()
    one, two = await asyncio.gather(first, second)
    assert one["applied"] == 1 and two["applied"] == 1
    assert [(c[2], c[3]) for c in chain.calls] == [(1, 10), (11, 20)]
    assert chain.first_tick_done_on_entry == [False, True]
    assert indexer.checkpoints[ContractKind.LIRA_TOKEN] == 20


@pytest.mark.asyncio
async def test_live_and_range_applications_are_serialized(store):
    active, peak = 0, 0

    async def slow_handler(uow, log):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1

    router = EventRouter({(ContractKind.LIRA_TOKEN, EventKind.TRANSFER): slow_handler})
    chain = FakeChainClient(head=3, logs=[_transfer(1), _transfer(2), _transfer(3)])
    indexer = _indexer(store, chain, router=router, LIRA_TOKEN_EVENTS="Transfer")
    await indexer.initialize()

    live = [_transfer(4 + i, receiver=BOB) for i in range(3)]
    results = await asyncio.gather(
        indexer.poll_once(),
        *(indexer.process_event(ContractKind.LIRA_TOKEN, EventKind.TRANSFER, lg) for lg in live),
    )
    assert results[0]["applied"] == 3
    assert results[1:] == [True, True, True]
    assert peak == 1
