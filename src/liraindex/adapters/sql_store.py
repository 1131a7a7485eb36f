"""
Async SQLAlchemy implementation of the projection store.

One `SqlUnitOfWork` wraps one `AsyncSession` transaction; every handler
invocation gets its own unit of work, so a failing handler rolls back
everything it wrote.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, UTC
from typing import Any, AsyncIterator, Mapping

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ..domain.value_types import EdgeType, RoleKind
from ..ports.storage import ProjectionStore, UnitOfWork
from .sql_models import (
    Base,
    Profile,
    SocialEdge,
    Token,
    TokenEvent,
    TokenStat,
    User,
    UserTokenRole,
)

logger = logging.getLogger(__name__)


def _ts(unix: int | None) -> datetime | None:
    return datetime.fromtimestamp(unix, UTC) if unix is not None else None


def _apply(row: Any, fields: Mapping[str, Any]) -> None:
    for k, v in fields.items():
        setattr(row, k, v)


class SqlUnitOfWork(UnitOfWork):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ---- audit events ------------------------------------------------------

    async def token_event_exists(self, tx_hash: str, log_index: int) -> bool:
        stmt = select(TokenEvent.id).where(
            TokenEvent.transaction_hash == tx_hash, TokenEvent.log_index == log_index
        )
        return (await self.session.execute(stmt)).first() is not None

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
        if await self.token_event_exists(tx_hash, log_index):
            logger.debug("Event already indexed: %s-%d", tx_hash, log_index)
            return False
        self.session.add(TokenEvent(
            token_address=token_address,
            emitter_address=emitter_address,
            event_type=event_type,
            from_address=from_address,
            to_address=to_address,
            amount=str(amount) if amount is not None else None,
            transaction_hash=tx_hash,
            block_number=block_number,
            block_timestamp=_ts(block_timestamp),
            log_index=log_index,
            extra=dict(metadata or {}),
        ))
        await self.session.flush()
        return True

    # ---- tokens ------------------------------------------------------------

    async def upsert_token(self, address: str, *, create: Mapping[str, Any], update: Mapping[str, Any]) -> bool:
        token = await self.session.get(Token, address)
        if token is None:
            self.session.add(Token(contract_address=address, **create))
            await self.session.flush()
            return True
        _apply(token, update)
        return False

    async def _stat(self, token_address: str) -> TokenStat | None:
        stmt = select(TokenStat).where(TokenStat.token_address == token_address)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def ensure_token_stat(self, token_address: str, *, holder_count: int = 0) -> bool:
        if await self._stat(token_address) is not None:
            return False
        self.session.add(TokenStat(token_address=token_address, holder_count=holder_count,
                                   transaction_count=0, volume_total="0"))
        await self.session.flush()
        return True

    async def bump_token_stat(
        self, token_address: str, *, transactions: int = 0, holders: int = 0, volume: int = 0,
    ) -> None:
        await self.ensure_token_stat(token_address)
        stat = await self._stat(token_address)
        stat.transaction_count += transactions
        stat.holder_count += holders
        stat.volume_total = str(int(stat.volume_total) + volume)
        stat.last_updated = datetime.now(UTC)

    # ---- users / profiles --------------------------------------------------

    async def find_user(self, wallet_address: str) -> int | None:
        stmt = select(User.id).where(User.wallet_address == wallet_address)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def ensure_user(self, wallet_address: str) -> int:
        user_id = await self.find_user(wallet_address)
        if user_id is not None:
            return user_id
        user = User(wallet_address=wallet_address, role="user", is_verified=False)
        self.session.add(user)
        await self.session.flush()
        return user.id

    async def set_user_handle(self, user_id: int, handle: str | None) -> None:
        user = await self.session.get(User, user_id)
        user.handle = handle

    async def _profile(self, user_id: int) -> Profile | None:
        stmt = select(Profile).where(Profile.user_id == user_id)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def upsert_profile(self, user_id: int, *, create: Mapping[str, Any], update: Mapping[str, Any]) -> bool:
        profile = await self._profile(user_id)
        if profile is None:
            self.session.add(Profile(user_id=user_id, preferences={}, **create))
            await self.session.flush()
            return True
        _apply(profile, update)
        return False

    # ---- roles -------------------------------------------------------------

    async def _role(self, user_id: int, token_address: str, role: RoleKind) -> UserTokenRole | None:
        stmt = select(UserTokenRole).where(
            UserTokenRole.user_id == user_id,
            UserTokenRole.token_address == token_address,
            UserTokenRole.role == role,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def upsert_role(
        self, user_id: int, token_address: str, role: RoleKind, *, balance: int | None = None,
    ) -> bool:
        row = await self._role(user_id, token_address, role)
        if row is None:
            self.session.add(UserTokenRole(
                user_id=user_id, token_address=token_address, role=role,
                balance=str(balance if balance is not None else 0),
            ))
            await self.session.flush()
            return True
        if balance is not None:
            row.balance = str(balance)
        row.updated_at = datetime.now(UTC)
        return False

    async def adjust_role_balance(self, user_id: int, token_address: str, role: RoleKind, delta: int) -> int:
        await self.upsert_role(user_id, token_address, role)
        row = await self._role(user_id, token_address, role)
        row.balance = str(max(int(row.balance) + delta, 0))
        return int(row.balance)

    # ---- social edges ------------------------------------------------------

    async def upsert_edge(self, follower_id: int, following_id: int, edge_type: EdgeType) -> bool:
        stmt = select(SocialEdge).where(
            SocialEdge.follower_id == follower_id,
            SocialEdge.following_id == following_id,
            SocialEdge.edge_type == edge_type,
        )
        if (await self.session.execute(stmt)).scalar_one_or_none() is not None:
            return False
        self.session.add(SocialEdge(follower_id=follower_id, following_id=following_id, edge_type=edge_type))
        await self.session.flush()
        return True

    async def delete_edge(self, follower_id: int, following_id: int, edge_type: EdgeType) -> int:
        stmt = delete(SocialEdge).where(
            SocialEdge.follower_id == follower_id,
            SocialEdge.following_id == following_id,
            SocialEdge.edge_type == edge_type,
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0


class SqlProjectionStore(ProjectionStore):
    def __init__(self, database_url: str, *, engine: AsyncEngine | None = None, echo: bool = False) -> None:
        self.database_url = database_url
        if engine is None:
            kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
            if database_url.startswith("sqlite") and ":memory:" in database_url:
                kwargs = {"echo": echo, "poolclass": StaticPool,
                          "connect_args": {"check_same_thread": False}}
            engine = create_async_engine(database_url, **kwargs)
        self.engine = engine
        self.sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[SqlUnitOfWork]:
        async with self.sessions() as session:
            async with session.begin():
                yield SqlUnitOfWork(session)

    async def count(self, model: type[Base], **filters: Any) -> int:
        """Row count helper for summaries and tests."""
        stmt = select(func.count()).select_from(model)
        for k, v in filters.items():
            stmt = stmt.where(getattr(model, k) == v)
        async with self.sessions() as session:
            return int((await session.execute(stmt)).scalar_one())

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("Store connection released")
