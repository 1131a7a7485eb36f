"""SQLAlchemy 2.0 models for the projected read model."""

from __future__ import annotations

from datetime import datetime, UTC
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all models"""

    pass


class CheckpointRow(Base):
    __tablename__ = "checkpoints"

    contract_name: Mapped[str] = mapped_column(String(64), primary_key=True)
    contract_address: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    last_block: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(42), unique=True, index=True, nullable=False)
    handle: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    handle: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    metadata_uri: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    primary_token_address: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    preferences: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class Token(Base):
    __tablename__ = "tokens"

    contract_address: Mapped[str] = mapped_column(String(42), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    decimals: Mapped[int] = mapped_column(Integer, default=18, nullable=False)
    total_supply: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)  # big ints as strings
    token_type: Mapped[str] = mapped_column(String(16), nullable=False)
    creator_address: Mapped[str] = mapped_column(String(42), nullable=False)
    owner_address: Mapped[str] = mapped_column(String(42), nullable=False)
    registry_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    launched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    extra: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class TokenStat(Base):
    __tablename__ = "token_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_address: Mapped[str] = mapped_column(String(42), unique=True, nullable=False)
    holder_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    transaction_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    volume_total: Mapped[str] = mapped_column(String(80), default="0", nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class TokenEvent(Base):
    """Append-only audit row per applied log."""

    __tablename__ = "token_events"
    __table_args__ = (
        UniqueConstraint("transaction_hash", "log_index", name="uq_token_event_tx_log"),
        Index("ix_token_events_emitter_block", "emitter_address", "block_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_address: Mapped[str] = mapped_column(String(42), index=True, nullable=False)
    emitter_address: Mapped[str] = mapped_column(String(42), nullable=False)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    from_address: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    to_address: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    amount: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    extra: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)


class UserTokenRole(Base):
    __tablename__ = "user_token_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "token_address", "role", name="uq_user_token_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_address: Mapped[str] = mapped_column(String(42), index=True, nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    balance: Mapped[str] = mapped_column(String(80), default="0", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class SocialEdge(Base):
    __tablename__ = "social_edges"
    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", "edge_type", name="uq_social_edge"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    follower_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    following_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    edge_type: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
