from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping

from ...domain.models import RawLogEvent
from ...domain.value_types import ZERO_ADDRESS, TokenType, normalize_address
from ...ports.storage import UnitOfWork

Handler = Callable[[UnitOfWork, RawLogEvent], Awaitable[None]]

_TOKEN_TYPES: tuple[TokenType, ...] = ("PROJECT", "USER", "SOCIAL")


def addr(log: RawLogEvent, name: str) -> str:
    return normalize_address(log.args[name])


def is_zero(address: str | None) -> bool:
    return not address or address == ZERO_ADDRESS


def token_type_name(value: Any) -> TokenType:
    """Map the registry's uint8 token type onto its name."""
    n = int(value)
    if not 0 <= n < len(_TOKEN_TYPES):
        raise ValueError(f"Unknown token type {value!r}")
    return _TOKEN_TYPES[n]


async def record(
    uow: UnitOfWork,
    log: RawLogEvent,
    *,
    token_address: str,
    from_address: str | None = None,
    to_address: str | None = None,
    amount: int | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> bool:
    """Write the audit row for `log`; False when it was already applied."""
    return await uow.record_token_event(
        token_address=token_address,
        emitter_address=log.address,
        event_type=log.event.value,
        tx_hash=log.tx_hash,
        block_number=log.block_number,
        log_index=log.log_index,
        block_timestamp=log.block_timestamp,
        from_address=from_address,
        to_address=to_address,
        amount=amount,
        metadata=metadata,
    )
