from __future__ import annotations

from typing import Any, Mapping

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from .errors import DecodeError
from .events import EventSpec
from .models import RawLogEvent
from .value_types import Address, TxHash, normalize_address

# ---------- scalar helpers ----------------------------------------------------

def _hex_to_int(v: Any) -> int:
    """Handles 0x..., decimal strings, and native ints."""
    if isinstance(v, int):
        return v
    s = str(v).lower()
    return int(s, 16) if s.startswith("0x") else int(s)

def _hex_to_0x_lower(v: str) -> str:
    s = v.lower()
    return s if s.startswith("0x") else "0x" + s

def _hexstr_to_bytes(v: str | None) -> bytes:
    if not v:
        return b""
    h = v[2:] if v[:2].lower() == "0x" else v
    if len(h) % 2: h = "0" + h
    return bytes.fromhex(h) if h else b""

def _topic_value(abi_type: str, topic: str) -> Any:
    word = _hexstr_to_bytes(topic).rjust(32, b"\0")
    if abi_type == "address":
        return normalize_address("0x" + word[-20:].hex())
    if abi_type.startswith("uint"):
        return int.from_bytes(word, "big")
    if abi_type == "bool":
        return word[-1] == 1
    # dynamic indexed params are stored as their keccak hash
    return "0x" + word.hex()

def _normalize_value(abi_type: str, v: Any) -> Any:
    if abi_type == "address":
        return normalize_address(v)
    if isinstance(v, bytes):
        return "0x" + v.hex()
    return v

# ---------------------------- public API --------------------------------------

def decode_args(spec: EventSpec, topics: list[str], data: bytes) -> dict[str, Any]:
    """Decode indexed topics and ABI data into a name -> value mapping."""
    indexed = spec.indexed
    if len(topics) < 1 + len(indexed):
        raise DecodeError(f"{spec.kind.value}: expected {1 + len(indexed)} topics, got {len(topics)}")
    if topics[0].lower() != spec.topic0:
        raise DecodeError(f"{spec.kind.value}: topic0 mismatch {topics[0]}")

    args: dict[str, Any] = {}
    for p, t in zip(indexed, topics[1:]):
        args[p.name] = _topic_value(p.abi_type, t)

    data_params = spec.data
    if data_params:
        try:
            values = decode([p.abi_type for p in data_params], data)
        except (DecodingError, ValueError) as e:
            raise DecodeError(f"{spec.kind.value}: bad data ({e})") from e
        for p, v in zip(data_params, values):
            args[p.name] = _normalize_value(p.abi_type, v)
    return args

def decode_log(spec: EventSpec, rl: Mapping[str, Any]) -> RawLogEvent:
    """Turn one JSON-RPC log object into a typed `RawLogEvent`."""
    try:
        topics = [_hex_to_0x_lower(t) for t in rl.get("topics", [])]
        ts = rl.get("blockTimestamp")
        return RawLogEvent(
            address=Address(normalize_address(rl["address"])),
            event=spec.kind,
            args=decode_args(spec, topics, _hexstr_to_bytes(rl.get("data"))),
            tx_hash=TxHash(_hex_to_0x_lower(rl["transactionHash"])),
            block_number=_hex_to_int(rl["blockNumber"]),
            log_index=_hex_to_int(rl["logIndex"]),
            block_timestamp=_hex_to_int(ts) if ts is not None else None,
        )
    except KeyError as e:
        raise DecodeError(f"{spec.kind.value}: log missing field {e}") from e
    except (ValueError, TypeError) as e:
        raise DecodeError(f"{spec.kind.value}: malformed log ({e})") from e
