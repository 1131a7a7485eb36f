from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .domain.errors import ConfigurationError
from .domain.events import DEFAULT_CONTRACT_EVENTS
from .domain.value_types import ContractKind


@dataclass(frozen=True)
class NetworkConfig:
    key: str
    name: str
    rpc_url: str
    chain_id: int
    start_block: int = 0


@dataclass(frozen=True)
class ContractConfig:
    name: ContractKind
    address: str                  # "" when not deployed / not configured
    events: tuple[str, ...]


@dataclass(frozen=True)
class IndexerSettings:
    """Everything the indexer reads from the environment, loaded once at startup."""

    network: NetworkConfig
    contracts: tuple[ContractConfig, ...]
    database_url: str = "postgresql+asyncpg://localhost:5432/lira"
    poll_interval_ms: int = 5_000
    batch_size: int = 1_000
    retry_attempts: int = 3
    retry_delay_ms: int = 1_000
    log_level: str = "info"
    subscribe: bool = True

    @property
    def poll_interval_s(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def retry_delay_s(self) -> float:
        return self.retry_delay_ms / 1000


# env var holding each contract's address
CONTRACT_ADDRESS_ENV: dict[ContractKind, str] = {
    ContractKind.LIRA_TOKEN: "LIRA_TOKEN_ADDRESS",
    ContractKind.TOKEN_REGISTRY: "LIRA_REGISTRY_ADDRESS",
    ContractKind.TOKEN_LAUNCH_FACTORY: "TOKEN_LAUNCH_FACTORY_ADDRESS",
    ContractKind.USER_TOKEN_FACTORY: "USER_TOKEN_FACTORY_ADDRESS",
    ContractKind.PROFILE: "LIRA_PROFILE_ADDRESS",
    ContractKind.SOCIAL_GRAPH: "LIRA_SOCIAL_GRAPH_ADDRESS",
}


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from None


def _bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def networks(env: Mapping[str, str]) -> dict[str, NetworkConfig]:
    return {
        "base-sepolia": NetworkConfig(
            key="base-sepolia",
            name="Base Sepolia",
            rpc_url=env.get("BASE_SEPOLIA_RPC") or "https://sepolia.base.org",
            chain_id=84532,
            start_block=_int(env, "START_BLOCK_SEPOLIA", 0),
        ),
        "base-mainnet": NetworkConfig(
            key="base-mainnet",
            name="Base Mainnet",
            rpc_url=env.get("BASE_MAINNET_RPC") or "https://mainnet.base.org",
            chain_id=8453,
            start_block=_int(env, "START_BLOCK_MAINNET", 0),
        ),
    }


def _events_env_key(address_key: str) -> str:
    return address_key.removesuffix("_ADDRESS") + "_EVENTS"


def contracts(env: Mapping[str, str]) -> tuple[ContractConfig, ...]:
    out: list[ContractConfig] = []
    for kind, address_key in CONTRACT_ADDRESS_ENV.items():
        override = env.get(_events_env_key(address_key), "").strip()
        events = tuple(e.strip() for e in override.split(",") if e.strip()) if override \
            else DEFAULT_CONTRACT_EVENTS[kind]
        out.append(ContractConfig(name=kind, address=env.get(address_key, "").strip(), events=events))
    return tuple(out)


def load_settings(env: Mapping[str, str] | None = None) -> IndexerSettings:
    """Build settings from `env` (defaults to `os.environ`).

    Raises ConfigurationError for an unknown network or a malformed number.
    """
    env = os.environ if env is None else env
    network_key = env.get("INDEXER_NETWORK") or "base-sepolia"
    known = networks(env)
    if network_key not in known:
        raise ConfigurationError(f"Network {network_key} not configured (known: {', '.join(known)})")

    return IndexerSettings(
        network=known[network_key],
        contracts=contracts(env),
        database_url=env.get("DATABASE_URL") or IndexerSettings.database_url,
        poll_interval_ms=_int(env, "INDEXER_POLL_INTERVAL", 5_000),
        batch_size=max(1, _int(env, "INDEXER_BATCH_SIZE", 1_000)),
        retry_attempts=max(1, _int(env, "INDEXER_RETRY_ATTEMPTS", 3)),
        retry_delay_ms=_int(env, "INDEXER_RETRY_DELAY", 1_000),
        log_level=(env.get("INDEXER_LOG_LEVEL") or "info").lower(),
        subscribe=_bool(env, "INDEXER_SUBSCRIBE", True),
    )
