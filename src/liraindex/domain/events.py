"""ABI catalog for the Lira contracts.

Each tracked event is described by an `EventSpec` (name + ordered params);
topic0 is derived from the canonical signature, so adding an event only
requires adding a spec here and listing it under its contract.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property

from eth_utils import keccak

from .value_types import ContractKind, EventKind, Topic0


@dataclass(frozen=True)
class Param:
    name: str
    abi_type: str
    indexed: bool = False


@dataclass(frozen=True)
class EventSpec:
    kind: EventKind
    params: tuple[Param, ...]

    @property
    def signature(self) -> str:
        return f"{self.kind.value}({','.join(p.abi_type for p in self.params)})"

    @cached_property
    def topic0(self) -> Topic0:
        return Topic0("0x" + keccak(text=self.signature).hex().removeprefix("0x"))

    @property
    def indexed(self) -> tuple[Param, ...]:
        return tuple(p for p in self.params if p.indexed)

    @property
    def data(self) -> tuple[Param, ...]:
        return tuple(p for p in self.params if not p.indexed)


def _ev(kind: EventKind, *params: Param) -> EventSpec:
    return EventSpec(kind=kind, params=tuple(params))


def _addr(name: str, indexed: bool = True) -> Param:
    return Param(name, "address", indexed)


EVENT_SPECS: dict[EventKind, EventSpec] = {s.kind: s for s in (
    # LiraToken (ERC-20)
    _ev(EventKind.TRANSFER, _addr("from"), _addr("to"), Param("value", "uint256")),
    _ev(EventKind.APPROVAL, _addr("owner"), _addr("spender"), Param("value", "uint256")),
    # LiraTokenRegistry
    _ev(EventKind.TOKEN_REGISTERED, _addr("tokenAddress"), _addr("owner"),
        Param("tokenType", "uint8"), Param("registryId", "uint256")),
    _ev(EventKind.TOKEN_UPDATED, _addr("tokenAddress"), _addr("owner"), Param("tokenType", "uint8")),
    _ev(EventKind.TOKEN_REMOVED, _addr("tokenAddress")),
    # TokenLaunchFactory
    _ev(EventKind.TOKEN_LAUNCHED, _addr("tokenAddress"), _addr("creator"),
        Param("name", "string"), Param("symbol", "string"), Param("totalSupply", "uint256")),
    # LiraUserTokenFactory
    _ev(EventKind.REPUTATION_TOKEN_CREATED, _addr("tokenAddress"), _addr("creator"),
        Param("name", "string"), Param("symbol", "string")),
    _ev(EventKind.SOCIAL_TOKEN_CREATED, _addr("tokenAddress"), _addr("creator"),
        Param("name", "string"), Param("symbol", "string")),
    _ev(EventKind.ACCESS_TOKEN_CREATED, _addr("tokenAddress"), _addr("creator"),
        Param("name", "string"), Param("symbol", "string")),
    # LiraProfile
    _ev(EventKind.PROFILE_CREATED, _addr("userAddress"), Param("handle", "string"), Param("metadataURI", "string")),
    _ev(EventKind.PROFILE_UPDATED, _addr("userAddress"), Param("metadataURI", "string")),
    _ev(EventKind.HANDLE_UPDATED, _addr("userAddress"), Param("oldHandle", "string"), Param("newHandle", "string")),
    _ev(EventKind.PRIMARY_TOKEN_LINKED, _addr("userAddress"), _addr("tokenAddress")),
    # LiraSocialGraph
    _ev(EventKind.FOLLOWED, _addr("follower"), _addr("following")),
    _ev(EventKind.UNFOLLOWED, _addr("follower"), _addr("following")),
    _ev(EventKind.BLOCKED, _addr("blocker"), _addr("blocked")),
    _ev(EventKind.UNBLOCKED, _addr("blocker"), _addr("blocked")),
    _ev(EventKind.MUTED, _addr("muter"), _addr("muted")),
    _ev(EventKind.UNMUTED, _addr("muter"), _addr("muted")),
)}


DEFAULT_CONTRACT_EVENTS: dict[ContractKind, tuple[str, ...]] = {
    ContractKind.LIRA_TOKEN: ("Transfer", "Approval"),
    ContractKind.TOKEN_REGISTRY: ("TokenRegistered", "TokenUpdated", "TokenRemoved"),
    ContractKind.TOKEN_LAUNCH_FACTORY: ("TokenLaunched",),
    ContractKind.USER_TOKEN_FACTORY: ("ReputationTokenCreated", "SocialTokenCreated", "AccessTokenCreated"),
    ContractKind.PROFILE: ("ProfileCreated", "ProfileUpdated", "HandleUpdated", "PrimaryTokenLinked"),
    ContractKind.SOCIAL_GRAPH: ("Followed", "Unfollowed", "Blocked", "Unblocked", "Muted", "Unmuted"),
}


def spec_for(name: str) -> EventSpec | None:
    """Look up an event spec by its ABI name; None when the ABI is unknown."""
    try:
        return EVENT_SPECS[EventKind(name)]
    except ValueError:
        return None
