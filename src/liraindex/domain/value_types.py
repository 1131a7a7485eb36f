from __future__ import annotations
from enum import Enum
from typing import NewType, Literal

Address = NewType("Address", str)   # 0x-prefixed, lowercase
TxHash  = NewType("TxHash", str)    # 66-char 0x-hash, lowercase
Topic0  = NewType("Topic0", str)    # 66-char 0x-hash

TokenType = Literal["PROJECT", "USER", "SOCIAL"]
RoleKind  = Literal["creator", "holder"]
EdgeType  = Literal["follow", "block", "mute"]

ZERO_ADDRESS = Address("0x" + "0" * 40)


class ContractKind(str, Enum):
    LIRA_TOKEN = "LiraToken"
    TOKEN_REGISTRY = "LiraTokenRegistry"
    TOKEN_LAUNCH_FACTORY = "TokenLaunchFactory"
    USER_TOKEN_FACTORY = "LiraUserTokenFactory"
    PROFILE = "LiraProfile"
    SOCIAL_GRAPH = "LiraSocialGraph"


class EventKind(str, Enum):
    TRANSFER = "Transfer"
    APPROVAL = "Approval"
    TOKEN_REGISTERED = "TokenRegistered"
    TOKEN_UPDATED = "TokenUpdated"
    TOKEN_REMOVED = "TokenRemoved"
    TOKEN_LAUNCHED = "TokenLaunched"
    REPUTATION_TOKEN_CREATED = "ReputationTokenCreated"
    SOCIAL_TOKEN_CREATED = "SocialTokenCreated"
    ACCESS_TOKEN_CREATED = "AccessTokenCreated"
    PROFILE_CREATED = "ProfileCreated"
    PROFILE_UPDATED = "ProfileUpdated"
    HANDLE_UPDATED = "HandleUpdated"
    PRIMARY_TOKEN_LINKED = "PrimaryTokenLinked"
    FOLLOWED = "Followed"
    UNFOLLOWED = "Unfollowed"
    BLOCKED = "Blocked"
    UNBLOCKED = "Unblocked"
    MUTED = "Muted"
    UNMUTED = "Unmuted"


def normalize_address(value: str) -> Address:
    """Lowercase, 0x-prefixed, last 20 bytes (accepts padded topic words)."""
    s = str(value).strip().lower()
    if s.startswith("0x"):
        s = s[2:]
    if len(s) < 40:
        raise ValueError(f"Not an address: {value!r}")
    return Address("0x" + s[-40:])
