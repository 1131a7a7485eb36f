from __future__ import annotations

import logging
from typing import Iterable, Mapping

from ..domain.models import ContractBinding
from ..domain.value_types import ContractKind as C, EventKind as E
from .handlers import factory, profile, registry, social, token
from .handlers.common import Handler

logger = logging.getLogger(__name__)

Route = tuple[C, E]

DEFAULT_ROUTES: dict[Route, Handler] = {
    (C.LIRA_TOKEN, E.TRANSFER): token.handle_transfer,
    (C.LIRA_TOKEN, E.APPROVAL): token.handle_approval,

    (C.TOKEN_REGISTRY, E.TOKEN_REGISTERED): registry.handle_token_registered,
    (C.TOKEN_REGISTRY, E.TOKEN_UPDATED): registry.handle_token_updated,
    (C.TOKEN_REGISTRY, E.TOKEN_REMOVED): registry.handle_token_removed,

    (C.PROFILE, E.PROFILE_CREATED): profile.handle_profile_created,
    (C.PROFILE, E.PROFILE_UPDATED): profile.handle_profile_updated,
    (C.PROFILE, E.HANDLE_UPDATED): profile.handle_handle_updated,
    (C.PROFILE, E.PRIMARY_TOKEN_LINKED): profile.handle_primary_token_linked,

    (C.SOCIAL_GRAPH, E.FOLLOWED): social.handle_followed,
    (C.SOCIAL_GRAPH, E.UNFOLLOWED): social.handle_unfollowed,
    (C.SOCIAL_GRAPH, E.BLOCKED): social.handle_blocked,
    (C.SOCIAL_GRAPH, E.UNBLOCKED): social.handle_unblocked,
    (C.SOCIAL_GRAPH, E.MUTED): social.handle_muted,
    (C.SOCIAL_GRAPH, E.UNMUTED): social.handle_unmuted,

    (C.TOKEN_LAUNCH_FACTORY, E.TOKEN_LAUNCHED): factory.handle_token_launched,
    (C.USER_TOKEN_FACTORY, E.REPUTATION_TOKEN_CREATED): factory.handle_reputation_token_created,
    (C.USER_TOKEN_FACTORY, E.SOCIAL_TOKEN_CREATED): factory.handle_social_token_created,
    (C.USER_TOKEN_FACTORY, E.ACCESS_TOKEN_CREATED): factory.handle_access_token_created,
}


class EventRouter:
    """Closed (contract, event) -> handler table."""

    def __init__(self, routes: Mapping[Route, Handler] | None = None) -> None:
        self._routes: dict[Route, Handler] = dict(DEFAULT_ROUTES if routes is None else routes)

    def route(self, contract: C, event: E) -> Handler | None:
        return self._routes.get((contract, event))

    def routes(self) -> list[tuple[Route, Handler]]:
        return sorted(self._routes.items(), key=lambda kv: (kv[0][0].value, kv[0][1].value))

    def validate(self, bindings: Iterable[ContractBinding]) -> list[Route]:
        """Return (and log) every tracked (contract, event) pair with no handler."""
        missing: list[Route] = []
        for b in bindings:
            for ev in b.events:
                if (b.name, ev) not in self._routes:
                    missing.append((b.name, ev))
                    logger.warning("No handler registered for %s.%s; its logs will be dropped",
                                   b.name.value, ev.value)
        return missing
