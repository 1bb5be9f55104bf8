# core/access_guard.py
"""Session-presence check in front of protected dashboard pages"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from aiohttp import web

from core.session import SessionResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    redirect_to: Optional[str] = None


class AccessGuard:
    def __init__(
        self,
        session_resolver: SessionResolver,
        login_path: str = '/login',
        public_prefixes: Iterable[str] = (),
        public_exact: Iterable[str] = (),
    ):
        self.session_resolver = session_resolver
        self.login_path = login_path
        self.public_prefixes = tuple(public_prefixes)
        self.public_exact = frozenset(public_exact)

    def is_public(self, path: str) -> bool:
        """Literal prefix/exact comparison, no pattern compilation"""
        if path in self.public_exact:
            return True
        if path.startswith(self.login_path):
            return True
        return any(path.startswith(prefix) for prefix in self.public_prefixes)

    def decide(self, path: str, cookies: Mapping[str, Any]) -> GuardDecision:
        """
        Args:
            path: Request path
            cookies: Request cookies

        Returns:
            GuardDecision: allow, or redirect to the login path
        """
        if self.is_public(path):
            return GuardDecision(allowed=True)

        session = self.session_resolver.resolve(cookies)
        if not session.present:
            return GuardDecision(allowed=False, redirect_to=self.login_path)

        return GuardDecision(allowed=True)

    def middleware(self):
        """aiohttp middleware enforcing decide() before any handler runs"""

        @web.middleware
        async def access_guard_middleware(request, handler):
            decision = self.decide(request.path, request.cookies)
            if not decision.allowed:
                logger.debug(f"🔒 No session for {request.path}, redirecting to {decision.redirect_to}")
                raise web.HTTPFound(decision.redirect_to)
            return await handler(request)

        return access_guard_middleware
