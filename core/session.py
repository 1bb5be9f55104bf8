# core/session.py
"""
Session cookie reading.

Every consumer (access guard, API client, pages) goes through SessionResolver
instead of looking cookies up on its own.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionInfo:
    present: bool
    raw: Optional[str]


@dataclass(frozen=True)
class UserInfo:
    """Profile cookies the backend sets next to the session cookie on login"""
    full_name: Optional[str] = None
    user_id: Optional[str] = None
    is_system_user: bool = False
    user_image: Optional[str] = None
    workspaces: List[Any] = field(default_factory=list)
    permissions: Dict[str, Any] = field(default_factory=dict)


class SessionResolver:
    def __init__(self, cookie_name: str = 'sid', guest_value: str = 'Guest'):
        self.cookie_name = cookie_name
        self.guest_value = guest_value

    def resolve(self, cookies: Mapping[str, Any]) -> SessionInfo:
        """
        Args:
            cookies: Cookie mapping; values may be plain strings or Morsel-like
                objects with a .value attribute

        Returns:
            SessionInfo: present is False for an absent, empty or guest session
        """
        raw = _cookie_value(cookies, self.cookie_name)
        present = bool(raw) and raw != self.guest_value
        return SessionInfo(present=present, raw=raw)

    def resolve_user(self, cookies: Mapping[str, Any]) -> UserInfo:
        return UserInfo(
            full_name=_cookie_value(cookies, 'full_name') or None,
            user_id=_cookie_value(cookies, 'user_id') or None,
            is_system_user=_cookie_value(cookies, 'system_user') == 'yes',
            user_image=_cookie_value(cookies, 'user_image') or None,
            workspaces=_json_cookie(cookies, 'workspaces', list),
            permissions=_json_cookie(cookies, 'permissions', dict),
        )


def _cookie_value(cookies: Mapping[str, Any], name: str) -> Optional[str]:
    value = cookies.get(name)
    if value is None:
        return None
    # http.cookies.Morsel / SimpleCookie entries
    return getattr(value, 'value', value)


def _json_cookie(cookies: Mapping[str, Any], name: str, kind: type):
    raw = _cookie_value(cookies, name)
    if not raw:
        return kind()
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning(f"⚠️ Cookie '{name}' is not valid JSON, ignoring")
        return kind()
    return value if isinstance(value, kind) else kind()
