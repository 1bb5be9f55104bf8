# core/api_client.py
"""
Dashboard API client.

Talks to the same-origin gateway (/proxy/...) with one aiohttp session whose
cookie jar holds the backend session cookies set on login.
"""

import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from core.session import SessionInfo, SessionResolver, UserInfo

logger = logging.getLogger(__name__)


DEFAULT_NOTIFICATION_ENDPOINTS = {
    'list': 'dms.api.notifications.get_notifications',
    'mark_as_read': 'dms.api.notifications.mark_as_read',
    'mark_all_as_read': 'dms.api.notifications.mark_all_as_read',
    'delete': 'dms.api.notifications.delete_notification',
}


class ApiError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class DashboardApiClient:
    def __init__(self, base_url: str, session_resolver: Optional[SessionResolver] = None,
                 notification_endpoints: Optional[Dict[str, str]] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        """
        Args:
            base_url: Gateway base URL, e.g. http://127.0.0.1:3000/proxy
            session_resolver: Reads the session cookie out of the cookie jar
            notification_endpoints: Backend method names for notification calls
            session: Optional pre-built aiohttp session (owned by the caller)
        """
        self.base_url = base_url.rstrip('/')
        self.session_resolver = session_resolver or SessionResolver()
        self.notification_endpoints = {**DEFAULT_NOTIFICATION_ENDPOINTS, **(notification_endpoints or {})}
        self.session = session
        self._owns_session = session is None

        self.workspaces = []
        self.permissions = {}

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            # unsafe=True keeps cookies for IP hosts like 127.0.0.1
            self.session = aiohttp.ClientSession(cookie_jar=aiohttp.CookieJar(unsafe=True))
        return self.session

    async def close(self):
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None

    async def __aenter__(self):
        await self._get_session()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _request(self, endpoint: str, method: str = 'GET', body: Any = None,
                       params: Optional[Dict[str, str]] = None) -> Any:
        """
        Calls one gateway endpoint.

        Raises:
            ApiError: on a non-2xx status or a transport failure
        """
        session = await self._get_session()
        url = f"{self.base_url}/{endpoint}"
        kwargs = {'headers': {'Accept': 'application/json'}}
        if body is not None:
            kwargs['json'] = body
        if params:
            kwargs['params'] = params

        try:
            async with session.request(method, url, **kwargs) as response:
                data = await response.json(content_type=None)
                if not 200 <= response.status < 300:
                    message = data.get('message') if isinstance(data, dict) else None
                    raise ApiError(message or 'Request failed', status=response.status)
                return data

        except aiohttp.ClientError as e:
            logger.error(f"❌ Request to {endpoint} failed: {e}")
            raise ApiError(f"Request error: {e}") from e

        except ValueError as e:
            logger.error(f"❌ Non-JSON response from {endpoint}: {e}")
            raise ApiError(f"Invalid response: {e}") from e

    # Session

    async def login(self, usr: str, pwd: str) -> bool:
        data = await self._request('login', method='POST', body={'usr': usr, 'pwd': pwd})

        message = data.get('message') if isinstance(data, dict) else None
        if message != 'Logged In':
            logger.error(f"❌ Login failed: {message}")
            return False

        self.workspaces = data.get('workspaces') or []
        self.permissions = data.get('permissions') or {}
        logger.info(f"✅ Logged in as {usr}")
        return True

    async def logout(self):
        """Logs out on the backend; local cookies are dropped even if that fails"""
        try:
            await self._request('logout', method='POST')
        except ApiError as e:
            logger.warning(f"⚠️ Backend logout failed, clearing local session anyway: {e}")

        if self.session:
            self.session.cookie_jar.clear()
        self.workspaces = []
        self.permissions = {}
        logger.info("✅ Logged out")

    def _cookies(self) -> Dict[str, str]:
        if self.session is None:
            return {}
        return {cookie.key: cookie.value for cookie in self.session.cookie_jar}

    def get_session_info(self) -> SessionInfo:
        return self.session_resolver.resolve(self._cookies())

    def get_user(self) -> UserInfo:
        return self.session_resolver.resolve_user(self._cookies())

    def is_authenticated(self) -> bool:
        return self.get_session_info().present

    # Dashboard

    async def get_dashboard_summary(self):
        return await self._request('dms.api.dashboard.get_dashboard_summary')

    async def get_dashboard_data(self, start: int = 0, page_length: int = 20,
                                 filters: Optional[Dict[str, Any]] = None, fetch_meta: int = 1):
        params = {
            'start': str(start),
            'page_length': str(page_length),
            'fetch_meta': str(fetch_meta),
        }
        if filters:
            params['filters'] = json.dumps(filters)
        return await self._request('dms.api.dashboard.get_dashboard_data', params=params)

    async def get_projects_dashboard(self):
        return await self._request('dms.api.dashboard.get_projects_dashboard_data')

    # Notifications

    async def get_notifications(self):
        return await self._request(self.notification_endpoints['list'])

    async def mark_as_read(self, notification_id: str):
        return await self._request(
            self.notification_endpoints['mark_as_read'], method='POST',
            body={'notification_name': notification_id}
        )

    async def mark_all_as_read(self):
        return await self._request(self.notification_endpoints['mark_all_as_read'], method='POST')

    async def delete_notification(self, notification_id: str):
        return await self._request(
            self.notification_endpoints['delete'], method='POST',
            body={'notification_name': notification_id}
        )


def create_api_client(config, origin: str) -> DashboardApiClient:
    """
    Builds a client for the dashboard served at origin, e.g. http://127.0.0.1:3000
    """
    session_config = config.get('session', {})
    prefix = config.get('gateway.route_prefix', '/proxy')
    return DashboardApiClient(
        f"{origin.rstrip('/')}{prefix}",
        session_resolver=SessionResolver(
            cookie_name=session_config.get('cookie_name', 'sid'),
            guest_value=session_config.get('guest_value', 'Guest'),
        ),
        notification_endpoints=config.get_notifications_config().get('endpoints'),
    )
