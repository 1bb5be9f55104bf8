# core/dashboard_server.py
import asyncio
import logging
import threading
import time
from pathlib import Path

from aiohttp import web

from core.access_guard import AccessGuard
from core.config_manager import ConfigManager, get_config
from core.endpoint_resolver import EndpointResolver
from core.gateway import DmsGateway
from core.session import SessionResolver
from utils.port_utils import check_port_availability, get_process_using_port

logger = logging.getLogger(__name__)

GATEWAY_KEY = web.AppKey('gateway', DmsGateway)
SESSION_RESOLVER_KEY = web.AppKey('session_resolver', SessionResolver)
CONFIG_KEY = web.AppKey('config', ConfigManager)


def build_gateway(config: ConfigManager) -> DmsGateway:
    backend = config.get_backend_config()
    gateway_config = config.get_gateway_config()
    return DmsGateway(
        resolver=EndpointResolver(backend['url']),
        error_status=gateway_config.get('error_status', 502),
        timeout=backend.get('timeout'),
        chunk_size=gateway_config.get('chunk_size', 64 * 1024),
    )


def build_access_guard(config: ConfigManager, session_resolver: SessionResolver) -> AccessGuard:
    guard_config = config.get_guard_config()
    public_prefixes = list(guard_config.get('public_prefixes', []))

    # Gateway calls are never redirected, whatever prefix they are mounted under
    gateway_prefix = f"{config.get('gateway.route_prefix', '/proxy').rstrip('/')}/"
    if gateway_prefix not in public_prefixes:
        public_prefixes.append(gateway_prefix)

    return AccessGuard(
        session_resolver,
        login_path=guard_config.get('login_path', '/login'),
        public_prefixes=public_prefixes,
        public_exact=guard_config.get('public_exact', []),
    )


async def login_page(request: web.Request) -> web.Response:
    return web.Response(text="DMS login", content_type='text/html')


async def manifest(request: web.Request) -> web.Response:
    return web.json_response(request.app[CONFIG_KEY].get('application.manifest', {}))


async def dashboard_page(request: web.Request) -> web.StreamResponse:
    """Protected pages; rendering is left to the static frontend bundle"""
    static_dir = request.app[CONFIG_KEY].get('application.static_dir')
    if static_dir:
        index = Path(static_dir) / 'index.html'
        if index.exists():
            return web.FileResponse(index)

    user = request.app[SESSION_RESOLVER_KEY].resolve_user(request.cookies)
    return web.json_response({'path': request.path, 'user': user.full_name})


async def _close_gateway(app: web.Application):
    await app[GATEWAY_KEY].cleanup()


def create_app(config: ConfigManager = None, gateway: DmsGateway = None) -> web.Application:
    """
    Assembles the dashboard application: access guard in front of everything,
    the gateway under its route prefix, login, manifest and pages.
    """
    config = config or get_config()
    session_config = config.get('session', {})
    session_resolver = SessionResolver(
        cookie_name=session_config.get('cookie_name', 'sid'),
        guest_value=session_config.get('guest_value', 'Guest'),
    )
    gateway = gateway or build_gateway(config)
    guard = build_access_guard(config, session_resolver)

    app = web.Application(middlewares=[guard.middleware()])
    app[CONFIG_KEY] = config
    app[GATEWAY_KEY] = gateway
    app[SESSION_RESOLVER_KEY] = session_resolver

    gateway.add_routes(app, config.get('gateway.route_prefix', '/proxy'))
    app.router.add_get(guard.login_path, login_page)
    app.router.add_get('/manifest.json', manifest)

    static_dir = config.get('application.static_dir')
    if static_dir and Path(static_dir).is_dir():
        app.router.add_static('/static/', static_dir)

    app.router.add_get('/{tail:.*}', dashboard_page)
    app.on_cleanup.append(_close_gateway)
    return app


class DashboardServer:
    """Runs the dashboard app on its own event loop in a background thread"""

    def __init__(self, config: ConfigManager = None):
        self.config = config or get_config()
        self.is_running = False
        self.app = None
        self.runner = None
        self.site = None
        self.loop = None
        self.thread = None

        self.host = self.config.get('gateway.host', '127.0.0.1')
        self.port = self.config.get('gateway.port', 3000)

        self.last_error_type = None  # 'port', 'server' or None
        self.last_error_details = None

    def start(self) -> bool:
        """
        Starts the server.

        Returns:
            bool: True if the server is listening
        """
        if self.is_running:
            logger.warning("⚠️ Server is already running")
            return False

        self.last_error_type = None
        self.last_error_details = None

        port_available, port_message = check_port_availability(self.port, self.host)
        if not port_available:
            process_info = get_process_using_port(self.port, self.host)
            if process_info:
                logger.error(
                    f"❌ Port {self.port} is busy\n"
                    f"   PID: {process_info.get('pid')}\n"
                    f"   Name: {process_info.get('name')}\n"
                    f"   User: {process_info.get('username', 'N/A')}"
                )
            self.last_error_type = 'port'
            self.last_error_details = port_message
            return False

        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self._run_server, daemon=True)
        self.thread.start()

        # Wait up to 5 seconds for the site to come up
        for _ in range(50):
            if self.is_running or self.last_error_type:
                break
            time.sleep(0.1)

        if not self.is_running:
            if self.last_error_type:
                # Startup failed inside the thread, which exits by itself
                self.thread.join(timeout=5)
            else:
                logger.error("❌ Server did not start in time")
            self.stop()
            return False

        logger.info(f"✅ Dashboard server started on http://{self.host}:{self.port}")
        return True

    def _run_server(self):
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_until_complete(self._start_server())
            if self.is_running:
                self.loop.run_forever()
        finally:
            self.loop.close()

    async def _start_server(self):
        try:
            self.app = create_app(self.config)
            self.runner = web.AppRunner(self.app, access_log=None)
            await self.runner.setup()

            self.site = web.TCPSite(self.runner, host=self.host, port=self.port)
            await self.site.start()
            self.is_running = True
            logger.info(f"✅ Listening on port {self.port}, backend {self.config.get('backend.url')}")

        except (OSError, ValueError) as e:
            # ValueError: bad configuration, e.g. an empty backend.url
            logger.error(f"❌ Failed to start server: {e}")
            self.last_error_type = 'server'
            self.last_error_details = str(e)
            self.is_running = False
            if self.runner:
                await self.runner.cleanup()
                self.runner = None

    def stop(self):
        """Stops the server and waits for its thread"""
        if self.loop and self.loop.is_running():
            logger.info("🛑 Stopping dashboard server...")
            future = asyncio.run_coroutine_threadsafe(self._stop_server(), self.loop)
            future.result(timeout=10)
            self.loop.call_soon_threadsafe(self.loop.stop)

        if self.thread and self.thread.is_alive():
            self.thread.join(timeout=5)

        if self.is_running:
            stats = self.get_gateway_stats() or {}
            logger.info(
                f"📊 Session statistics:\n"
                f"   Total requests: {stats.get('requests', 0)}\n"
                f"   Total responses: {stats.get('responses', 0)}\n"
                f"   Errors: {stats.get('errors', 0)}"
            )
        self.is_running = False
        logger.info("✅ Dashboard server stopped")

    async def _stop_server(self):
        # runner.cleanup() also closes the gateway client session (on_cleanup)
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()

    def get_gateway_stats(self):
        if self.app is None:
            return None
        return self.app[GATEWAY_KEY].get_full_stats()

    def get_status(self):
        status = {
            'running': self.is_running,
            'host': self.host,
            'port': self.port,
            'backend_url': self.config.get('backend.url'),
        }
        if self.last_error_type:
            status['error'] = {'type': self.last_error_type, 'details': self.last_error_details}
        if self.is_running:
            status['gateway_stats'] = self.get_gateway_stats()
        return status
