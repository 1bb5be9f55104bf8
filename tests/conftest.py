import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from core.config_manager import ConfigManager
from core.dashboard_server import create_app

REQUESTS_KEY = web.AppKey('requests', list)

LOGIN_COOKIES = [
    'sid=abc123; Path=/; HttpOnly; SameSite=Lax',
    'system_user=yes; Path=/',
    'full_name=Administrator; Path=/',
    'user_id=Administrator; Path=/',
]


async def _echo(request: web.Request) -> web.Response:
    body = await request.read()
    request.app[REQUESTS_KEY].append({
        'method': request.method,
        'path': request.path,
        'headers': dict(request.headers),
        'body': body,
    })
    response = web.json_response({
        'method': request.method,
        'path': request.path,
        'query': dict(request.query),
        'cookie': request.headers.get('Cookie'),
        'content_type': request.headers.get('Content-Type'),
        'accept': request.headers.get('Accept'),
        'transfer_encoding': request.headers.get('Transfer-Encoding'),
        'header_names': sorted(request.headers.keys()),
        'body_length': len(body),
    })
    response.headers['X-Backend-Secret'] = 'internal'
    return response


async def _login(request: web.Request) -> web.Response:
    credentials = await request.json()
    if credentials.get('pwd') != 'secret':
        return web.json_response({'message': 'Incorrect password'}, status=401)

    response = web.json_response({
        'message': 'Logged In',
        'workspaces': ['Welcome Workspace'],
        'permissions': {'Project': ['read']},
    })
    for cookie in LOGIN_COOKIES:
        response.headers.add('Set-Cookie', cookie)
    return response


async def _logout(request: web.Request) -> web.Response:
    response = web.json_response({})
    response.headers.add('Set-Cookie', 'sid=Guest; Path=/')
    return response


async def _not_found(request: web.Request) -> web.Response:
    return web.json_response({'message': 'Not found'}, status=404)


async def _html_error(request: web.Request) -> web.Response:
    return web.Response(text='<html><body>Bad Gateway</body></html>', status=500, content_type='text/html')


def make_backend_app() -> web.Application:
    """Stands in for the DMS backend: RPC methods under /api/method, REST under /api"""
    app = web.Application(client_max_size=8 * 1024 * 1024)
    app[REQUESTS_KEY] = []
    app.router.add_post('/api/method/login', _login)
    app.router.add_post('/api/method/logout', _logout)
    app.router.add_get('/api/method/missing', _not_found)
    app.router.add_get('/api/method/html', _html_error)
    app.router.add_route('*', '/api/method/{name}', _echo)
    app.router.add_route('*', '/api/{tail:.*}', _echo)
    return app


@pytest_asyncio.fixture
async def backend_server():
    server = TestServer(make_backend_app())
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
def make_config(tmp_path):
    def factory(backend_url: str) -> ConfigManager:
        config = ConfigManager(config_path=tmp_path / 'config.json')
        config.set('backend.url', backend_url)
        return config

    return factory


@pytest_asyncio.fixture
async def dashboard_client(backend_server, make_config):
    config = make_config(f"http://{backend_server.host}:{backend_server.port}")
    client = TestClient(TestServer(create_app(config)))
    await client.start_server()
    yield client
    await client.close()
