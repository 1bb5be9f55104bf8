import socket

import pytest
import requests
from aiohttp.test_utils import unused_port

from core.config_manager import ConfigManager
from core.dashboard_server import DashboardServer
from utils.port_utils import check_port_availability


@pytest.fixture
def server(tmp_path):
    config = ConfigManager(config_path=tmp_path / 'config.json')
    config.set('gateway.port', unused_port())
    config.set('backend.url', f'http://127.0.0.1:{unused_port()}')
    server = DashboardServer(config)
    yield server
    server.stop()


def test_server_starts_and_stops(server):
    assert server.start() is True
    assert server.get_status()['running'] is True

    base = f'http://127.0.0.1:{server.port}'
    response = requests.get(f'{base}/dashboard', allow_redirects=False, timeout=5)
    assert response.status_code == 302
    assert response.headers['Location'] == '/login'

    response = requests.get(f'{base}/proxy/dms.api.ping', timeout=5)
    assert response.status_code == 502
    assert response.json()['message'] == 'Backend unavailable'
    assert server.get_gateway_stats()['errors'] == 1

    server.stop()
    assert server.get_status()['running'] is False


def test_busy_port_is_reported(server):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
        blocker.bind(('127.0.0.1', server.port))
        blocker.listen()

        available, message = check_port_availability(server.port)
        assert available is False
        assert str(server.port) in message

        assert server.start() is False
        assert server.get_status()['error']['type'] == 'port'


def test_server_starts_after_a_failed_attempt(server):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
        blocker.bind(('127.0.0.1', server.port))
        blocker.listen()
        assert server.start() is False

    assert server.start() is True
    assert 'error' not in server.get_status()


def test_port_check_uses_the_configured_host(tmp_path, monkeypatch):
    config = ConfigManager(config_path=tmp_path / 'config.json')
    config.set('gateway.host', '0.0.0.0')
    config.set('gateway.port', unused_port())
    server = DashboardServer(config)

    checked = []

    def fake_check(port, host='127.0.0.1'):
        checked.append((port, host))
        return False, f"Port {port} on {host} is busy"

    monkeypatch.setattr('core.dashboard_server.check_port_availability', fake_check)
    monkeypatch.setattr('core.dashboard_server.get_process_using_port', lambda port, host=None: None)

    assert server.start() is False
    assert checked == [(server.port, '0.0.0.0')]
    assert server.get_status()['error']['details'] == f"Port {server.port} on 0.0.0.0 is busy"


def test_free_port_is_reported_for_its_host():
    port = unused_port()
    available, message = check_port_availability(port, '127.0.0.1')
    assert available is True
    assert message == f"127.0.0.1:{port} is free"


def test_bad_configuration_is_reported_as_server_error(server):
    server.config.set('backend.url', '')

    assert server.start() is False
    error = server.get_status()['error']
    assert error['type'] == 'server'
    assert 'Backend base URL is required' in error['details']
