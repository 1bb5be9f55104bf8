import json

from core.api_client import create_api_client
from core.config_manager import ConfigManager
from core.dashboard_server import build_access_guard, build_gateway
from core.notifications.manager import create_notification_manager
from core.session import SessionResolver


def test_defaults_without_file(tmp_path):
    config = ConfigManager(config_path=tmp_path / 'config.json')

    assert config.get('session.cookie_name') == 'sid'
    assert config.get('gateway.route_prefix') == '/proxy'
    assert config.get('notifications.poll_interval') == 60
    assert config.get('backend.timeout') is None
    assert config.get('missing.key', 'fallback') == 'fallback'


def test_file_values_are_merged_over_defaults(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'backend': {'url': 'https://dms.internal'}, 'gateway': {'port': 8080}}))

    config = ConfigManager(config_path=path)

    assert config.get('backend.url') == 'https://dms.internal'
    assert config.get('gateway.port') == 8080
    assert config.get('gateway.error_status') == 502


def test_broken_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text('{not json')

    config = ConfigManager(config_path=path)
    assert config.get('backend.url') == 'https://dms.salasah.sa'


def test_set_and_save_round_trip(tmp_path):
    path = tmp_path / 'nested' / 'config.json'
    config = ConfigManager(config_path=path)

    assert config.set('gateway.error_status', 503, save=True) is True
    assert ConfigManager(config_path=path).get('gateway.error_status') == 503


def test_components_are_built_from_config(tmp_path):
    config = ConfigManager(config_path=tmp_path / 'config.json')
    config.set('backend.url', 'http://backend.test/')
    config.set('gateway.error_status', 503)
    config.set('access_guard.login_path', '/signin')

    gateway = build_gateway(config)
    assert gateway.resolver.resolve(['login']) == 'http://backend.test/api/method/login'
    assert gateway.error_status == 503

    guard = build_access_guard(config, SessionResolver())
    assert guard.decide('/documents', {}).redirect_to == '/signin'


def test_client_side_objects_are_built_from_config(tmp_path):
    config = ConfigManager(config_path=tmp_path / 'config.json')
    config.set('notifications.poll_interval', 30)
    config.set('notifications.endpoints.list', 'custom.list_notifications')
    config.set('session.guest_value', 'anonymous')

    api = create_api_client(config, 'http://127.0.0.1:3000/')
    assert api.base_url == 'http://127.0.0.1:3000/proxy'
    assert api.notification_endpoints['list'] == 'custom.list_notifications'
    assert api.notification_endpoints['delete'] == 'dms.api.notifications.delete_notification'
    assert api.session_resolver.guest_value == 'anonymous'

    manager = create_notification_manager(api, config)
    assert manager.poll_interval == 30
    assert manager.api_client is api
