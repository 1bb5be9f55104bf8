import json
import sys
import logging
from pathlib import Path
from typing import Dict, Any, Optional
import os

logger = logging.getLogger(__name__)


def get_app_data_dir():
    """Returns the directory used for config and log files"""
    override = os.getenv('DMS_DASHBOARD_HOME')
    if override:
        app_data_dir = Path(override)
    elif getattr(sys, 'frozen', False):
        if os.name == 'nt':  # Windows
            appdata_dir = Path(os.getenv('LOCALAPPDATA', Path.home() / 'AppData' / 'Local'))
            app_data_dir = appdata_dir / 'DmsDashboard'
        else:  # Linux/Mac
            app_data_dir = Path.home() / '.config' / 'dms_dashboard'
    else:
        # Dev mode
        app_data_dir = Path(__file__).parent.parent / 'app_data'

    app_data_dir.mkdir(parents=True, exist_ok=True)
    return app_data_dir


class ConfigManager:
    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path) if config_path else self._get_config_path()
        self.config = self._load_config()

    def _get_config_path(self) -> Path:
        """Returns the default config file path"""
        return get_app_data_dir() / 'config.json'

    def _get_default_config(self) -> dict:
        """Returns the default configuration"""
        return {
            'backend': {
                'url': 'https://dms.salasah.sa',
                'timeout': None,  # None = transport default
            },

            'gateway': {
                'host': '127.0.0.1',
                'port': 3000,
                'route_prefix': '/proxy',
                'error_status': 502,
                'chunk_size': 64 * 1024,
            },

            'session': {
                'cookie_name': 'sid',
                'guest_value': 'Guest',
            },

            'access_guard': {
                'login_path': '/login',
                'public_prefixes': [
                    '/login',
                    '/proxy/',
                    '/api/',
                    '/static/',
                    '/_next/',
                    '/favicon',
                    '/manifest',
                ],
                'public_exact': ['/'],
            },

            'notifications': {
                'poll_interval': 60,
                'endpoints': {
                    'list': 'dms.api.notifications.get_notifications',
                    'mark_as_read': 'dms.api.notifications.mark_as_read',
                    'mark_all_as_read': 'dms.api.notifications.mark_all_as_read',
                    'delete': 'dms.api.notifications.delete_notification',
                },
            },

            'application': {
                'static_dir': None,
                'manifest': {
                    'name': 'نظام إدارة المستندات | DMS',
                    'short_name': 'DMS',
                    'description': 'نظام إدارة المستندات للمشاريع',
                    'start_url': '/',
                    'display': 'standalone',
                    'background_color': '#ffffff',
                    'theme_color': '#ffffff',
                    'icons': [
                        {'src': '/logo.png', 'sizes': 'any', 'type': 'image/png'},
                    ],
                },
            },

            'logging': {
                'level': 'INFO',
                'max_bytes': 5 * 1024 * 1024,
                'backup_count': 5,
            },
        }

    def _load_config(self) -> Dict[str, Any]:
        """Loads the config file merged over the defaults"""
        default_config = self._get_default_config()

        try:
            if self.config_path.exists():
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    loaded_config = json.load(f)
                    return self._deep_merge(default_config, loaded_config)
        except (OSError, ValueError) as e:
            logger.error(f"❌ Failed to load config {self.config_path}: {e}")

        return default_config

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Recursive dict merge"""
        result = base.copy()

        for key, value in update.items():
            if (key in result and
                    isinstance(result[key], dict) and
                    isinstance(value, dict)):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def save(self) -> bool:
        """Writes the configuration to disk"""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=2, ensure_ascii=False)
            logger.info("Configuration saved")
            return True
        except OSError as e:
            logger.error(f"❌ Failed to save config: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """Gets a value by dot-notation key"""
        value = self.config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any, save: bool = False) -> bool:
        """Sets a value by dot-notation key"""
        keys = key.split('.')
        config_ref = self.config

        for k in keys[:-1]:
            if k not in config_ref or not isinstance(config_ref[k], dict):
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value

        if save:
            return self.save()
        return True

    def get_backend_config(self) -> Dict[str, Any]:
        return self.get('backend', {})

    def get_gateway_config(self) -> Dict[str, Any]:
        return self.get('gateway', {})

    def get_guard_config(self) -> Dict[str, Any]:
        return self.get('access_guard', {})

    def get_notifications_config(self) -> Dict[str, Any]:
        return self.get('notifications', {})


# Singleton for global access
_config_instance = None


def get_config() -> ConfigManager:
    """Returns the global ConfigManager instance"""
    global _config_instance
    if _config_instance is None:
        _config_instance = ConfigManager()
    return _config_instance
