import copy
import os
import yaml
import logging

logger = logging.getLogger(__name__)

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Default configuration matching config.yaml.example
DEFAULT_CONFIG = {
    'server': {
        'env': 'development',
        'host': '0.0.0.0',
        'port': 3000,
        'base_url': '',
        'public_dir': os.path.join(PROJECT_ROOT, 'public'),
        'allowed_origins': ['http://localhost:3000', 'http://localhost:8000'],
    },
    'session': {
        'ttl_seconds': 28800,        # 8 hours
        'cookie_name': 'sid',
        'visitor_cookie_name': 'vid',
        'visitor_max_age': 365 * 24 * 3600,
        'redis_url': '',             # Empty means process-local store
    },
    'oauth': {
        'github_client_id': '',
        'github_client_secret': '',
        'admin_users': [],           # Empty means any GitHub user may log in
        'callback_url': '',
        'user_agent': 'Portfolio-Site/1.0',
        'state_ttl_seconds': 600,
    },
    'storage': {
        'database_url': '',          # Empty means JSON file storage
        'projects_file': os.path.join(PROJECT_ROOT, 'data', 'projects.json'),
    },
    'metrics': {
        'default_days': 7,
        'max_days': 365,
        'top_pages': 5,
    },
    'rate_limit': {
        'enabled': True,
        'login': '10/minute',
        'beacon': '120/minute',
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'log_dir': os.path.join(PROJECT_ROOT, 'logs'),
    },
}


def _as_bool(value):
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _as_list(value):
    return [item.strip() for item in str(value).split(',') if item.strip()]


# Environment variable -> (section, key, cast)
ENV_OVERRIDES = {
    'APP_ENV': ('server', 'env', str),
    'HOST': ('server', 'host', str),
    'PORT': ('server', 'port', int),
    'BASE_URL': ('server', 'base_url', str),
    'PUBLIC_DIR': ('server', 'public_dir', str),
    'ALLOWED_ORIGINS': ('server', 'allowed_origins', _as_list),
    'SESSION_TTL_SECONDS': ('session', 'ttl_seconds', int),
    'REDIS_URL': ('session', 'redis_url', str),
    'GITHUB_CLIENT_ID': ('oauth', 'github_client_id', str),
    'GITHUB_CLIENT_SECRET': ('oauth', 'github_client_secret', str),
    'ADMIN_GITHUB_USER': ('oauth', 'admin_users', _as_list),
    'OAUTH_REDIRECT_URI': ('oauth', 'callback_url', str),
    'GITHUB_CALLBACK_URL': ('oauth', 'callback_url', str),
    'USER_AGENT': ('oauth', 'user_agent', str),
    'DATABASE_URL': ('storage', 'database_url', str),
    'PROJECTS_FILE': ('storage', 'projects_file', str),
    'RATE_LIMIT_ENABLED': ('rate_limit', 'enabled', _as_bool),
    'LOG_LEVEL': ('logging', 'level', str),
    'LOG_DIR': ('logging', 'log_dir', str),
}


class Config:
    _instance = None
    _config = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._load_config()
        return cls._instance

    def _load_config(self):
        """Load defaults, then config.yaml, then environment overrides."""
        self._config = copy.deepcopy(DEFAULT_CONFIG)

        config_path = os.getenv('PORTFOLIO_CONFIG', os.path.join(PROJECT_ROOT, 'config.yaml'))

        if os.path.exists(config_path):
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    user_config = yaml.safe_load(f)
                    if user_config:
                        self._merge_config(self._config, user_config)
                logger.info(f"Loaded configuration from {config_path}")
            except Exception as e:
                logger.error(f"Failed to load config.yaml: {e}. Using defaults.")
        else:
            logger.info("config.yaml not found. Using default configuration.")

        self._apply_env(self._config, os.environ)

    def _merge_config(self, default, user):
        """Recursively merge dictionary user_config into default_config."""
        for key, value in user.items():
            if isinstance(value, dict) and key in default and isinstance(default[key], dict):
                self._merge_config(default[key], value)
            else:
                default[key] = value

    def _apply_env(self, target, environ):
        for name, (section, key, cast) in ENV_OVERRIDES.items():
            raw = environ.get(name)
            if raw is None or raw == '':
                continue
            try:
                target[section][key] = cast(raw)
            except ValueError:
                logger.warning(f"Ignoring invalid value for {name}: {raw!r}")

    def reload(self):
        """Re-read config.yaml and the environment."""
        self._load_config()
        return self

    def get(self, section, key=None, default=None):
        """
        Get a configuration value.
        Usage: config.get('oauth', 'user_agent') or config.get('oauth')
        """
        if section not in self._config:
            return default

        if key is None:
            return self._config[section]

        return self._config[section].get(key, default)

    @property
    def is_production(self):
        return self.get('server', 'env') == 'production'

# Global accessor
config = Config()
