"""
Configuration management for the ClubSync integration service.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    APP_URL = os.getenv('APP_URL', '')
    BASE_DOMAIN = os.getenv('BASE_DOMAIN', 'localhost')
    NGROK_URL = os.getenv('NGROK_URL', '')

    # Commerce7 app credentials
    COMMERCE7_API_URL = os.getenv('COMMERCE7_API_URL', 'https://api.commerce7.com/v1')
    COMMERCE7_APP_NAME = os.getenv('COMMERCE7_APP_NAME', os.getenv('APP_NAME', ''))
    COMMERCE7_API_KEY = os.getenv('COMMERCE7_API_KEY', os.getenv('COMMERCE7_KEY', ''))
    COMMERCE7_TIMEOUT = int(os.getenv('COMMERCE7_TIMEOUT', '30'))

    # Basic auth Commerce7 sends with install callbacks
    COMMERCE7_USER = os.getenv('COMMERCE7_USER', '')
    COMMERCE7_PASSWORD = os.getenv('COMMERCE7_PASSWORD', '')

    # Optional basic auth on inbound webhooks (unset = not enforced)
    COMMERCE7_WEBHOOK_USER = os.getenv('COMMERCE7_WEBHOOK_USER', '')
    COMMERCE7_WEBHOOK_PASSWORD = os.getenv('COMMERCE7_WEBHOOK_PASSWORD', '')

    # Integration account(s) whose writes echo back as webhooks, comma-separated
    COMMERCE7_API_USER = os.getenv('COMMERCE7_API_USER', '')

    # Shopify app credentials
    SHOPIFY_API_KEY = os.getenv('SHOPIFY_API_KEY', '')
    SHOPIFY_API_SECRET = os.getenv('SHOPIFY_API_SECRET', '')
    SHOPIFY_API_VERSION = os.getenv('SHOPIFY_API_VERSION', '2024-10')
    SHOPIFY_SCOPES = os.getenv('SHOPIFY_SCOPES', 'read_customers,write_customers,read_orders,write_discounts')

    # Sessions
    SESSION_TTL_HOURS = int(os.getenv('SESSION_TTL_HOURS', '8'))

    # Development bypass: fake session, no platform handshake
    AUTH_BYPASS = _env_flag('AUTH_BYPASS')

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///clubsync_dev.db'
    )


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False
    AUTH_BYPASS = False

    _db_url = os.getenv('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # SQLAlchemy requires postgresql://
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,
    }

    _secret_key = os.getenv('SECRET_KEY', '')

    @classmethod
    def validate_secret_key(cls) -> str:
        """
        Validate SECRET_KEY in production.

        Raises:
            RuntimeError: If SECRET_KEY is missing or too short
        """
        if not cls._secret_key:
            raise RuntimeError(
                "SECRET_KEY environment variable is not set. "
                "Production deployments must configure a random SECRET_KEY."
            )
        if len(cls._secret_key) < 32:
            raise RuntimeError("SECRET_KEY is too short (minimum 32 characters required)")
        return cls._secret_key

    @classmethod
    def validate_platform_credentials(cls) -> None:
        """Commerce7 calls cannot be made without app credentials."""
        missing = [
            name for name in ('COMMERCE7_APP_NAME', 'COMMERCE7_API_KEY')
            if not getattr(cls, name)
        ]
        if missing:
            raise RuntimeError(f"Missing required settings: {', '.join(missing)}")

    SECRET_KEY = _secret_key


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SECRET_KEY = 'testing-secret'
    COMMERCE7_APP_NAME = 'clubsync-test'
    COMMERCE7_API_KEY = 'c7-test-key'
    COMMERCE7_USER = 'c7-install'
    COMMERCE7_PASSWORD = 'c7-install-pass'
    COMMERCE7_WEBHOOK_USER = ''
    COMMERCE7_WEBHOOK_PASSWORD = ''
    COMMERCE7_API_USER = 'integration@clubsync.test'
    SHOPIFY_API_KEY = 'shp-test-key'
    SHOPIFY_API_SECRET = 'shp-test-secret'
    AUTH_BYPASS = False
    BASE_DOMAIN = 'clubsync.test'


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Validate configuration before app startup.

    Raises:
        RuntimeError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate_secret_key()
        ProductionConfig.validate_platform_credentials()
