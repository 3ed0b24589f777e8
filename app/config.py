"""
Configuration management for the BarberBook platform.

Values come from the environment (a local .env is loaded first). Business
constants that are not meant to vary per deployment (tolerance window, code
lengths, redemption TTL) live with their models instead.
"""
import os
import logging
from decimal import Decimal
from typing import List

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Substrings that mark a SECRET_KEY as a placeholder
PLACEHOLDER_WORDS = ('dev', 'change', 'default', 'test', 'secret', 'password')
MIN_SECRET_KEY_LENGTH = 32


def _database_url(default: str = '') -> str:
    """DATABASE_URL with Heroku-style postgres:// rewritten for SQLAlchemy."""
    url = os.getenv('DATABASE_URL', default)
    if url.startswith('postgres://'):
        url = 'postgresql://' + url[len('postgres://'):]
    return url


def _csv(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(',') if item.strip()]


class BaseConfig:
    """Settings shared by every environment."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Online bookings prepay this share of the service price via PIX
    PREPAYMENT_RATE = Decimal(os.getenv('PREPAYMENT_RATE', '0.50'))
    # How long a pending_payment reservation holds its slot
    PAYMENT_HOLD_MINUTES = int(os.getenv('PAYMENT_HOLD_MINUTES', '15'))

    # Payment providers; a tenant's own credentials in settings['payments'] win
    MERCADO_PAGO_API_URL = os.getenv('MERCADO_PAGO_API_URL', 'https://api.mercadopago.com')
    MERCADO_PAGO_ACCESS_TOKEN = os.getenv('MERCADO_PAGO_ACCESS_TOKEN')
    MERCADO_PAGO_WEBHOOK_SECRET = os.getenv('MERCADO_PAGO_WEBHOOK_SECRET')
    STRIPE_SECRET_KEY = os.getenv('STRIPE_SECRET_KEY')
    STRIPE_WEBHOOK_SECRET = os.getenv('STRIPE_WEBHOOK_SECRET')

    # WUZAPI instance used for client WhatsApp messages
    WHATSAPP_API_URL = os.getenv('WHATSAPP_API_URL', 'https://weeb.inoovaweb.com.br').rstrip('/')

    CORS_ORIGINS = _csv('CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173')


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url('sqlite:///barberbook_dev.db')


class ProductionConfig(BaseConfig):
    DEBUG = False
    SECRET_KEY = os.getenv('SECRET_KEY', '')
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,
    }


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    CACHE_TYPE = 'SimpleCache'
    MERCADO_PAGO_ACCESS_TOKEN = 'TEST-access-token'
    MERCADO_PAGO_WEBHOOK_SECRET = None
    STRIPE_SECRET_KEY = 'sk_test_barberbook'
    STRIPE_WEBHOOK_SECRET = 'whsec_test'
    WHATSAPP_API_URL = 'https://whatsapp.test'


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def secret_key_problems(key: str) -> List[str]:
    """Reasons a SECRET_KEY is unfit for production (empty list when fine)."""
    if not key:
        return ['SECRET_KEY is not set']

    problems = []
    lowered = key.lower()
    problems.extend(
        f"SECRET_KEY contains the placeholder word '{word}'"
        for word in PLACEHOLDER_WORDS if word in lowered
    )
    if len(key) < MIN_SECRET_KEY_LENGTH:
        problems.append(f'SECRET_KEY is shorter than {MIN_SECRET_KEY_LENGTH} characters')
    return problems


def validate_config(config_name: str = 'development') -> None:
    """
    Fail fast on a production deployment that cannot run safely.

    Raises:
        RuntimeError: listing every problem found
    """
    if config_name != 'production':
        return

    problems = secret_key_problems(ProductionConfig.SECRET_KEY)
    if not ProductionConfig.SQLALCHEMY_DATABASE_URI:
        problems.append('DATABASE_URL is not set')

    if problems:
        raise RuntimeError(
            'Invalid production configuration:\n  - ' + '\n  - '.join(problems) +
            '\nGenerate a key with: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not ProductionConfig.MERCADO_PAGO_WEBHOOK_SECRET:
        logger.warning('MERCADO_PAGO_WEBHOOK_SECRET not set; Mercado Pago webhooks are accepted unsigned')
