"""
Per-tenant lookup cache for BarberBook.

Backed by Flask-Caching: Redis when REDIS_URL answers a ping, otherwise a
NullCache, so every worker reads fresh rows and an invalidate() is never
missed by another process. Only small, rarely-written tenant data goes here
(loyalty configuration). Readers go through get_or_load(); whoever writes
the underlying row calls invalidate() right after committing.

Usage:
    from app.utils.cache import cache_key, get_or_load, invalidate

    key = cache_key('loyalty_config', tenant_id=1)
    config = get_or_load(key, lambda: load_config(1), timeout=300)
    ...
    invalidate(key)
"""
import os
import logging
from typing import Any, Callable

from flask_caching import Cache

logger = logging.getLogger(__name__)

cache = Cache()

DEFAULT_TIMEOUT = 300  # seconds
KEY_PREFIX = 'barberbook:'


def _redis_reachable(redis_url: str) -> bool:
    try:
        import redis
        redis.from_url(redis_url, socket_connect_timeout=2).ping()
        return True
    except Exception as e:
        logger.warning('Redis at %s unreachable (%s), caching disabled',
                       redis_url.split('@')[-1], e)
        return False


def init_cache(app) -> str:
    """
    Bind the cache to the app and pick its backend.

    A CACHE_TYPE already present in the app config (TestingConfig sets a
    single-process SimpleCache) is used as is.

    Returns:
        The backend in use ('RedisCache', 'NullCache' or the preset type)
    """
    app.config.setdefault('CACHE_DEFAULT_TIMEOUT', DEFAULT_TIMEOUT)

    if not app.config.get('CACHE_TYPE'):
        redis_url = os.getenv('REDIS_URL')
        if redis_url and _redis_reachable(redis_url):
            app.config['CACHE_TYPE'] = 'RedisCache'
            app.config['CACHE_REDIS_URL'] = redis_url
            app.config['CACHE_KEY_PREFIX'] = KEY_PREFIX
        else:
            app.config['CACHE_TYPE'] = 'NullCache'
            app.config.setdefault('CACHE_NO_NULL_WARNING', True)

    cache.init_app(app)
    logger.info('Cache backend: %s', app.config['CACHE_TYPE'])
    return app.config['CACHE_TYPE']


def cache_key(*args, **kwargs) -> str:
    """
    Build a key from positional parts and sorted keyword parts.

        cache_key('loyalty_config', tenant_id=123) -> 'loyalty_config:tenant_id=123'
    """
    parts = [str(a) for a in args]
    parts.extend(f'{k}={v}' for k, v in sorted(kwargs.items()))
    return ':'.join(parts)


def get_or_load(key: str, loader: Callable[[], Any], timeout: int = DEFAULT_TIMEOUT) -> Any:
    """Cached value for key, calling loader and storing its result on a miss."""
    value = cache.get(key)
    if value is None:
        value = loader()
        cache.set(key, value, timeout=timeout)
    return value


def invalidate(key: str) -> None:
    cache.delete(key)
