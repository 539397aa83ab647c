"""
Fixed-window rate limiting, backed by a shared counter store.

Counters live in redis so that every worker process sees the same counts.
If the store cannot be reached the request is allowed and the error logged.
"""

from typing import NamedTuple, Optional, Tuple
import logging

import fakeredis
import redis
from flask import Flask, g, current_app

logger = logging.getLogger(__name__)


class RateLimitResult(NamedTuple):
    """Outcome of counting one request against a limit."""

    allowed: bool
    limit: int
    remaining: int
    reset: int
    """Seconds until the current window closes."""


class CounterStore(object):
    """A counter with a time-to-live."""

    def incr(self, key: str, ttl: int) -> Tuple[int, int]:
        """
        Increment ``key``, starting a ``ttl``-second window if it is new.

        Returns
        -------
        int
            The count in the current window, including this increment.
        int
            Seconds until the window closes.

        """
        raise NotImplementedError('Must be implemented by a child class')


class RedisCounterStore(CounterStore):
    """Counters kept in redis."""

    def __init__(self, r: redis.Redis) -> None:
        self.r = r

    def incr(self, key: str, ttl: int) -> Tuple[int, int]:
        pipe = self.r.pipeline()
        pipe.incr(key)
        pipe.expire(key, ttl, nx=True)
        pipe.ttl(key)
        count, _, remaining_ttl = pipe.execute()
        if remaining_ttl is None or remaining_ttl < 0:
            remaining_ttl = ttl
        return int(count), int(remaining_ttl)


class RateLimiter(object):
    """Allows ``limit`` requests per key in each ``interval`` seconds."""

    def __init__(self, store: CounterStore, name: str, limit: int,
                 interval: int) -> None:
        self.store = store
        self.name = name
        self.limit = limit
        self.interval = interval

    def hit(self, key: str) -> RateLimitResult:
        """Count a request from ``key`` and decide whether to allow it."""
        try:
            count, reset = self.store.incr(f'rl:{self.name}:{key}',
                                           self.interval)
        except redis.exceptions.RedisError as e:
            logger.error('Rate limit store unavailable, allowing: %s', e)
            return RateLimitResult(True, self.limit, self.limit,
                                   self.interval)
        remaining = max(0, self.limit - count)
        return RateLimitResult(count <= self.limit, self.limit, remaining,
                               reset)


def get_redis(app: Optional[Flask] = None) -> redis.Redis:
    """Get a redis connection using the application configuration."""
    config = (app or current_app).config
    if config.get('REDIS_FAKE'):
        logger.debug('Using fake redis for rate limit counters')
        return fakeredis.FakeStrictRedis(server=fakeredis.FakeServer())
    host = config.get('REDIS_HOST', 'localhost')
    port = int(config.get('REDIS_PORT', '6379'))
    db = int(config.get('REDIS_DATABASE', '0'))
    logger.debug('New Redis connection at %s, port %s', host, port)
    return redis.StrictRedis(host=host, port=port, db=db,
                             socket_timeout=1, socket_connect_timeout=1)


def init_app(app: Flask) -> None:
    """Set default configuration parameters for an application instance."""
    app.config.setdefault('RATE_LIMIT_ENABLED', True)
    app.config.setdefault('LOGIN_RATE_LIMIT', 5)
    app.config.setdefault('LOGIN_RATE_INTERVAL', 60)
    app.config.setdefault('REGISTER_RATE_LIMIT', 3)
    app.config.setdefault('REGISTER_RATE_INTERVAL', 3600)


def current_store() -> CounterStore:
    """Get/create the :class:`.CounterStore` of the current application."""
    # One connection pool per app; each fake redis has its own server.
    extensions = current_app.extensions
    if 'herit.counter_store' not in extensions:
        extensions['herit.counter_store'] = RedisCounterStore(get_redis())
    store: CounterStore = extensions['herit.counter_store']
    return store


def get_limiter(name: str) -> RateLimiter:
    """Get the limiter configured as ``<NAME>_RATE_LIMIT``/``_INTERVAL``."""
    if 'rate_limiters' not in g:
        g.rate_limiters = {}
    if name not in g.rate_limiters:
        config = current_app.config
        g.rate_limiters[name] = RateLimiter(
            current_store(), name,
            int(config[f'{name.upper()}_RATE_LIMIT']),
            int(config[f'{name.upper()}_RATE_INTERVAL'])
        )
    return g.rate_limiters[name]  # type: ignore
