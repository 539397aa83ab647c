"""Flask configuration."""
import secrets
import os

#################### General config for app ####################
HERIT_ENV = os.environ.get('HERIT_ENV', 'development')
"""Deployment environment. ``production`` turns on secure cookies."""

SECRET_KEY = os.environ.get('SECRET_KEY', secrets.token_urlsafe(16))
"""Sets the `Flask` secret key. Not directly used by the token service."""

VERSION = '0.3'
APP_VERSION = '0.3'
"""The application version."""

LOGLEVEL = int(os.environ.get('LOGLEVEL', 20))
"""Root log level, see :mod:`herit.app_logging`."""


#################### JWT session configs ####################
JWT_SECRET = os.environ.get('JWT_SECRET', secrets.token_urlsafe(32))
"""Secret used to sign access tokens."""

REFRESH_SECRET = os.environ.get('REFRESH_SECRET', JWT_SECRET)
"""Secret used to sign refresh tokens. Falls back to `JWT_SECRET`."""

ACCESS_TOKEN_COOKIE_NAME = os.environ.get('ACCESS_TOKEN_COOKIE_NAME',
                                          'herit_access_token')
REFRESH_TOKEN_COOKIE_NAME = os.environ.get('REFRESH_TOKEN_COOKIE_NAME',
                                           'herit_refresh_token')

ACCESS_TOKEN_DURATION = int(os.environ.get('ACCESS_TOKEN_DURATION', '86400'))
"""Lifetime of an access token and its cookie, in seconds (24 hours)."""

REFRESH_TOKEN_DURATION = int(os.environ.get('REFRESH_TOKEN_DURATION',
                                            '2592000'))
"""Lifetime of a refresh token and its cookie, in seconds (30 days)."""

AUTH_SESSION_COOKIE_SECURE = bool(int(os.environ.get(
    'AUTH_SESSION_COOKIE_SECURE',
    '1' if HERIT_ENV == 'production' else '0'
)))
AUTH_SESSION_COOKIE_SAMESITE = os.environ.get('AUTH_SESSION_COOKIE_SAMESITE',
                                              'Lax')


#################### Database ####################
SQLALCHEMY_DATABASE_URI = os.environ.get('SQLALCHEMY_DATABASE_URI',
                                         'sqlite:///herit.db')
SQLALCHEMY_TRACK_MODIFICATIONS = False

CREATE_DB = bool(int(os.environ.get('CREATE_DB', 0)))


#################### Onboarding ####################
ONBOARDING_STEP_POLICY = os.environ.get('ONBOARDING_STEP_POLICY', 'any-order')
"""Either ``any-order`` or ``strict-sequential``.

With ``strict-sequential`` a step is accepted only once every earlier step
has been completed.
"""


#################### Rate limiting ####################
REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')

REDIS_FAKE = bool(int(os.environ.get('REDIS_FAKE', '0')))
"""Use the FakeRedis library instead of a redis service.

Useful for testing and local development."""

RATE_LIMIT_ENABLED = bool(int(os.environ.get('RATE_LIMIT_ENABLED', '1')))

LOGIN_RATE_LIMIT = int(os.environ.get('LOGIN_RATE_LIMIT', '5'))
LOGIN_RATE_INTERVAL = int(os.environ.get('LOGIN_RATE_INTERVAL', '60'))
REGISTER_RATE_LIMIT = int(os.environ.get('REGISTER_RATE_LIMIT', '3'))
REGISTER_RATE_INTERVAL = int(os.environ.get('REGISTER_RATE_INTERVAL', '3600'))
