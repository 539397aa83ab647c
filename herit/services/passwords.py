"""Password hashing."""

import bcrypt

from .exceptions import AuthenticationFailed

MAX_PASSWORD_BYTES = 72
"""bcrypt only uses the first 72 bytes, and refuses longer input."""


def too_long(password: str) -> bool:
    """Whether ``password`` is longer than bcrypt accepts."""
    return len(password.encode('utf-8')) > MAX_PASSWORD_BYTES


def hash_password(password: str) -> str:
    """Generate a secure (bcrypt) hash of a password."""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()) \
        .decode('ascii')


def check_password(password: str, encrypted: str) -> None:
    """Check a password against an encrypted hash."""
    if not encrypted or too_long(password) \
            or not bcrypt.checkpw(password.encode('utf-8'),
                                  encrypted.encode('ascii')):
        raise AuthenticationFailed('Incorrect password')
