"""Functions for encoding and decoding access and refresh tokens."""

from typing import Tuple
from datetime import datetime, timedelta
import uuid

import jwt
from pytz import UTC

from .. import domain
from .exceptions import InvalidToken, ExpiredToken

ACCESS = 'access'
REFRESH = 'refresh'


def encode_access(user_id: str, email: str, session_version: int,
                  secret: str, duration: int) -> Tuple[str, domain.Session]:
    """Encode an access token carrying the user's identity."""
    issued_at = datetime.now(tz=UTC)
    end_time = issued_at + timedelta(seconds=duration)
    token = jwt.encode({
        'user_id': user_id,
        'email': email,
        'session_version': session_version,
        'type': ACCESS,
        'iat': issued_at,
        'exp': end_time,
    }, secret, algorithm='HS256')
    session = domain.Session(user_id=user_id, email=email,
                             session_version=session_version,
                             issued_at=issued_at, end_time=end_time)
    return token, session


def decode_access(token: str, secret: str) -> domain.Session:
    """Decode an access token to access session information."""
    data = _decode(token, secret, ACCESS)
    try:
        return domain.Session(
            user_id=data['user_id'],
            email=data['email'],
            session_version=int(data['session_version']),
            issued_at=datetime.fromtimestamp(data['iat'], tz=UTC),
            end_time=datetime.fromtimestamp(data['exp'], tz=UTC),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidToken('Token payload malformed') from e


def encode_refresh(user_id: str, family: str, secret: str,
                   duration: int) -> Tuple[str, datetime]:
    """
    Encode a refresh token.

    Every refresh token carries a unique ``jti`` so that two tokens issued in
    the same second never collide.

    Returns
    -------
    str
        The encoded token.
    :class:`datetime`
        When the token expires.

    """
    issued_at = datetime.now(tz=UTC)
    expires = issued_at + timedelta(seconds=duration)
    token = jwt.encode({
        'user_id': user_id,
        'family': family,
        'jti': str(uuid.uuid4()),
        'type': REFRESH,
        'iat': issued_at,
        'exp': expires,
    }, secret, algorithm='HS256')
    return token, expires


def decode_refresh(token: str, secret: str) -> Tuple[str, str]:
    """Decode a refresh token, returning the user ID and token family."""
    data = _decode(token, secret, REFRESH)
    try:
        return str(data['user_id']), str(data['family'])
    except KeyError as e:
        raise InvalidToken('Token payload malformed') from e


def _decode(token: str, secret: str, token_type: str) -> dict:
    try:
        data: dict = jwt.decode(token, secret, algorithms=['HS256'],
                                options={'require': ['exp', 'iat']})
    except jwt.exceptions.ExpiredSignatureError as e:
        raise ExpiredToken('Token has expired') from e
    except jwt.exceptions.InvalidTokenError as e:
        raise InvalidToken('Not a valid token') from e
    if data.get('type') != token_type:
        raise InvalidToken(f'Not a valid {token_type} token')
    return data
