"""
Controllers for registration, login, logout, and token refresh.

A successful login or registration opens a new refresh-token family and
issues an access token; both are handed back to the route as cookies to set.
The access token identifies the user on later requests without a database
round trip. When it expires, the client exchanges its refresh token at the
refresh endpoint for a new pair.
"""

from typing import Any, Dict, Optional, Tuple
from http import HTTPStatus as status
import logging

from werkzeug.exceptions import BadRequest, Conflict, Unauthorized, \
    InternalServerError
from retry import retry

from .. import domain, schemas
from ..services import accounts
from ..services.exceptions import AuthenticationFailed, RegistrationFailed, \
    UserExists, InvalidPayload, InvalidToken, NoSuchUser, Unavailable
from ..services.sessions import SessionStore

logger = logging.getLogger(__name__)

ResponseData = Tuple[dict, int, dict]

INVALID_CREDENTIALS = 'Invalid email or password'
INVALID_REFRESH_TOKEN = 'Invalid or expired refresh token'


def register(body: Any) -> ResponseData:
    """
    Create a new account, and log the user in.

    Parameters
    ----------
    body : Any
        Parsed JSON body with ``email``, ``password``, ``firstName`` and
        ``lastName``.

    Returns
    -------
    dict
        Response data, including the ``cookies`` to set.
    int
        Status code.
    dict
        Headers to add to the response.

    """
    try:
        req = schemas.parse(schemas.RegisterRequest, body)
    except InvalidPayload as e:
        raise BadRequest('All fields are required') from e

    try:
        user = _do_register(req.email, req.password, req.firstName,
                            req.lastName)
    except RegistrationFailed as e:
        raise BadRequest(str(e)) from e
    except UserExists as e:
        raise Conflict('User already exists') from e

    pair = _do_create_session(user)
    data = {
        'success': True,
        'message': 'Registration successful',
        'user': pair.user.summary(),
        'cookies': _cookies(pair),
    }
    return data, status.OK, {}


def login(body: Any) -> ResponseData:
    """Log in with e-mail and password."""
    try:
        req = schemas.parse(schemas.LoginRequest, body)
    except InvalidPayload as e:
        raise BadRequest('Email and password are required') from e
    if not req.email or not req.password:
        raise BadRequest('Email and password are required')

    try:
        user = _do_authn(req.email, req.password)
    except AuthenticationFailed as e:
        logger.debug('Authentication failed: %s', e)
        raise Unauthorized(INVALID_CREDENTIALS) from e

    pair = _do_create_session(user)
    data = {
        'success': True,
        'user': pair.user.summary(),
        'cookies': _cookies(pair),
    }
    return data, status.OK, {}


def refresh(refresh_token: Optional[str]) -> ResponseData:
    """
    Rotate a refresh token.

    Every reason for rejecting a token gets the same response, so that the
    endpoint can't be used to learn anything about a guessed token.
    """
    if not refresh_token:
        raise Unauthorized('No refresh token provided')
    sessions = SessionStore.current_session()
    try:
        pair = sessions.rotate(refresh_token)
    except InvalidToken as e:
        logger.info('Refresh rejected: %s', type(e).__name__)
        raise Unauthorized(INVALID_REFRESH_TOKEN) from e
    except Exception as e:
        logger.exception('Token refresh failed')
        raise InternalServerError('Internal server error') from e
    data = {
        'success': True,
        'user': pair.user.summary(),
        'cookies': _cookies(pair),
    }
    return data, status.OK, {}


def logout(refresh_token: Optional[str]) -> ResponseData:
    """Revoke the user's refresh tokens, and clear both cookies."""
    if refresh_token:
        try:
            SessionStore.current_session().invalidate(refresh_token)
        except Unavailable as e:
            logger.error('Could not revoke refresh tokens: %s', e)
    data = {
        'success': True,
        'cookies': {
            'access_token_cookie': ('', 0),
            'refresh_token_cookie': ('', 0),
        }
    }
    return data, status.OK, {}


def get_session(session: Optional[domain.Session]) -> ResponseData:
    """Describe the user of the current session, if any."""
    if session is None:
        return {'user': None}, status.OK, {}
    try:
        user = _do_get_user(session.user_id)
    except NoSuchUser:
        logger.debug('Session user %s no longer exists', session.user_id)
        return {'user': None}, status.OK, {}
    return {'user': user.summary()}, status.OK, {}


def _cookies(pair: domain.TokenPair) -> Dict[str, Tuple[str, int]]:
    sessions = SessionStore.current_session()
    return {
        'access_token_cookie': (pair.access_token, sessions.access_duration),
        'refresh_token_cookie': (pair.refresh_token,
                                 sessions.refresh_duration),
    }


# These are broken out to add retry logic.
@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def _do_register(email: str, password: str, forename: str,
                 surname: str) -> domain.User:
    return accounts.register(email, password, forename, surname)


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def _do_authn(email: str, password: str) -> domain.User:
    return accounts.authenticate(email, password)


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def _do_create_session(user: domain.User) -> domain.TokenPair:
    return SessionStore.current_session().create(user)


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def _do_get_user(user_id: str) -> domain.User:
    return accounts.get_user_by_id(user_id)
