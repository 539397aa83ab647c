"""
Issues, validates, and rotates access/refresh token pairs.

An access token is a signed, short-lived JWT that identifies the user without
a database round trip. A refresh token is long-lived and single-use: each
rotation revokes it and issues a successor in the same *family*. Only the
SHA-256 digest of a refresh token is stored, in :class:`.DBRefreshToken`.

Presenting a refresh token that has already been rotated is treated as a
replay. Since either the legitimate client or a thief may be holding the
successor, the whole family is revoked and the user has to log in again.
"""

from typing import Optional
import logging
import uuid

from flask import Flask, g, current_app
from sqlalchemy.orm.session import Session as DBSession

from .. import domain
from . import accounts, tokens
from .exceptions import InvalidToken, ExpiredToken, TokenReplayed, NoSuchUser
from .models import DBRefreshToken, DBUser
from .util import transaction, now, as_utc, sha256_hex

logger = logging.getLogger(__name__)


class SessionStore(object):
    """Token issuance and rotation, configured from the Flask app."""

    def __init__(self, secret: str, refresh_secret: str,
                 access_duration: int = 86400,
                 refresh_duration: int = 2592000) -> None:
        self._secret = secret
        self._refresh_secret = refresh_secret
        self.access_duration = access_duration
        self.refresh_duration = refresh_duration

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Set default configuration parameters for an application instance."""
        app.config.setdefault('ACCESS_TOKEN_DURATION', 86400)
        app.config.setdefault('REFRESH_TOKEN_DURATION', 2592000)
        app.config.setdefault('REFRESH_SECRET', app.config.get('JWT_SECRET'))

    @classmethod
    def get_session(cls, app: Optional[Flask] = None) -> 'SessionStore':
        """Get a new session store using the application configuration."""
        config = (app or current_app).config
        return cls(config['JWT_SECRET'],
                   config.get('REFRESH_SECRET') or config['JWT_SECRET'],
                   int(config.get('ACCESS_TOKEN_DURATION', 86400)),
                   int(config.get('REFRESH_TOKEN_DURATION', 2592000)))

    @classmethod
    def current_session(cls) -> 'SessionStore':
        """Get/create a :class:`.SessionStore` for this context."""
        if not g:
            return cls.get_session()
        if 'session_store' not in g:
            g.session_store = cls.get_session()
        return g.session_store  # type: ignore

    def create(self, user: domain.User) -> domain.TokenPair:
        """
        Open a new token family for a user who just logged in or registered.

        Parameters
        ----------
        user : :class:`domain.User`

        Returns
        -------
        :class:`domain.TokenPair`

        """
        family = str(uuid.uuid4())
        with transaction() as session:
            db_user = accounts.get_db_user(user.user_id, session)
            pair = self._issue(db_user, family, session)
        logger.debug('Opened token family %s for user %s', family,
                     user.user_id)
        return pair

    def rotate(self, refresh_token: str) -> domain.TokenPair:
        """
        Exchange a refresh token for a new access/refresh pair.

        The presented token is revoked, and the new refresh token belongs to
        the same family.

        Raises
        ------
        :class:`InvalidToken`
            The token is forged, malformed, unknown, or its user is gone.
        :class:`ExpiredToken`
            The token has expired.
        :class:`TokenReplayed`
            The token was already rotated. Its family is now revoked.

        """
        user_id, family = tokens.decode_refresh(refresh_token,
                                                self._refresh_secret)
        token_hash = sha256_hex(refresh_token)
        with transaction() as session:
            record: Optional[DBRefreshToken] = session.query(DBRefreshToken) \
                .filter(DBRefreshToken.token_hash == token_hash) \
                .filter(DBRefreshToken.family == family) \
                .first()
            if record is None or record.user_id != user_id:
                raise InvalidToken('Unknown refresh token')
            revoked = record.revoked
            expired = as_utc(record.expires_at) <= now()

        if revoked:
            logger.warning('Refresh token replayed; revoking family %s',
                           family)
            self.revoke_family(family)
            raise TokenReplayed('Refresh token was already used')
        if expired:
            raise ExpiredToken('Refresh token has expired')

        with transaction() as session:
            try:
                db_user = accounts.get_db_user(user_id, session)
            except NoSuchUser as e:
                raise InvalidToken('Token user no longer exists') from e

            # Only one rotation can flip the flag; a loser sees zero rows.
            claimed = session.query(DBRefreshToken) \
                .filter(DBRefreshToken.token_hash == token_hash) \
                .filter(DBRefreshToken.revoked.is_(False)) \
                .update({'revoked': True, 'revoked_at': now()},
                        synchronize_session=False)
            if claimed:
                pair = self._issue(db_user, family, session)

        if not claimed:
            logger.warning('Concurrent rotation detected; revoking family %s',
                           family)
            self.revoke_family(family)
            raise TokenReplayed('Refresh token was already used')
        logger.debug('Rotated refresh token in family %s', family)
        return pair

    def load(self, access_token: str) -> domain.Session:
        """
        Load the session described by an access token.

        Raises
        ------
        :class:`InvalidToken`
        :class:`ExpiredToken`

        """
        session = tokens.decode_access(access_token, self._secret)
        if session.expired:
            raise ExpiredToken('Session has expired')
        return session

    def invalidate(self, refresh_token: str) -> None:
        """Revoke every refresh token of the user who holds ``refresh_token``."""
        try:
            user_id, _ = tokens.decode_refresh(refresh_token,
                                               self._refresh_secret)
        except InvalidToken as e:
            # An expired token still names its user, but we can't trust it.
            logger.debug('Ignoring undecodable refresh token: %s', e)
            return
        self.revoke_user(user_id)

    def revoke_user(self, user_id: str) -> int:
        """Revoke all refresh tokens of a user."""
        with transaction() as session:
            count: int = session.query(DBRefreshToken) \
                .filter(DBRefreshToken.user_id == user_id) \
                .filter(DBRefreshToken.revoked.is_(False)) \
                .update({'revoked': True, 'revoked_at': now()},
                        synchronize_session=False)
            session.commit()
        logger.debug('Revoked %i refresh tokens of user %s', count, user_id)
        return count

    def revoke_family(self, family: str) -> int:
        """Revoke every refresh token descended from one login."""
        with transaction() as session:
            count: int = session.query(DBRefreshToken) \
                .filter(DBRefreshToken.family == family) \
                .filter(DBRefreshToken.revoked.is_(False)) \
                .update({'revoked': True, 'revoked_at': now()},
                        synchronize_session=False)
            session.commit()
        return count

    def _issue(self, db_user: DBUser, family: str,
               session: DBSession) -> domain.TokenPair:
        access_token, _ = tokens.encode_access(
            db_user.id, db_user.email, db_user.session_version,
            self._secret, self.access_duration
        )
        refresh_token, expires = tokens.encode_refresh(
            db_user.id, family, self._refresh_secret, self.refresh_duration
        )
        session.add(DBRefreshToken(
            user_id=db_user.id,
            token_hash=sha256_hex(refresh_token),
            family=family,
            revoked=False,
            expires_at=expires,
        ))
        return domain.TokenPair(access_token=access_token,
                                refresh_token=refresh_token,
                                user=accounts.to_domain(db_user),
                                family=family)
