"""Provides tools for working with authenticated user sessions."""

from typing import Optional
import logging

from flask import Flask, request, Response

from .. import domain
from ..services import util
from ..services.exceptions import InvalidToken
from ..services.sessions import SessionStore

logger = logging.getLogger(__name__)


class Auth(object):
    """
    Attaches session and authentication information to the request.

    Intended for use in a Flask application factory, for example:

    .. code-block:: python

       from flask import Flask
       from herit.auth import Auth
       from herit.routes import api


       def create_web_app() -> Flask:
          app = Flask('herit')
          app.config.from_pyfile('config.py')
          Auth(app)   # Registers the before_request auth check
          app.register_blueprint(api.blueprint)
          return app

    The session, a :class:`domain.Session` or ``None``, is available to
    routes as ``request.auth``.
    """

    def __init__(self, app: Optional[Flask] = None) -> None:
        """
        Initialize ``app`` with `Auth`.

        Parameters
        ----------
        app : :class:`Flask`

        """
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """
        Attach :meth:`.load_session` to the Flask app.

        Parameters
        ----------
        app : :class:`Flask`

        """
        self.app = app
        app.config['herit.Auth'] = self
        SessionStore.init_app(app)
        self.app.before_request(self.load_session)

        @self.app.teardown_request
        def teardown_request(exception: Optional[BaseException]) -> None:
            session = util.current_session()
            if exception:
                session.rollback()
            session.remove()

    def load_session(self) -> Optional[Response]:
        """
        Look for an access token cookie, and attach its session to the request.

        This is run before each Flask request. A missing, invalid, or expired
        token leaves ``request.auth`` set to ``None``.
        """
        request.auth = self._get_session(
            request.cookies.get(self.app.config['ACCESS_TOKEN_COOKIE_NAME'])
        )
        return None

    def _get_session(self, token: Optional[str]) -> Optional[domain.Session]:
        if not token:
            return None
        try:
            return SessionStore.current_session().load(token)
        except InvalidToken as e:
            logger.debug('No valid session: %s', e)
        return None
