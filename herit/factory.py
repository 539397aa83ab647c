"""Application factory for the Herit service."""

import logging

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException

from . import app_logging
from .auth import Auth
from .routes import api
from .services import ratelimit, util
from .services.onboarding import parse_policy

logger = logging.getLogger(__name__)


def create_web_app() -> Flask:
    """Initialize and configure the Herit application."""
    app = Flask('herit')
    app.config.from_pyfile('config.py')
    app_logging.setup_logger(app.config['LOGLEVEL'])

    # Fail at start-up rather than on the first onboarding request.
    parse_policy(app.config['ONBOARDING_STEP_POLICY'])

    util.init_app(app)
    ratelimit.init_app(app)
    Auth(app)  # Handles sessions and authn.
    app.register_blueprint(api.blueprint)

    if app.config['CREATE_DB']:
        with app.app_context():
            util.create_all()

    register_error_handlers(app)
    return app


def register_error_handlers(app: Flask) -> None:
    """Register error handlers for the Flask app."""
    app.errorhandler(HTTPException)(jsonify_exception)
    app.errorhandler(Exception)(jsonify_unhandled)


def jsonify_exception(error: HTTPException) -> Response:
    """Render exceptions as JSON."""
    exc_resp = error.get_response()
    response: Response = jsonify(error=error.description)
    response.status_code = exc_resp.status_code
    return response


def jsonify_unhandled(error: Exception) -> Response:
    """Render an unexpected error without any implementation detail."""
    if isinstance(error, HTTPException):
        return jsonify_exception(error)
    logger.exception('Unhandled error: %s', error)
    response: Response = jsonify(error='Internal server error')
    response.status_code = 500
    return response
