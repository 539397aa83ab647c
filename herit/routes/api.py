"""Provides the JSON API of the Herit service."""

from typing import Any, Callable
from functools import wraps
from http import HTTPStatus as status
import logging

from flask import Blueprint, request, jsonify, make_response, current_app, \
    Response, g

from .. import domain
from ..auth.decorators import authenticated
from ..controllers import authentication, onboarding, consent, audit
from ..services import ratelimit
from ..services.onboarding import parse_policy

logger = logging.getLogger(__name__)
blueprint = Blueprint('api', __name__, url_prefix='/api')

TOO_MANY_REQUESTS = 'Too many requests. Please try again later.'


def set_cookies(response: Response, data: dict) -> None:
    """
    Update a :class:`.Response` with cookies in controller data.

    Controllers seeking to update cookies must include a 'cookies' key
    in their response data, mapping a config key prefix to a
    ``(value, max_age)`` tuple.
    """
    cookies = data.pop('cookies', None)
    if cookies is None:
        return None
    for cookie_key, (cookie_value, max_age) in cookies.items():
        cookie_name = current_app.config[f'{cookie_key.upper()}_NAME']
        logger.debug('Set cookie %s, max_age %s', cookie_name, max_age)
        response.set_cookie(
            cookie_name, cookie_value, max_age=max_age, path='/',
            httponly=True,
            secure=bool(current_app.config['AUTH_SESSION_COOKIE_SECURE']),
            samesite=current_app.config['AUTH_SESSION_COOKIE_SAMESITE']
        )


def client_ip() -> str:
    """Best guess at the address of the client, for rate limiting."""
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.headers.get('X-Real-IP') or request.remote_addr or \
        'unknown'


def request_context() -> domain.RequestContext:
    """Source address and user agent, as recorded with consents."""
    return domain.RequestContext(
        ip_address=request.headers.get('X-Forwarded-For') or 'unknown',
        user_agent=request.headers.get('User-Agent') or 'unknown'
    )


def audit_context() -> domain.RequestContext:
    """Source address and user agent, as recorded in the audit trail."""
    return domain.RequestContext(
        ip_address=request.headers.get('X-Forwarded-For')
        or request.headers.get('X-Real-IP') or 'unknown',
        user_agent=request.headers.get('User-Agent') or 'unknown'
    )


def rate_limited(name: str) -> Callable:
    """Limit calls to the decorated route per client IP address."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if not current_app.config['RATE_LIMIT_ENABLED']:
                return func(*args, **kwargs)
            result = ratelimit.get_limiter(name).hit(client_ip())
            headers = {
                'X-RateLimit-Limit': str(result.limit),
                'X-RateLimit-Remaining': str(result.remaining),
                'X-RateLimit-Reset': str(result.reset),
            }
            # Applied in apply_response_headers, so error responses get them.
            g.rate_limit_headers = headers
            if not result.allowed:
                logger.info('Rate limit %s exceeded by %s', name, client_ip())
                headers['Retry-After'] = str(result.reset)
                response = jsonify(error=TOO_MANY_REQUESTS)
                response.status_code = status.TOO_MANY_REQUESTS
                return response
            return func(*args, **kwargs)
        return wrapper
    return decorator


def _json_response(data: dict, code: int, headers: dict) -> Response:
    # Flask puts cookie-setting methods on the response, so we do that here
    # instead of in the controller.
    cookies = {'cookies': data.pop('cookies')} if 'cookies' in data else {}
    response: Response = make_response(jsonify(data), code, headers)
    set_cookies(response, cookies)
    return response


def _step_policy() -> domain.StepPolicy:
    return parse_policy(current_app.config.get('ONBOARDING_STEP_POLICY'))


@blueprint.after_request
def apply_response_headers(response: Response) -> Response:
    """Apply response headers to all responses."""
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Cache-Control'] = 'no-store'
    response.headers.update(g.get('rate_limit_headers', {}))
    return response


@blueprint.route('/health', methods=['GET'])
def health() -> Response:
    """Get if the app is running."""
    return jsonify(status='ok')


@blueprint.route('/auth/register', methods=['POST'])
@rate_limited('register')
def register() -> Response:
    """Create an account with e-mail and password."""
    data, code, headers = authentication.register(
        request.get_json(silent=True)
    )
    return _json_response(data, code, headers)


@blueprint.route('/auth/login', methods=['POST'])
@rate_limited('login')
def login() -> Response:
    """Log in with e-mail and password."""
    data, code, headers = authentication.login(request.get_json(silent=True))
    return _json_response(data, code, headers)


@blueprint.route('/auth/logout', methods=['POST'])
def logout() -> Response:
    """Log out, revoking the refresh tokens of the user."""
    refresh_token = request.cookies.get(
        current_app.config['REFRESH_TOKEN_COOKIE_NAME']
    )
    data, code, headers = authentication.logout(refresh_token)
    return _json_response(data, code, headers)


@blueprint.route('/auth/refresh', methods=['POST'])
def refresh() -> Response:
    """Exchange the refresh token cookie for a new token pair."""
    refresh_token = request.cookies.get(
        current_app.config['REFRESH_TOKEN_COOKIE_NAME']
    )
    data, code, headers = authentication.refresh(refresh_token)
    return _json_response(data, code, headers)


@blueprint.route('/auth/session', methods=['GET'])
def session() -> Response:
    """Describe the logged-in user, if any."""
    data, code, headers = authentication.get_session(request.auth)
    return _json_response(data, code, headers)


@blueprint.route('/onboarding/save-step', methods=['POST'])
@authenticated
def save_step() -> Response:
    """Record completion of an onboarding step."""
    data, code, headers = onboarding.save_step(
        request.auth.user_id, request.get_json(silent=True), _step_policy(),
        context=audit_context()
    )
    return _json_response(data, code, headers)


@blueprint.route('/onboarding/status', methods=['GET'])
@authenticated
def onboarding_status() -> Response:
    """Get the onboarding progress of the user."""
    data, code, headers = onboarding.get_status(request.auth.user_id)
    return _json_response(data, code, headers)


@blueprint.route('/onboarding/complete', methods=['POST'])
@authenticated
def complete_onboarding() -> Response:
    """Finish onboarding."""
    data, code, headers = onboarding.complete(request.auth.user_id,
                                              context=audit_context())
    return _json_response(data, code, headers)


@blueprint.route('/onboarding/consent-signature', methods=['POST'])
@authenticated
def consent_signature() -> Response:
    """Sign a legal consent."""
    data, code, headers = consent.sign_consent(
        request.auth.user_id, request.get_json(silent=True),
        context=request_context()
    )
    return _json_response(data, code, headers)


@blueprint.route('/onboarding/legal-consent', methods=['GET'])
@authenticated
def legal_consents() -> Response:
    """Get the consents the user has signed."""
    data, code, headers = consent.get_consents(request.auth.user_id)
    return _json_response(data, code, headers)


@blueprint.route('/onboarding/legal-consent', methods=['POST'])
@authenticated
def complete_legal_consent() -> Response:
    """Complete the legal consent step."""
    data, code, headers = consent.complete_legal_consent(
        request.auth.user_id, _step_policy(), context=audit_context()
    )
    return _json_response(data, code, headers)


@blueprint.route('/onboarding/signature', methods=['GET'])
@authenticated
def get_signature() -> Response:
    """Get the user's most recent signature."""
    data, code, headers = consent.get_signature(request.auth.user_id)
    return _json_response(data, code, headers)


@blueprint.route('/onboarding/signature', methods=['POST'])
@authenticated
def save_signature() -> Response:
    """Save a signature, completing the signature step."""
    data, code, headers = consent.save_signature(
        request.auth.user_id, request.get_json(silent=True), _step_policy(),
        context=request_context()
    )
    return _json_response(data, code, headers)


@blueprint.route('/audit/log-event', methods=['POST'])
def log_event() -> Response:
    """Record an audit event reported by the client."""
    data, code, headers = audit.log_event(request.get_json(silent=True),
                                          session=request.auth,
                                          context=audit_context())
    return _json_response(data, code, headers)
