"""
Protects Flask routes that require an authenticated user.

.. code-block:: python

   @blueprint.route('/onboarding/status', methods=['GET'])
   @authenticated
   def onboarding_status() -> Response:
       data, code, headers = onboarding.get_status(request.auth.user_id)
       return jsonify(data), code, headers

If no valid session was attached to the request by :class:`herit.auth.Auth`,
an :class:`Unauthorized` exception is raised and the route is not called.
"""

from typing import Callable, Any
from functools import wraps
import logging

from flask import request
from werkzeug.exceptions import Unauthorized

logger = logging.getLogger(__name__)

AUTHENTICATION_REQUIRED = 'Authentication required'


def authenticated(func: Callable) -> Callable:
    """Require a valid access-token session to call the decorated route."""
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        session = getattr(request, 'auth', None)
        if not session or not session.user_id:
            logger.debug('No valid session; aborting')
            raise Unauthorized(AUTHENTICATION_REQUIRED)
        return func(*args, **kwargs)
    return wrapper
