"""Controllers for the onboarding steps."""

from typing import Any, Optional
from http import HTTPStatus as status
import logging

from werkzeug.exceptions import BadRequest, Unauthorized
from retry import retry

from .. import domain
from ..services import onboarding
from ..services.exceptions import InvalidStep, InvalidPayload, \
    StepOutOfOrder, IncompleteOnboarding, NoSuchUser, Unavailable
from .authentication import ResponseData

logger = logging.getLogger(__name__)


def save_step(user_id: str, body: Any, policy: domain.StepPolicy,
              context: Optional[domain.RequestContext] = None) \
        -> ResponseData:
    """
    Record completion of one onboarding step.

    Parameters
    ----------
    user_id : str
        The authenticated user.
    body : Any
        Parsed JSON body, ``{"step": 0-3, "data": {...}}``.
    policy : :class:`domain.StepPolicy`
        Whether steps may be submitted out of order.
    context : :class:`domain.RequestContext`

    """
    if not isinstance(body, dict):
        raise BadRequest('Invalid step number. Must be 0-3')
    try:
        step, next_step = _do_advance(user_id, body.get('step'),
                                      body.get('data'), policy, context)
    except (InvalidStep, InvalidPayload, StepOutOfOrder) as e:
        raise BadRequest(str(e)) from e
    except NoSuchUser as e:
        raise Unauthorized('Authentication required') from e
    data = {
        'success': True,
        'message': f'Step {step} completed successfully',
        'step': step,
        'nextStep': next_step,
    }
    return data, status.OK, {}


def get_status(user_id: str) -> ResponseData:
    """Get the onboarding progress of the user."""
    try:
        data = _do_status(user_id)
    except NoSuchUser as e:
        raise Unauthorized('Authentication required') from e
    return data, status.OK, {}


def complete(user_id: str,
             context: Optional[domain.RequestContext] = None) -> ResponseData:
    """Finish onboarding, if every step is done."""
    try:
        user = _do_complete(user_id, context)
    except IncompleteOnboarding as e:
        data = {
            'error': str(e),
            'completionStatus': e.completion_status,
        }
        return data, status.BAD_REQUEST, {}
    except NoSuchUser as e:
        raise Unauthorized('Authentication required') from e
    data = {
        'success': True,
        'message': 'Onboarding completed successfully',
        'user': user.summary(),
        'redirectTo': '/dashboard',
    }
    return data, status.OK, {}


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def _do_advance(user_id: str, step: Any, data: Any,
                policy: domain.StepPolicy,
                context: Optional[domain.RequestContext]) -> Any:
    return onboarding.advance(user_id, step, data, policy=policy,
                              context=context)


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def _do_status(user_id: str) -> dict:
    return onboarding.status(user_id)


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def _do_complete(user_id: str,
                 context: Optional[domain.RequestContext]) -> domain.User:
    return onboarding.complete(user_id, context=context)
