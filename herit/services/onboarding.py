"""
The onboarding state machine.

Onboarding is four steps, submitted by index::

    0 personal_info -> 1 signature -> 2 legal_consent -> 3 verification

after which the progress pointer reads ``completed``. Each step sets its
completion flag and timestamp; step 0 also replaces the user's personal
details. Submitting a step again rewrites the same fields, so a client may
retry a step after a network failure.

Whether steps may be skipped is governed by :class:`domain.StepPolicy`.
"""

from typing import Any, Dict, Optional, Tuple, Union
from datetime import datetime
import logging

from .. import domain
from ..domain import OnboardingStep, OnboardingStatus, StepPolicy, \
    STEP_SEQUENCE, SUBMITTABLE_STEPS, COMPLETE
from ..schemas import PersonalInfo, parse_step_payload
from . import accounts, audit
from .exceptions import InvalidStep, StepOutOfOrder, IncompleteOnboarding
from .models import DBUser
from .util import transaction, now

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    'first_name', 'last_name', 'phone_number', 'date_of_birth',
    'address_line_1', 'address_line_2', 'city', 'county', 'eircode',
    'profile_photo_url'
)
"""Columns replaced wholesale by the personal information step."""


def validate_step(step: Any) -> int:
    """
    Coerce a submitted step number to an index in ``[0, 3]``.

    Raises
    ------
    :class:`InvalidStep`
        Not a number, not integral, or out of range. Booleans are not
        numbers here.

    """
    if isinstance(step, bool) or not isinstance(step, (int, float)):
        raise InvalidStep('Invalid step number. Must be 0-3')
    if isinstance(step, float):
        if not step.is_integer():
            raise InvalidStep('Invalid step number. Must be 0-3')
        step = int(step)
    if step < 0 or step >= len(SUBMITTABLE_STEPS):
        raise InvalidStep('Invalid step number. Must be 0-3')
    return step


def next_step(step: int) -> domain.NextStep:
    """Index of the step after ``step``, or ``"complete"`` after the last."""
    return step + 1 if step < len(SUBMITTABLE_STEPS) - 1 else COMPLETE


def parse_policy(value: Union[str, StepPolicy, None]) -> StepPolicy:
    """Get the :class:`StepPolicy` named in configuration."""
    if value is None:
        return StepPolicy.ANY_ORDER
    try:
        return StepPolicy(value)
    except ValueError as e:
        raise ValueError(f'Unknown onboarding step policy: {value}') from e


def advance(user_id: str, step: Any, data: Any = None,
            policy: StepPolicy = StepPolicy.ANY_ORDER,
            context: Optional[domain.RequestContext] = None) \
        -> Tuple[int, domain.NextStep]:
    """
    Record completion of an onboarding step.

    Parameters
    ----------
    user_id : str
    step : Any
        The submitted step index; validated here.
    data : Any
        The submitted step data. Required (an object) for step 0.
    policy : :class:`domain.StepPolicy`
    context : :class:`domain.RequestContext`
        Where the request came from, for the audit trail.

    Returns
    -------
    int
        The validated step index.
    int or str
        The next step index, or ``"complete"``.

    Raises
    ------
    :class:`InvalidStep`
    :class:`InvalidPayload`
    :class:`StepOutOfOrder`
    :class:`NoSuchUser`

    """
    step = validate_step(step)
    payload = parse_step_payload(step, data)
    completed_at = now()

    with transaction() as session:
        db_user = accounts.get_db_user(user_id, session, for_update=True)
        if isinstance(payload, PersonalInfo):
            for field in PROFILE_FIELDS:
                setattr(db_user, field, getattr(payload, field))
        mark_completed(db_user, step, completed_at, policy)

    audit.log_user_action(user_id, 'onboarding_step_completed', 'onboarding',
                          resource_id=user_id,
                          details={'step': step,
                                   'completedAt': completed_at.isoformat()},
                          context=context)
    logger.info('Onboarding step %i completed for user %s', step, user_id)
    return step, next_step(step)


def status(user_id: str) -> Dict[str, Any]:
    """Get the onboarding state of a user."""
    user = accounts.get_user_by_id(user_id)
    return {
        'user': user.public_profile(),
        'onboardingStatus': user.onboarding.status,
        'currentStep': user.onboarding.current_step,
        'isComplete': user.onboarding.completed,
    }


def complete(user_id: str,
             context: Optional[domain.RequestContext] = None) -> domain.User:
    """
    Mark onboarding as finished.

    Raises
    ------
    :class:`IncompleteOnboarding`
        Not every step has been completed. Carries the completion map.
    :class:`NoSuchUser`

    """
    with transaction() as session:
        db_user = accounts.get_db_user(user_id, session, for_update=True)
        progress = accounts.to_domain(db_user).onboarding
        if not progress.completed:
            raise IncompleteOnboarding('Not all onboarding steps completed',
                                       progress.completion_status)
        completed_at = now()
        db_user.onboarding_status = OnboardingStatus.COMPLETED.value
        db_user.onboarding_current_step = OnboardingStep.COMPLETED.value
        if db_user.onboarding_completed_at is None:
            db_user.onboarding_completed_at = completed_at
        db_user.updated_at = completed_at
        session.flush()
        user = accounts.to_domain(db_user)

    audit.log_user_action(user_id, 'onboarding_completed', 'onboarding',
                          resource_id=user_id,
                          details={'completedAt': completed_at.isoformat()},
                          context=context)
    logger.info('Onboarding completed for user %s', user_id)
    return user


def mark_completed(db_user: DBUser, step: int, completed_at: datetime,
                   policy: StepPolicy = StepPolicy.ANY_ORDER) -> None:
    """
    Set the completion flag of ``step`` and move the progress pointer.

    The pointer only moves forward: it becomes the later of its current value
    and the step after ``step``.

    Raises
    ------
    :class:`StepOutOfOrder`
        ``policy`` is strict and an earlier step is incomplete.

    """
    check_sequence(db_user, step, policy)
    name = SUBMITTABLE_STEPS[step].value
    setattr(db_user, f'{name}_completed', True)
    setattr(db_user, f'{name}_completed_at', completed_at)

    after = STEP_SEQUENCE[step + 1]
    if after.position > _position(db_user.onboarding_current_step):
        db_user.onboarding_current_step = after.value
    if db_user.onboarding_status == OnboardingStatus.NOT_STARTED.value:
        db_user.onboarding_status = OnboardingStatus.IN_PROGRESS.value
    db_user.updated_at = completed_at


def check_sequence(db_user: DBUser, step: int,
                   policy: StepPolicy = StepPolicy.ANY_ORDER) -> None:
    """Under the strict policy, every step before ``step`` must be done."""
    if policy is not StepPolicy.STRICT_SEQUENTIAL:
        return
    for earlier in SUBMITTABLE_STEPS[:step]:
        if not getattr(db_user, f'{earlier.value}_completed'):
            raise StepOutOfOrder(
                f'Step {earlier.position} must be completed before step {step}'
            )


def _position(current_step: Optional[str]) -> int:
    try:
        return OnboardingStep(current_step).position
    except ValueError:
        return 0
