"""Defines user, session, and onboarding concepts for the Herit service."""

from typing import Any, Dict, NamedTuple, Optional, Union
from datetime import datetime
from enum import Enum

from pytz import UTC


class OnboardingStep(str, Enum):
    """Positions of the onboarding progress pointer."""

    PERSONAL_INFO = 'personal_info'
    SIGNATURE = 'signature'
    LEGAL_CONSENT = 'legal_consent'
    VERIFICATION = 'verification'
    COMPLETED = 'completed'

    @property
    def position(self) -> int:
        """Index of this step in :data:`STEP_SEQUENCE`."""
        return STEP_SEQUENCE.index(self)


STEP_SEQUENCE = [
    OnboardingStep.PERSONAL_INFO,
    OnboardingStep.SIGNATURE,
    OnboardingStep.LEGAL_CONSENT,
    OnboardingStep.VERIFICATION,
    OnboardingStep.COMPLETED,
]
"""The fixed, forward-only order of onboarding steps."""

SUBMITTABLE_STEPS = STEP_SEQUENCE[:4]
"""Steps a client may submit, indexed by step number (0-3)."""

COMPLETE = 'complete'
"""Marker returned as the next step once verification has been processed."""

NextStep = Union[int, str]


class StepPolicy(str, Enum):
    """Whether onboarding steps may be submitted out of order."""

    ANY_ORDER = 'any-order'
    STRICT_SEQUENTIAL = 'strict-sequential'


class OnboardingStatus(str, Enum):
    """Overall onboarding state of a user."""

    NOT_STARTED = 'not_started'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'


class UserFullName(NamedTuple):
    """Represents a user's full name."""

    forename: Optional[str] = None
    """First name or given name."""

    surname: Optional[str] = None
    """Last name or family name."""


class UserProfile(NamedTuple):
    """Personal details collected in the first onboarding step."""

    phone_number: Optional[str] = None
    date_of_birth: Optional[str] = None
    profile_photo_url: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None
    eircode: Optional[str] = None
    """Irish postal code."""


class OnboardingProgress(NamedTuple):
    """Per-step completion flags and the current-step pointer."""

    status: str = OnboardingStatus.NOT_STARTED.value
    current_step: str = OnboardingStep.PERSONAL_INFO.value
    personal_info_completed: bool = False
    personal_info_completed_at: Optional[datetime] = None
    signature_completed: bool = False
    signature_completed_at: Optional[datetime] = None
    legal_consent_completed: bool = False
    legal_consent_completed_at: Optional[datetime] = None
    verification_completed: bool = False
    verification_completed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def completed(self) -> bool:
        """All four steps have been completed."""
        return all(self.completion_status.values())

    @property
    def completion_status(self) -> Dict[str, bool]:
        """Completion flag of each step, keyed by flag name."""
        return {
            'personal_info_completed': self.personal_info_completed,
            'signature_completed': self.signature_completed,
            'legal_consent_completed': self.legal_consent_completed,
            'verification_completed': self.verification_completed,
        }


class ConsentRecord(NamedTuple):
    """A user's signed agreement to one legal consent."""

    agreed: bool
    signature_id: str
    signature_snapshot: Optional[Any]
    """Copy of the signature payload exactly as it was when signed."""

    timestamp: datetime
    ip_address: str = 'unknown'
    user_agent: str = 'unknown'

    def to_json(self) -> dict:
        """Representation stored in the user's consent map."""
        return {
            'agreed': self.agreed,
            'signatureId': self.signature_id,
            'signatureSnapshot': self.signature_snapshot,
            'timestamp': self.timestamp.isoformat(),
            'ipAddress': self.ip_address,
            'userAgent': self.user_agent,
        }

    @classmethod
    def from_json(cls, data: dict) -> 'ConsentRecord':
        """Inverse of :meth:`to_json`."""
        return cls(
            agreed=bool(data.get('agreed')),
            signature_id=data.get('signatureId'),
            signature_snapshot=data.get('signatureSnapshot'),
            timestamp=_parse_datetime(data.get('timestamp')),
            ip_address=data.get('ipAddress', 'unknown'),
            user_agent=data.get('userAgent', 'unknown'),
        )


class User(NamedTuple):
    """Represents a Herit user."""

    user_id: str
    """Unique identifier for the user."""

    email: str
    """The user's primary e-mail address."""

    name: UserFullName = UserFullName()
    profile: UserProfile = UserProfile()
    onboarding: OnboardingProgress = OnboardingProgress()
    legal_consents: Dict[str, ConsentRecord] = {}
    auth_provider: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def summary(self) -> dict:
        """Public profile summary returned by the auth endpoints."""
        return {
            'id': self.user_id,
            'email': self.email,
            'firstName': self.name.forename,
            'lastName': self.name.surname,
            'onboardingStatus': self.onboarding.status,
            'onboardingCurrentStep': self.onboarding.current_step,
            'onboarding_completed': self.onboarding.completed,
        }

    def public_profile(self) -> dict:
        """Full profile of the user, without credentials."""
        data = self.summary()
        data.update(to_dict(self.profile))
        data.update(to_dict(self.onboarding))
        data['legalConsents'] = {
            consent_id: record.to_json()
            for consent_id, record in self.legal_consents.items()
        }
        data['authProvider'] = self.auth_provider
        return data


class Session(NamedTuple):
    """Claims carried by an access token."""

    user_id: str
    email: str
    session_version: int
    issued_at: datetime
    end_time: datetime

    @property
    def expired(self) -> bool:
        """Expired if the current time is later than :attr:`.end_time`."""
        return datetime.now(tz=UTC) >= self.end_time


class TokenPair(NamedTuple):
    """A freshly issued access/refresh credential pair."""

    access_token: str
    refresh_token: str
    user: User
    family: str
    """Identifier shared by every refresh token descended from one login."""


class Signature(NamedTuple):
    """A signature saved by a user during onboarding."""

    signature_id: str
    name: str
    signature_type: str
    data: str
    font: Optional[str] = None
    class_name: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_json(self) -> dict:
        return {
            'id': self.signature_id,
            'name': self.name,
            'type': self.signature_type,
            'data': self.data,
            'font': self.font,
            'className': self.class_name,
            'createdAt': self.created_at.isoformat()
            if self.created_at else None,
        }


class RequestContext(NamedTuple):
    """Where a request came from, for audit and consent records."""

    ip_address: str = 'unknown'
    user_agent: str = 'unknown'


# Helpers and private functions.


def to_dict(obj: tuple) -> dict:
    """
    Generate a dict representation of a NamedTuple instance.

    Child NamedTuples are cast recursively; datetimes become ISO-8601 strings
    and enum members become their values.
    """
    if not hasattr(obj, '_asdict'):  # NamedTuple-generated classes have this.
        return {}
    data = obj._asdict()  # type: ignore

    def _cast(value: Any) -> Any:
        if hasattr(value, '_asdict'):
            value = to_dict(value)
        elif isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        elif isinstance(value, list):
            value = [_cast(o) for o in value]
        elif isinstance(value, dict):
            value = {k: _cast(v) for k, v in value.items()}
        return value

    return {key: _cast(value) for key, value in data.items()}


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        return datetime.fromisoformat(value)
    return datetime.now(tz=UTC)
