"""Structured request bodies, validated before anything is written."""

from typing import Any, Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .services.exceptions import InvalidPayload


class Payload(BaseModel):
    """Base for request bodies; unknown fields are ignored."""

    model_config = ConfigDict(extra='ignore')


class PersonalInfo(Payload):
    """Step 0: personal details. Every field is replaced on each submit."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    date_of_birth: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None
    eircode: Optional[str] = None
    profile_photo_url: Optional[str] = None

    @field_validator('*', mode='before')
    @classmethod
    def blank_is_null(cls, value: Any) -> Any:
        """Empty strings are stored as null."""
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SignatureStep(Payload):
    """Step 1. The signature itself is saved through its own endpoint."""


class LegalConsentStep(Payload):
    """Step 2. Consents are recorded through the consent-signature endpoint."""


class VerificationStep(Payload):
    """Step 3. Identity verification happens with an external provider."""


StepPayload = Union[PersonalInfo, SignatureStep, LegalConsentStep,
                    VerificationStep]

STEP_PAYLOADS: Dict[int, Type[Payload]] = {
    0: PersonalInfo,
    1: SignatureStep,
    2: LegalConsentStep,
    3: VerificationStep,
}


def parse_step_payload(step: int, data: Any) -> StepPayload:
    """
    Validate the ``data`` submitted with an onboarding step.

    Parameters
    ----------
    step : int
        Already validated step index, 0-3.
    data : Any
        The ``data`` member of the request body.

    Raises
    ------
    :class:`InvalidPayload`
        Step 0 was submitted without a data object, or one of its fields
        has the wrong type. Data sent with steps 1-3 is ignored.

    """
    model = STEP_PAYLOADS[step]
    if model is not PersonalInfo:
        return model()
    if data is None:
        raise InvalidPayload('Personal information data is required')
    if not isinstance(data, dict):
        raise InvalidPayload('Step data must be an object')
    return _validate(model, data)  # type: ignore


class RegisterRequest(Payload):
    email: str
    password: str
    firstName: str
    lastName: str


class LoginRequest(Payload):
    email: str
    password: str


class ConsentSignatureRequest(Payload):
    """Body of a consent signing request."""

    consentId: Optional[str] = None
    signatureId: Optional[str] = None
    signatureData: Optional[Any] = None
    """Opaque; stored exactly as received."""


class SignatureRequest(Payload):
    """A signature to save on the user's profile."""

    name: Optional[str] = None
    signatureType: Optional[str] = None
    signatureData: Optional[str] = None
    font: Optional[str] = None
    className: Optional[str] = None


class AuditEventRequest(Payload):
    event_type: Optional[str] = None
    event_action: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    event_data: Optional[Dict[str, Any]] = None


def parse(model: Type[Payload], data: Any) -> Any:
    """Validate a JSON request body against ``model``."""
    if not isinstance(data, dict):
        raise InvalidPayload('Request body must be a JSON object')
    return _validate(model, data)


def _validate(model: Type[Payload], data: dict) -> Payload:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = ', '.join(
            '.'.join(str(loc) for loc in error['loc']) or 'body'
            for error in e.errors()
        )
        raise InvalidPayload(f'Invalid value for: {fields}') from e
