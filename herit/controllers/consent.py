"""Controllers for signing legal consents and saving signatures."""

from typing import Any, Optional, Tuple
from http import HTTPStatus as status
import logging

from werkzeug.exceptions import BadRequest, Unauthorized
from retry import retry

from .. import domain, schemas
from ..services import accounts, consents, signatures
from ..services.exceptions import InvalidSignature, InvalidPayload, \
    StepOutOfOrder, NoSuchUser, Unavailable, MissingConsents
from .authentication import ResponseData

logger = logging.getLogger(__name__)


def sign_consent(user_id: str, body: Any,
                 context: Optional[domain.RequestContext] = None) \
        -> ResponseData:
    """
    Apply a signature to a legal consent.

    Parameters
    ----------
    user_id : str
    body : Any
        Parsed JSON body, ``{consentId, signatureId, signatureData}``.
    context : :class:`domain.RequestContext`
        Source IP address and user agent, recorded with the consent.

    """
    try:
        req = schemas.parse(schemas.ConsentSignatureRequest, body)
        record = _do_sign_consent(user_id, req.consentId, req.signatureId,
                                  req.signatureData, context)
    except (InvalidPayload, InvalidSignature) as e:
        raise BadRequest('Consent ID and signature ID are required') from e
    except NoSuchUser as e:
        raise Unauthorized('Authentication required') from e
    data = {
        'success': True,
        'message': 'Consent signature saved successfully',
        'consentId': req.consentId,
        'timestamp': record.timestamp.isoformat(),
    }
    return data, status.OK, {}


def get_consents(user_id: str) -> ResponseData:
    """Get the user's signed consents, and whether the consent step is done."""
    try:
        user = _do_get_user(user_id)
    except NoSuchUser as e:
        raise Unauthorized('Authentication required') from e
    data = {
        'success': True,
        'consents': {consent_id: record.to_json()
                     for consent_id, record in user.legal_consents.items()},
        'isCompleted': user.onboarding.legal_consent_completed,
    }
    return data, status.OK, {}


def complete_legal_consent(user_id: str, policy: domain.StepPolicy,
                           context: Optional[domain.RequestContext] = None) \
        -> ResponseData:
    """Complete the consent step once every required consent is signed."""
    try:
        step, next_step = _do_complete_legal_consent(user_id, policy, context)
    except (MissingConsents, StepOutOfOrder) as e:
        raise BadRequest(str(e)) from e
    except NoSuchUser as e:
        raise Unauthorized('Authentication required') from e
    data = {
        'success': True,
        'message': 'Legal consent saved successfully',
        'step': step,
        'nextStep': next_step,
    }
    return data, status.OK, {}


def save_signature(user_id: str, body: Any, policy: domain.StepPolicy,
                   context: Optional[domain.RequestContext] = None) \
        -> ResponseData:
    """Save a signature on the user's profile."""
    try:
        req = schemas.parse(schemas.SignatureRequest, body)
    except InvalidPayload as e:
        raise BadRequest('Required fields missing') from e
    try:
        signature = _do_save_signature(user_id, req, policy, context)
    except (InvalidSignature, StepOutOfOrder) as e:
        raise BadRequest(str(e)) from e
    except NoSuchUser as e:
        raise Unauthorized('Authentication required') from e
    data = {
        'success': True,
        'message': 'Signature saved successfully',
        'signature': signature.to_json(),
    }
    return data, status.OK, {}


def get_signature(user_id: str) -> ResponseData:
    """Get the signature the user saved most recently."""
    signature = _do_get_signature(user_id)
    data = {
        'success': True,
        'signature': signature.to_json() if signature else None,
    }
    return data, status.OK, {}


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def _do_sign_consent(user_id: str, consent_id: Optional[str],
                     signature_id: Optional[str], signature_data: Any,
                     context: Optional[domain.RequestContext]) \
        -> domain.ConsentRecord:
    return consents.sign_consent(user_id, consent_id, signature_id,
                                 signature_data, context=context)


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def _do_get_user(user_id: str) -> domain.User:
    return accounts.get_user_by_id(user_id)


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def _do_complete_legal_consent(user_id: str, policy: domain.StepPolicy,
                               context: Optional[domain.RequestContext]) \
        -> Tuple[int, domain.NextStep]:
    return consents.complete_legal_consent(user_id, policy=policy,
                                           context=context)


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def _do_save_signature(user_id: str, req: schemas.SignatureRequest,
                       policy: domain.StepPolicy,
                       context: Optional[domain.RequestContext]) \
        -> domain.Signature:
    return signatures.save_signature(user_id, req.name, req.signatureType,
                                     req.signatureData, font=req.font,
                                     class_name=req.className, policy=policy,
                                     context=context)


@retry(Unavailable, tries=3, delay=0.5, backoff=2)
def _do_get_signature(user_id: str) -> Optional[domain.Signature]:
    return signatures.get_latest_signature(user_id)
