"""Records signatures applied to legal consents."""

from typing import Any, Dict, Optional, Tuple
import logging

from .. import domain
from ..domain import StepPolicy
from . import accounts, audit, onboarding
from .exceptions import InvalidSignature, MissingConsents
from .models import DBSignature, DBSignatureUsage
from .util import transaction, now

logger = logging.getLogger(__name__)

LEGAL_CONSENT = 'legal_consent'
"""Document type of a signature usage record for a consent."""

REQUIRED_CONSENTS = (
    'terms_of_service',
    'privacy_policy',
    'legal_disclaimer',
    'data_processing',
    'electronic_signature',
)
"""Consents that must be signed to complete the legal consent step."""

LEGAL_CONSENT_STEP = 2


def sign_consent(user_id: str, consent_id: Optional[str],
                 signature_id: Optional[str],
                 signature_data: Optional[Any] = None,
                 context: Optional[domain.RequestContext] = None) \
        -> domain.ConsentRecord:
    """
    Apply a signature to a consent.

    Appends a :class:`.DBSignatureUsage` record and stores a consent record
    under ``consent_id`` in the user's consent map, replacing any earlier one.
    Both writes happen in one transaction.

    Parameters
    ----------
    user_id : str
    consent_id : str
        Identifier of the consent, e.g. ``privacy_policy``.
    signature_id : str
        Identifier of the signature being applied.
    signature_data : Any
        The signature payload as shown to the user. Stored verbatim as the
        consent's ``signatureSnapshot``.
    context : :class:`domain.RequestContext`

    Returns
    -------
    :class:`domain.ConsentRecord`

    Raises
    ------
    :class:`InvalidSignature`
        ``consent_id`` or ``signature_id`` is empty.
    :class:`NoSuchUser`

    """
    if not consent_id or not signature_id:
        raise InvalidSignature('Consent ID and signature ID are required')
    context = context or domain.RequestContext()
    signed_at = now()
    record = domain.ConsentRecord(
        agreed=True,
        signature_id=signature_id,
        signature_snapshot=signature_data,
        timestamp=signed_at,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
    )

    with transaction() as session:
        db_user = accounts.get_db_user(user_id, session, for_update=True)
        session.add(DBSignatureUsage(
            signature_id=signature_id,
            user_id=user_id,
            document_type=LEGAL_CONSENT,
            document_id=consent_id,
            usage_metadata={
                'consentType': consent_id,
                'timestamp': signed_at.isoformat(),
                'ipAddress': context.ip_address,
                'userAgent': context.user_agent,
            },
            created_at=signed_at,
        ))

        # A new dict, so that the change to the JSON column is detected.
        consents: Dict[str, Any] = dict(db_user.legal_consents or {})
        consents[consent_id] = record.to_json()
        db_user.legal_consents = consents
        db_user.updated_at = signed_at

        db_signature = session.query(DBSignature) \
            .filter(DBSignature.id == signature_id) \
            .filter(DBSignature.user_id == user_id) \
            .first()
        if db_signature is not None:
            db_signature.last_used = signed_at

    logger.info('User %s signed consent %s', user_id, consent_id)
    return record


def complete_legal_consent(user_id: str,
                           policy: StepPolicy = StepPolicy.ANY_ORDER,
                           context: Optional[domain.RequestContext] = None) \
        -> Tuple[int, domain.NextStep]:
    """
    Complete the legal consent step, if every required consent is signed.

    The consent map itself is not changed; consents are signed one at a time
    with :func:`sign_consent`.

    Raises
    ------
    :class:`MissingConsents`
        One or more of :const:`REQUIRED_CONSENTS` has not been signed.
    :class:`StepOutOfOrder`
    :class:`NoSuchUser`

    """
    completed_at = now()
    with transaction() as session:
        db_user = accounts.get_db_user(user_id, session, for_update=True)
        signed = db_user.legal_consents or {}
        missing = [consent_id for consent_id in REQUIRED_CONSENTS
                   if not (signed.get(consent_id) or {}).get('agreed')]
        if missing:
            raise MissingConsents(
                f'Required consents missing: {", ".join(missing)}', missing
            )
        onboarding.mark_completed(db_user, LEGAL_CONSENT_STEP, completed_at,
                                  policy)

    audit.log_user_action(user_id, 'onboarding_step_completed', 'onboarding',
                          resource_id=user_id,
                          details={'step': LEGAL_CONSENT_STEP,
                                   'completedAt': completed_at.isoformat()},
                          context=context)
    logger.info('Legal consent step completed for user %s', user_id)
    return LEGAL_CONSENT_STEP, onboarding.next_step(LEGAL_CONSENT_STEP)
