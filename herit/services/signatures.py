"""Signatures saved on a user's profile."""

from typing import Optional
import logging

from .. import domain
from ..domain import StepPolicy
from . import accounts, onboarding
from .exceptions import InvalidSignature
from .models import DBSignature
from .util import transaction, now, sha256_hex, as_utc

logger = logging.getLogger(__name__)

TEMPLATE = 'template'

DEFAULT_TEMPLATE_FONT = 'cursive'
DEFAULT_TEMPLATE_CLASS = 'font-cursive'

SIGNATURE_STEP = 1


def save_signature(user_id: str, name: Optional[str],
                   signature_type: Optional[str],
                   signature_data: Optional[str],
                   font: Optional[str] = None,
                   class_name: Optional[str] = None,
                   policy: StepPolicy = StepPolicy.ANY_ORDER,
                   context: Optional[domain.RequestContext] = None) \
        -> domain.Signature:
    """
    Save a new signature for a user, completing the signature step.

    Template signatures are rendered from a font, so the font must be stored
    with them for the signature to be reproduced exactly later on.

    Raises
    ------
    :class:`InvalidSignature`
    :class:`StepOutOfOrder`
    :class:`NoSuchUser`

    """
    if not name or not signature_type or not signature_data:
        raise InvalidSignature('Required fields missing')
    if signature_type == TEMPLATE and (not font or not class_name):
        raise InvalidSignature('Template signatures require font information')
    context = context or domain.RequestContext()
    saved_at = now()

    with transaction() as session:
        db_user = accounts.get_db_user(user_id, session, for_update=True)
        db_signature = DBSignature(
            user_id=user_id,
            name=name,
            signature_type=signature_type,
            data=signature_data,
            hash=sha256_hex(signature_data),
            font_name=font or None,
            font_class_name=class_name or None,
            signature_metadata={
                'createdAt': saved_at.isoformat(),
                'userAgent': context.user_agent,
            },
            created_at=saved_at,
        )
        session.add(db_signature)
        onboarding.mark_completed(db_user, SIGNATURE_STEP, saved_at, policy)
        session.flush()
        signature = _to_domain(db_signature)

    logger.info('Saved %s signature %s for user %s', signature_type,
                signature.signature_id, user_id)
    return signature


def get_latest_signature(user_id: str) -> Optional[domain.Signature]:
    """Get the signature a user saved most recently, if any."""
    with transaction() as session:
        db_signature: Optional[DBSignature] = session.query(DBSignature) \
            .filter(DBSignature.user_id == user_id) \
            .order_by(DBSignature.created_at.desc()) \
            .first()
        if db_signature is None:
            return None
        return _to_domain(db_signature)


def _to_domain(db_signature: DBSignature) -> domain.Signature:
    font, class_name = db_signature.font_name, db_signature.font_class_name
    if db_signature.signature_type == TEMPLATE:
        font = font or DEFAULT_TEMPLATE_FONT
        class_name = class_name or DEFAULT_TEMPLATE_CLASS
    return domain.Signature(
        signature_id=db_signature.id,
        name=db_signature.name,
        signature_type=db_signature.signature_type,
        data=db_signature.data,
        font=font,
        class_name=class_name,
        created_at=as_utc(db_signature.created_at),
    )
