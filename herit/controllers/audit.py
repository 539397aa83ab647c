"""Controller for audit events reported by the client."""

from typing import Any, Optional
from http import HTTPStatus as status
import logging

from .. import domain, schemas
from ..services import audit
from ..services.exceptions import InvalidPayload
from .authentication import ResponseData

logger = logging.getLogger(__name__)


def log_event(body: Any, session: Optional[domain.Session] = None,
              context: Optional[domain.RequestContext] = None) -> ResponseData:
    """
    Record an audit event on behalf of the client.

    Auditing is best-effort: the response reports success whether or not the
    event could be stored.
    """
    try:
        req = schemas.parse(schemas.AuditEventRequest, body)
    except InvalidPayload as e:
        logger.info('Discarding malformed audit event: %s', e)
        return {'success': True}, status.OK, {}
    if not req.event_type:
        logger.info('Discarding audit event without a type')
        return {'success': True}, status.OK, {}
    audit.log_event(req.event_type,
                    event_action=req.event_action,
                    resource_type=req.resource_type,
                    resource_id=req.resource_id,
                    event_data=req.event_data,
                    user_id=session.user_id if session else None,
                    context=context)
    return {'success': True}, status.OK, {}
