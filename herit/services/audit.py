"""
Best-effort audit trail.

Audit entries are written in their own transaction, after the change they
describe has been committed. A failure to write one is logged locally and
never reaches the caller.
"""

from typing import Any, Dict, Optional
from functools import wraps
import logging

from .. import domain
from .models import DBAuditEvent
from .util import transaction, now

logger = logging.getLogger(__name__)


class AuditLogger(object):
    """Writes :class:`.DBAuditEvent` rows."""

    def log_event(self, event_type: str,
                  event_action: Optional[str] = None,
                  resource_type: Optional[str] = None,
                  resource_id: Optional[str] = None,
                  event_data: Optional[Dict[str, Any]] = None,
                  user_id: Optional[str] = None,
                  context: Optional[domain.RequestContext] = None,
                  session_id: Optional[str] = None) -> bool:
        """
        Record an audit event.

        Returns
        -------
        bool
            Whether the event was stored. Failures are logged, not raised.

        """
        context = context or domain.RequestContext()
        try:
            with transaction() as session:
                session.add(DBAuditEvent(
                    user_id=user_id,
                    event_type=event_type,
                    event_action=event_action,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    event_data=event_data or {},
                    ip_address=context.ip_address,
                    user_agent=context.user_agent,
                    session_id=session_id,
                    timestamp=now(),
                ))
        except Exception:
            logger.exception('Failed to write audit event %s for user %s',
                             event_type, user_id)
            return False
        return True

    def log_user_action(self, user_id: str, action: str, resource_type: str,
                        resource_id: Optional[str] = None,
                        details: Optional[Dict[str, Any]] = None,
                        context: Optional[domain.RequestContext] = None) \
            -> bool:
        """Record an action a user took on one of their resources."""
        return self.log_event('user_action', event_action=action,
                              resource_type=resource_type,
                              resource_id=resource_id,
                              event_data=details, user_id=user_id,
                              context=context)


_audit_logger = AuditLogger()


@wraps(AuditLogger.log_event)
def log_event(*args: Any, **kwargs: Any) -> bool:
    """Record an audit event."""
    return _audit_logger.log_event(*args, **kwargs)


@wraps(AuditLogger.log_user_action)
def log_user_action(*args: Any, **kwargs: Any) -> bool:
    """Record an action a user took on one of their resources."""
    return _audit_logger.log_user_action(*args, **kwargs)
