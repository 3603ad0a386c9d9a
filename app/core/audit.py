"""
Audit logging for invitation, campaign and redemption events
"""
import json
import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog, AuditEventType

logger = logging.getLogger(__name__)


def log_security_event(
    db: Session,
    event_type: AuditEventType,
    organization_id: Optional[uuid.UUID] = None,
    account_id: Optional[uuid.UUID] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    details: Optional[dict] = None,
    commit: bool = True,
):
    """
    Log an event to the audit log.

    Args:
        db: Database session
        event_type: Type of event
        organization_id: Organization the event belongs to (if any)
        account_id: Acting account (if any)
        resource_type: Type of resource (e.g., "invitation", "campaign")
        resource_id: ID of the resource
        ip_address: IP address of the request
        user_agent: User agent string
        details: Additional details as a dictionary (will be JSON-encoded)
        commit: Commit immediately. Pass False to write the row as part of the
            caller's transaction.
    """
    audit_log = AuditLog(
        organization_id=organization_id,
        account_id=account_id,
        event_type=event_type,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        ip_address=ip_address,
        user_agent=user_agent,
        details=json.dumps(details, default=str) if details else None,
    )
    if not commit:
        db.add(audit_log)
        return

    try:
        db.add(audit_log)
        db.commit()
    except Exception as e:
        # Don't fail the request if audit logging fails
        logger.error(f"[AUDIT] Failed to log {event_type.value} event: {str(e)}")
        db.rollback()
