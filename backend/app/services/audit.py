from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLog
from app.models.user import User

logger = logging.getLogger(__name__)


def _actor_details(user: User | None, details: dict | None) -> dict:
    payload = dict(details or {})
    if user is None:
        payload.setdefault("actor", "system")
    else:
        payload.setdefault("actor_role", user.role.value)
    return payload


def log_activity(
    db: Session,
    *,
    user: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
) -> ActivityLog:
    """Queue an audit row on the caller's transaction; it commits with the change it describes."""
    record = ActivityLog(
        user_id=user.id if user is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=_actor_details(user, details),
    )
    db.add(record)
    logger.debug("Activity %s on %s %s by %s", action, entity_type, entity_id, record.user_id or "system")
    return record
