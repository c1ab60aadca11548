"""
Activity Log Service
Audit trail of office, cleaner and automated actions
"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import ActivityLog

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    action_type: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[Any] = None,
    details: Optional[dict[str, Any]] = None,
    user_id: Optional[int] = None,
) -> Optional[ActivityLog]:
    """
    Record an activity. Never raises; returns None when the write fails.
    """
    try:
        entry = ActivityLog(
            user_id=user_id,
            action_type=action_type,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            details=details or {},
        )
        db.add(entry)
        db.commit()
        logger.debug(f"📝 Activity logged: {action_type} {entity_type}:{entity_id}")
        return entry
    except Exception as e:
        logger.error(f"❌ Failed to log activity {action_type}: {e}")
        db.rollback()
        return None
