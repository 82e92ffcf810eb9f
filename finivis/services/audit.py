"""Admin audit trail.

Every admin mutation records who did what to which entity. Audit writes happen
after the mutation they describe has committed.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from finivis.db.dal import Database

logger = logging.getLogger(__name__)


def record(
    db: Database,
    admin: Dict[str, Any],
    action: str,
    entity_type: str,
    entity_id: Any,
    details: Optional[Dict[str, Any]] = None,
) -> int:
    log_id = db.insert_audit_log(admin["id"], action, entity_type, entity_id, details)
    logger.info(
        "admin %s %s %s:%s", admin["id"], action, entity_type, entity_id
    )
    return log_id


def list_logs(
    db: Database,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 100,
) -> List[Dict[str, Any]]:
    return db.list_audit_logs(entity_type=entity_type, entity_id=entity_id, limit=limit)
