from typing import Optional

from fastapi import APIRouter, Depends, Query

from finivis.db.dal import Database
from finivis.services import audit

from .deps import get_db, require_admin

router = APIRouter(prefix="/admin/audit-logs", tags=["audit", "admin"])


@router.get("", summary="Admin audit trail, newest first")
async def list_audit_logs(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return audit.list_logs(db, entity_type, entity_id, limit)
