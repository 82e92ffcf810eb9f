from fastapi import APIRouter, Depends

from finivis.core.config import Settings
from finivis.db.dal import Database
from finivis.db.migrate import SCHEMA_VERSION_KEY

from .deps import get_app_settings, get_db

router = APIRouter(tags=["health"])


@router.get("/health", summary="Liveness and schema version")
async def health(
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    return {
        "status": "ok",
        "version": settings.version,
        "schema_version": int(db.get_metadata(SCHEMA_VERSION_KEY) or 0),
    }
