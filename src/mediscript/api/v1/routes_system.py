from fastapi import APIRouter, Depends

from src.mediscript.api.dependencies import get_record_store
from src.mediscript.infra.storage.record_store import RecordStore

router = APIRouter(prefix="", tags=["system"])


@router.get("/health")
async def health_check_v1(store: RecordStore = Depends(get_record_store)) -> dict:
    """API v1 health endpoint, including whether the record store is open."""
    return {"status": "ok", "version": "v1", "store_open": store.is_open}
