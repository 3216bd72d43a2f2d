from __future__ import annotations

import os

from fastapi import APIRouter, Depends

from utils.settings import Settings, get_settings

router = APIRouter()


@router.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    """Lightweight health check: the form store directory must be writable."""
    store_ok = os.path.isdir(settings.forms_data_dir) and os.access(settings.forms_data_dir, os.W_OK)
    return {"status": "ok" if store_ok else "fail", "store": store_ok}
