"""Health and ready endpoints."""
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from apps.backend.config import get_settings
from apps.backend.deps import get_db

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


@router.get("/ready")
def ready(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        body = {"status": "error"}
        if not get_settings().is_production:
            body["detail"] = str(e)[:200]
        return JSONResponse(body, status_code=503)
    return {"status": "ok"}
