import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.db.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


@router.get("/health")
def health(db: Session = Depends(get_db)):
    s = get_settings()
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.warning("Database unreachable: %s", e)
        database = "error"
    return {"status": "ok" if database == "ok" else "degraded", "database": database, "version": s.APP_VERSION}


@router.get("/version")
def version():
    s = get_settings()
    return {"name": s.APP_NAME, "version": s.APP_VERSION, "env": s.APP_ENV}
