import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from edutime.db import GetDb

router = APIRouter(prefix="/api", tags=["health"])
logger = logging.getLogger("core.health")


@router.get("/health")
def api_health() -> dict:
    logger.debug("health check ok")
    return {"status": "ok"}


@router.get("/health/db")
def api_health_db(db: Session = Depends(GetDb)) -> dict:
    try:
        db.execute(text("SELECT 1")).scalar()
    except SQLAlchemyError:
        logger.exception("db check failed")
        return {"status": "error", "detail": "database unavailable"}
    logger.debug("db check ok")
    return {"status": "ok"}
