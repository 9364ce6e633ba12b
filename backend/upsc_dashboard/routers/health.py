from __future__ import annotations
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import get_db
from ..gemini_client import gemini_configured
from ..settings import DEFAULT_JWT_SECRET, settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
def health(db: Session = Depends(get_db)):
	try:
		db.execute(text("SELECT 1"))
		database = "ok"
	except SQLAlchemyError:
		logger.exception("health check could not reach the database")
		database = "error"
	secret_set = bool(settings.jwt_secret_key) and settings.jwt_secret_key != DEFAULT_JWT_SECRET
	return {
		"status": "healthy",
		"timestamp": datetime.now(timezone.utc).isoformat(),
		"jwt_secret": "SET" if secret_set else "NOT_SET",
		"database": database,
		"gemini_configured": gemini_configured(),
	}
