from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..wellness import WellnessError, WellnessService
from .auth import SessionUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wellness", tags=["wellness"])


class WellnessAction(BaseModel):
	action: Optional[str] = None
	data: Dict[str, Any] = {}
	entry_id: Optional[str] = None
	updates: Optional[Dict[str, Any]] = None


@router.get("")
def get_wellness(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	return {"success": True, "data": WellnessService(db, user.id).snapshot()}


@router.post("")
def post_wellness(req: WellnessAction, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	service = WellnessService(db, user.id)
	try:
		if req.action == "log":
			entry = service.log(req.data)
			return {"success": True, "data": entry.to_dict(), "message": "Wellness entry saved"}
		if req.action == "update":
			if not req.entry_id or req.updates is None:
				raise HTTPException(status_code=400, detail="entry_id and updates are required")
			entry = service.update(req.entry_id, req.updates)
			if entry is None:
				raise HTTPException(status_code=404, detail="Wellness entry not found")
			return {"success": True, "data": entry.to_dict(), "message": "Wellness entry updated"}
	except WellnessError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	raise HTTPException(status_code=400, detail="Invalid action")
