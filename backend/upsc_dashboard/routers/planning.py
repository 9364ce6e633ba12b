from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..planning import PlanningError, RevisionService, SyllabusService
from .auth import SessionUser, get_current_user

logger = logging.getLogger(__name__)

syllabus_router = APIRouter(prefix="/api/syllabus", tags=["syllabus"])
revision_router = APIRouter(prefix="/api/revision", tags=["revision"])


class SyllabusUpdate(BaseModel):
	item_id: Optional[str] = None
	updates: Dict[str, Any] = {}


class RevisionAction(BaseModel):
	action: Optional[str] = None
	item_id: Optional[str] = None
	data: Dict[str, Any] = {}
	updates: Dict[str, Any] = {}
	confidence: Optional[int] = None


@syllabus_router.get("/progress")
def syllabus_progress(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	service = SyllabusService(db, user.id)
	if service.ensure_seeded():
		logger.info("seeded syllabus outline for %s", user.id)
	return {"success": True, "data": service.progress()}


@syllabus_router.post("/progress")
def update_syllabus(req: SyllabusUpdate, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if not req.item_id or not req.updates:
		raise HTTPException(status_code=400, detail="item_id and updates are required")
	service = SyllabusService(db, user.id)
	try:
		item = service.update(req.item_id, req.updates)
	except PlanningError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	if item is None:
		raise HTTPException(status_code=404, detail="Syllabus item not found")
	return {"success": True, "data": {"item": item.to_dict(), "progress": service.progress()}}


@revision_router.get("/engine")
def revision_engine(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	return {"success": True, "data": RevisionService(db, user.id).buckets()}


@revision_router.post("/engine")
def revision_action(req: RevisionAction, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	service = RevisionService(db, user.id)
	try:
		if req.action == "create":
			item = service.create(req.data)
			return {"success": True, "data": item.to_dict(), "message": "Revision item created"}
		if req.action in ("complete", "update"):
			if not req.item_id:
				raise HTTPException(status_code=400, detail="item_id is required")
			if req.action == "complete":
				item = service.complete(req.item_id, req.confidence)
			else:
				item = service.update(req.item_id, req.updates)
			if item is None:
				raise HTTPException(status_code=404, detail="Revision item not found")
			return {"success": True, "data": item.to_dict()}
	except PlanningError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	raise HTTPException(status_code=400, detail="Invalid action")
