from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..knowledge import KnowledgeBaseService, KnowledgeError
from .auth import SessionUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/knowledge-base", tags=["knowledge-base"])


class KnowledgeAction(BaseModel):
	action: Optional[str] = None
	item_id: Optional[str] = None
	data: Dict[str, Any] = {}
	updates: Dict[str, Any] = {}


def _service(user: SessionUser, db: Session) -> KnowledgeBaseService:
	return KnowledgeBaseService(db, user.id, user.tenant_id)


@router.get("")
def get_knowledge(category: Optional[str] = None, search: Optional[str] = None,
		user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	service = _service(user, db)
	if service.ensure_seeded():
		logger.info("seeded starter knowledge items for %s", user.id)
	return {"success": True, "data": service.summary(category, search)}


@router.post("")
def post_knowledge(req: KnowledgeAction, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	service = _service(user, db)
	if req.action == "create":
		try:
			item = service.create(req.data)
		except KnowledgeError as exc:
			raise HTTPException(status_code=400, detail=str(exc)) from None
		return {"success": True, "data": item.to_dict(), "message": "Item created successfully"}
	if req.action not in ("update", "access", "toggle_favorite", "delete"):
		raise HTTPException(status_code=400, detail="Invalid action")
	if not req.item_id:
		raise HTTPException(status_code=400, detail="item_id is required")
	if req.action == "delete":
		if not service.delete(req.item_id):
			raise HTTPException(status_code=404, detail="Item not found")
		return {"success": True, "message": "Item deleted successfully"}
	try:
		if req.action == "update":
			item = service.update(req.item_id, req.updates)
		elif req.action == "access":
			item = service.access(req.item_id)
		else:
			item = service.toggle_favorite(req.item_id)
	except KnowledgeError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	if item is None:
		raise HTTPException(status_code=404, detail="Item not found")
	return {"success": True, "data": item.to_dict()}
