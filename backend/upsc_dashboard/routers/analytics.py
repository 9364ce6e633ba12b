from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import audit, rbac
from ..analytics import AnalyticsError, AnalyticsService
from ..db import get_db
from .auth import SessionUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


class SessionStart(BaseModel):
	referrer: Optional[str] = None


class SessionEnd(BaseModel):
	session_id: Optional[str] = None
	exit_page: Optional[str] = None


class PageViewRequest(BaseModel):
	session_id: Optional[str] = None
	path: Optional[str] = None
	title: str = ""
	load_time: Optional[int] = None


class PageViewUpdate(BaseModel):
	page_view_id: Optional[str] = None
	time_on_page: Optional[int] = None
	interactions: Optional[int] = None
	scroll_depth: Optional[int] = None


class EventRequest(BaseModel):
	session_id: Optional[str] = None
	event_type: Optional[str] = None
	event_data: Dict[str, Any] = {}
	page: str = ""


@router.post("/session")
def start_session(req: SessionStart, request: Request, user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	session = AnalyticsService(db).start_session(
		user.id,
		request.headers.get("user-agent"),
		audit.client_ip(request),
		req.referrer or request.headers.get("referer"),
	)
	return {"success": True, "data": {"session_id": session.id}}


@router.post("/session/end")
def end_session(req: SessionEnd, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if not req.session_id:
		raise HTTPException(status_code=400, detail="session_id is required")
	service = AnalyticsService(db)
	session = service.get_session(req.session_id)
	if session is None or session.user_id != user.id:
		raise HTTPException(status_code=404, detail="Session not found")
	session = service.end_session(session, req.exit_page)
	return {"success": True, "data": {"session_id": session.id, "duration": session.duration}}


@router.post("/pageview")
def track_page_view(req: PageViewRequest, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if not req.session_id or not req.path:
		raise HTTPException(status_code=400, detail="session_id and path are required")
	view = AnalyticsService(db).track_page_view(req.session_id, user.id, req.path, req.title, req.load_time)
	return {"success": True, "data": {"page_view_id": view.id}}


@router.post("/pageview/update")
def update_page_view(req: PageViewUpdate, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if not req.page_view_id:
		raise HTTPException(status_code=400, detail="page_view_id is required")
	service = AnalyticsService(db)
	view = service.get_page_view(req.page_view_id)
	if view is None or view.user_id != user.id:
		raise HTTPException(status_code=404, detail="Page view not found")
	view = service.update_page_view(view, req.model_dump(exclude={"page_view_id"}))
	return {"success": True, "data": view.to_dict()}


@router.post("/event")
def track_event(req: EventRequest, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if not req.session_id or not req.event_type:
		raise HTTPException(status_code=400, detail="session_id and event_type are required")
	try:
		event = AnalyticsService(db).track_event(user.id, req.session_id, req.event_type, req.event_data, req.page)
	except AnalyticsError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	return {"success": True, "data": {"event_id": event.id}}


@router.get("/user/{user_id}")
def user_analytics(user_id: str, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if user_id != user.id and not rbac.has_permission(user, "analytics", "view"):
		raise HTTPException(status_code=403, detail="Insufficient permissions")
	return {"success": True, "data": AnalyticsService(db).user_summary(user_id)}
