from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..sync import DATE_RE, CalendarSyncService, SyncError
from .auth import SessionUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/calendar", tags=["calendar"])


class ImportRequest(BaseModel):
	calendar: Optional[List[Dict[str, Any]]] = None
	schedule: Optional[List[Dict[str, Any]]] = None


class BlockStatus(BaseModel):
	block_id: Optional[str] = None
	completed: bool = True


def _service(user: SessionUser, db: Session) -> CalendarSyncService:
	return CalendarSyncService(db, user.id)


def _check_date(date: Optional[str]) -> None:
	if date and not DATE_RE.match(date):
		raise HTTPException(status_code=400, detail="Date must be in YYYY-MM-DD format")


@router.get("/events")
def list_events(date: Optional[str] = None, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	_check_date(date)
	return {"success": True, "data": [e.to_dict() for e in _service(user, db).events(date)]}


@router.post("/events", status_code=201)
def add_event(data: Dict[str, Any], user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	try:
		event = _service(user, db).add_event(data)
	except SyncError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	return {"success": True, "data": event.to_dict(), "message": "Event created successfully"}


@router.put("/events/{event_id}")
def update_event(event_id: str, updates: Dict[str, Any], user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	try:
		event = _service(user, db).update_event(event_id, updates)
	except SyncError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	if event is None:
		raise HTTPException(status_code=404, detail="Event not found")
	return {"success": True, "data": event.to_dict(), "message": "Event updated successfully"}


@router.delete("/events/{event_id}")
def delete_event(event_id: str, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if not _service(user, db).delete_event(event_id):
		raise HTTPException(status_code=404, detail="Event not found")
	return {"success": True, "message": "Event deleted successfully"}


@router.get("/schedule")
def list_schedule(date: Optional[str] = None, user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	_check_date(date)
	return {"success": True, "data": [b.to_dict() for b in _service(user, db).schedule(date)]}


@router.post("/schedule", status_code=201)
def add_block(data: Dict[str, Any], user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	try:
		block = _service(user, db).add_block(data)
	except SyncError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	return {"success": True, "data": block.to_dict(), "message": "Schedule block created successfully"}


@router.put("/schedule/{block_id}")
def update_block(block_id: str, updates: Dict[str, Any], user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	try:
		block = _service(user, db).update_block(block_id, updates)
	except SyncError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	if block is None:
		raise HTTPException(status_code=404, detail="Schedule block not found")
	return {"success": True, "data": block.to_dict(), "message": "Schedule block updated successfully"}


@router.delete("/schedule/{block_id}")
def delete_block(block_id: str, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if not _service(user, db).delete_block(block_id):
		raise HTTPException(status_code=404, detail="Schedule block not found")
	return {"success": True, "message": "Schedule block deleted successfully"}


@router.get("/today")
def today(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	service = _service(user, db)
	data = service.today_schedule()
	data["events"] = [e.to_dict() for e in service.todays_events()]
	return {"success": True, "data": data}


@router.post("/today")
def mark_block(req: BlockStatus, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if not req.block_id:
		raise HTTPException(status_code=400, detail="block_id is required")
	service = _service(user, db)
	if service.update_block(req.block_id, {"completed": req.completed}) is None:
		raise HTTPException(status_code=404, detail="Schedule block not found")
	return {"success": True, "data": service.today_schedule()}


@router.get("/export")
def export_calendar(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	return {"success": True, "data": _service(user, db).export_data()}


@router.post("/import")
def import_calendar(req: ImportRequest, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if req.calendar is None and req.schedule is None:
		raise HTTPException(status_code=400, detail="calendar or schedule data is required")
	try:
		counts = _service(user, db).import_data(req.model_dump(exclude_none=True))
	except SyncError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	return {"success": True, "data": counts, "message": "Calendar data imported successfully"}


@router.delete("")
def clear_calendar(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	_service(user, db).clear_all()
	return {"success": True, "message": "Calendar cleared"}
