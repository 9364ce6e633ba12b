from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import rbac
from ..db import get_db
from ..tenancy import ALLOWED_DATA_TYPES, add_record, delete_record, get_record, read_records, update_record
from .auth import SessionUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tenant-data", tags=["tenant-data"])


def _check_type(data_type: str) -> None:
	if data_type not in ALLOWED_DATA_TYPES:
		raise HTTPException(status_code=400, detail=f"Invalid data type: {data_type}")


def _owned_record(db: Session, user: SessionUser, data_type: str, record_id: str):
	record = get_record(db, user.tenant_id, data_type, record_id)
	if record is None:
		raise HTTPException(status_code=404, detail="Record not found")
	# Staff may manage records of anyone in their tenant
	if record.user_id != user.id and not rbac.has_role_level(user.role, "teacher"):
		raise HTTPException(status_code=403, detail="Access denied")
	return record


@router.get("/{data_type}")
def get_data(data_type: str, user_id: Optional[str] = None, user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	_check_type(data_type)
	target = user_id or user.id
	if target != user.id and not rbac.has_role_level(user.role, "teacher"):
		raise HTTPException(status_code=403, detail="Access denied")
	records = read_records(db, user.tenant_id, data_type, target)
	return {"success": True, "data": [r.to_dict() for r in records]}


@router.post("/{data_type}", status_code=201)
def post_data(data_type: str, payload: Dict[str, Any], user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	_check_type(data_type)
	record = add_record(db, user.tenant_id, data_type, user.id, payload)
	logger.debug("stored %s record %s for %s", data_type, record.id, user.id)
	return {"success": True, "data": record.to_dict(), "message": "Data saved successfully"}


@router.put("/{data_type}")
def put_data(data_type: str, payload: Dict[str, Any], user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	_check_type(data_type)
	record_id = payload.get("id")
	if not record_id:
		raise HTTPException(status_code=400, detail="Record id is required")
	record = _owned_record(db, user, data_type, str(record_id))
	record = update_record(db, record, payload)
	return {"success": True, "data": record.to_dict(), "message": "Data updated successfully"}


@router.delete("/{data_type}")
def delete_data(data_type: str, id: Optional[str] = None, user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	_check_type(data_type)
	if not id:
		raise HTTPException(status_code=400, detail="Record id is required")
	record = _owned_record(db, user, data_type, id)
	delete_record(db, record)
	return {"success": True, "message": "Data deleted successfully"}
