from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import audit
from ..coupons import CouponError, CouponService, coupon_status, generate_coupon_code
from ..db import get_db
from ..models import Coupon
from .auth import SessionUser, require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/coupons", tags=["admin-coupons"])

manage_coupons = require_permission("coupons", "manage")


class BulkUpdate(BaseModel):
	coupon_ids: List[str] = []
	updates: Dict[str, Any] = {}


def _coupon_payload(coupon: Coupon) -> Dict[str, Any]:
	data = coupon.to_dict()
	data["status"] = coupon_status(coupon)
	return data


def _load(service: CouponService, coupon_id: str) -> Coupon:
	coupon = service.get(coupon_id)
	if coupon is None:
		raise HTTPException(status_code=404, detail="Coupon not found")
	return coupon


def _error_status(exc: CouponError) -> int:
	return 409 if "already exists" in str(exc) else 400


@router.get("")
def list_coupons(search: Optional[str] = None, status: Optional[str] = None,
		user: SessionUser = Depends(manage_coupons), db: Session = Depends(get_db)):
	coupons = CouponService(db).list_coupons(search=search, status=status)
	return {"success": True, "data": [_coupon_payload(c) for c in coupons]}


@router.post("", status_code=201)
def create_coupon(data: Dict[str, Any], request: Request, user: SessionUser = Depends(manage_coupons),
		db: Session = Depends(get_db)):
	try:
		coupon = CouponService(db).create(data, created_by=user.id)
	except CouponError as exc:
		raise HTTPException(status_code=_error_status(exc), detail=str(exc)) from None
	audit.log_admin_event(db, audit.AuditActions.COUPON_CREATE, audit.AuditResources.COUPON, actor=user,
		resource_id=coupon.id, request=request, details={"code": coupon.code})
	return {"success": True, "data": _coupon_payload(coupon), "message": "Coupon created successfully"}


# Must stay above the /{coupon_id} routes

@router.get("/stats")
def coupon_stats(user: SessionUser = Depends(manage_coupons), db: Session = Depends(get_db)):
	return {"success": True, "data": CouponService(db).stats()}


@router.get("/generate-code")
def generate_code(prefix: str = "UPSC", length: int = 8, user: SessionUser = Depends(manage_coupons),
		db: Session = Depends(get_db)):
	if not 4 <= length <= 16:
		raise HTTPException(status_code=400, detail="Length must be between 4 and 16")
	service = CouponService(db)
	code = generate_coupon_code(prefix.upper(), length)
	while service.get_by_code(code) is not None:
		code = generate_coupon_code(prefix.upper(), length)
	return {"success": True, "data": {"code": code}}


@router.post("/bulk")
def bulk_update(req: BulkUpdate, request: Request, user: SessionUser = Depends(manage_coupons),
		db: Session = Depends(get_db)):
	if not req.coupon_ids or not req.updates:
		raise HTTPException(status_code=400, detail="coupon_ids and updates are required")
	try:
		updated = CouponService(db).bulk_update(req.coupon_ids, req.updates)
	except CouponError as exc:
		raise HTTPException(status_code=_error_status(exc), detail=str(exc)) from None
	audit.log_admin_event(db, audit.AuditActions.COUPON_UPDATE, audit.AuditResources.COUPON, actor=user,
		request=request, details={"coupon_ids": [c.id for c in updated], "fields": sorted(req.updates)})
	return {
		"success": True,
		"data": [_coupon_payload(c) for c in updated],
		"message": f"Updated {len(updated)} coupons",
	}


@router.get("/{coupon_id}")
def get_coupon(coupon_id: str, user: SessionUser = Depends(manage_coupons), db: Session = Depends(get_db)):
	service = CouponService(db)
	coupon = _load(service, coupon_id)
	data = _coupon_payload(coupon)
	data["usage_history"] = [u.to_dict() for u in service.usage_history(coupon_id=coupon.id)]
	return {"success": True, "data": data}


@router.put("/{coupon_id}")
def update_coupon(coupon_id: str, updates: Dict[str, Any], request: Request,
		user: SessionUser = Depends(manage_coupons), db: Session = Depends(get_db)):
	service = CouponService(db)
	coupon = _load(service, coupon_id)
	try:
		coupon = service.update(coupon, updates)
	except CouponError as exc:
		raise HTTPException(status_code=_error_status(exc), detail=str(exc)) from None
	audit.log_admin_event(db, audit.AuditActions.COUPON_UPDATE, audit.AuditResources.COUPON, actor=user,
		resource_id=coupon.id, request=request, details={"fields": sorted(updates)})
	return {"success": True, "data": _coupon_payload(coupon), "message": "Coupon updated successfully"}


@router.delete("/{coupon_id}")
def delete_coupon(coupon_id: str, request: Request, user: SessionUser = Depends(manage_coupons),
		db: Session = Depends(get_db)):
	service = CouponService(db)
	coupon = _load(service, coupon_id)
	code = coupon.code
	service.delete(coupon)
	audit.log_admin_event(db, audit.AuditActions.COUPON_DELETE, audit.AuditResources.COUPON, actor=user,
		resource_id=coupon_id, request=request, details={"code": code})
	return {"success": True, "message": "Coupon deleted successfully"}


@router.post("/{coupon_id}/toggle")
def toggle_coupon(coupon_id: str, request: Request, user: SessionUser = Depends(manage_coupons),
		db: Session = Depends(get_db)):
	service = CouponService(db)
	coupon = service.toggle(_load(service, coupon_id))
	audit.log_admin_event(db, audit.AuditActions.COUPON_UPDATE, audit.AuditResources.COUPON, actor=user,
		resource_id=coupon.id, request=request, details={"is_active": coupon.is_active})
	state = "activated" if coupon.is_active else "deactivated"
	return {"success": True, "data": _coupon_payload(coupon), "message": f"Coupon {state} successfully"}
