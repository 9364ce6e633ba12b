from __future__ import annotations
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import audit
from ..accounts import find_user
from ..db import get_db
from ..subscriptions import SubscriptionError, SubscriptionService
from .auth import SessionUser, require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/subscriptions", tags=["admin-subscriptions"])


class AdminSubscribe(BaseModel):
	user_id: Optional[str] = None
	plan_type: Optional[str] = None


@router.get("")
def list_subscriptions(status: Optional[str] = None, plan_type: Optional[str] = None, user_id: Optional[str] = None,
		limit: int = 50, offset: int = 0, user: SessionUser = Depends(require_permission("subscriptions", "view")),
		db: Session = Depends(get_db)):
	rows = SubscriptionService(db).list_subscriptions(status=status, plan_type=plan_type, user_id=user_id)
	page = rows[offset:offset + limit]
	return {
		"success": True,
		"data": {
			"subscriptions": [s.to_dict() for s in page],
			"pagination": {"total": len(rows), "limit": limit, "offset": offset, "has_more": offset + limit < len(rows)},
		},
	}


@router.get("/stats")
def subscription_stats(user: SessionUser = Depends(require_permission("subscriptions", "view")),
		db: Session = Depends(get_db)):
	return {"success": True, "data": SubscriptionService(db).stats()}


@router.post("", status_code=201)
def create_subscription(req: AdminSubscribe, request: Request,
		user: SessionUser = Depends(require_permission("subscriptions", "manage")), db: Session = Depends(get_db)):
	if not req.user_id or not req.plan_type:
		raise HTTPException(status_code=400, detail="user_id and plan_type are required")
	if find_user(db, req.user_id) is None:
		raise HTTPException(status_code=404, detail="User not found")
	try:
		subscription = SubscriptionService(db).create_subscription(req.user_id, req.plan_type)
	except SubscriptionError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	audit.log_admin_event(db, audit.AuditActions.SUBSCRIPTION_CHANGE, audit.AuditResources.SUBSCRIPTION, actor=user,
		resource_id=subscription.id, request=request, details={"user_id": req.user_id, "plan_type": req.plan_type})
	return {"success": True, "data": subscription.to_dict(), "message": "Subscription created successfully"}
