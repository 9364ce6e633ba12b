from __future__ import annotations
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import audit
from ..db import get_db
from ..subscriptions import PLAN_FEATURES, PLAN_PRICING, SubscriptionError, SubscriptionService, feature_enabled
from .auth import SessionUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


class SubscribeRequest(BaseModel):
	plan_type: Optional[str] = None
	coupon_code: Optional[str] = None
	discount_applied: Optional[float] = None


class FeatureCheck(BaseModel):
	features: List[str] = []


@router.get("")
def current_subscription(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	service = SubscriptionService(db)
	subscription = service.get_active_user_subscription(user.id)
	return {
		"success": True,
		"data": {
			"subscription": subscription.to_dict() if subscription else None,
			"plan_type": service.get_user_plan_type(user.id),
			"features": service.get_user_plan_features(user.id),
			"pricing": PLAN_PRICING,
		},
	}


@router.post("", status_code=201)
def subscribe(req: SubscribeRequest, request: Request, user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	if req.plan_type not in ("trial", "pro"):
		raise HTTPException(status_code=400, detail="Valid plan type is required (trial, pro)")
	try:
		subscription = SubscriptionService(db).create_subscription(user.id, req.plan_type, req.coupon_code,
			req.discount_applied)
	except SubscriptionError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	audit.log_event(db, action=audit.AuditActions.SUBSCRIPTION_CHANGE, resource=audit.AuditResources.SUBSCRIPTION,
		actor=user, request=request, resource_id=subscription.id, details={"plan_type": subscription.plan_type})
	return {"success": True, "data": subscription.to_dict(), "message": "Subscription created successfully"}


@router.delete("")
def cancel_subscription(request: Request, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	service = SubscriptionService(db)
	subscription = service.get_active_user_subscription(user.id)
	if subscription is None:
		raise HTTPException(status_code=404, detail="No active subscription found")
	subscription = service.cancel(subscription)
	audit.log_event(db, action=audit.AuditActions.SUBSCRIPTION_CHANGE, resource=audit.AuditResources.SUBSCRIPTION,
		actor=user, request=request, resource_id=subscription.id, details={"status": "cancelled"})
	return {"success": True, "data": subscription.to_dict(), "message": "Subscription cancelled successfully"}


@router.get("/features")
def check_feature(feature: Optional[str] = None, user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	service = SubscriptionService(db)
	features = service.get_user_plan_features(user.id)
	if not feature:
		return {"success": True, "data": {"plan_type": service.get_user_plan_type(user.id), "features": features}}
	if feature not in PLAN_FEATURES["pro"]:
		raise HTTPException(status_code=400, detail=f"Unknown feature: {feature}")
	return {
		"success": True,
		"data": {
			"feature": feature,
			"has_access": feature_enabled(features.get(feature)),
			"value": features.get(feature),
		},
	}


@router.post("/features")
def check_features(req: FeatureCheck, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if not req.features:
		raise HTTPException(status_code=400, detail="Features array is required")
	service = SubscriptionService(db)
	features = service.get_user_plan_features(user.id)
	return {
		"success": True,
		"data": {
			"plan_type": service.get_user_plan_type(user.id),
			"access": {name: feature_enabled(features.get(name)) for name in req.features},
		},
	}
