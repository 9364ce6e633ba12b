from __future__ import annotations
import logging
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import audit
from ..coupons import CouponService, coupon_status
from ..db import get_db
from ..subscriptions import PLAN_PRICING, SubscriptionService
from .auth import SessionUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/coupons", tags=["coupons"])

BILLING_CYCLES = ("monthly", "yearly")


class CouponRequest(BaseModel):
	code: Optional[str] = None
	plan_type: str = "pro"
	billing_cycle: str = "monthly"


def _check_request(req: CouponRequest) -> Tuple[str, float]:
	code = (req.code or "").strip()
	if not code:
		raise HTTPException(status_code=400, detail="Coupon code is required")
	if req.plan_type != "pro":
		raise HTTPException(status_code=400, detail="Valid plan type is required (pro)")
	if req.billing_cycle not in BILLING_CYCLES:
		raise HTTPException(status_code=400, detail="Valid billing cycle is required (monthly, yearly)")
	return code, float(PLAN_PRICING[req.plan_type][req.billing_cycle])


@router.post("/validate")
def validate_coupon(req: CouponRequest, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	code, amount = _check_request(req)
	result = CouponService(db).validate_coupon(code, user.id, user.role, req.plan_type, amount)
	if not result.is_valid:
		raise HTTPException(status_code=400, detail={"error": result.error, "valid": False})
	coupon = result.coupon
	return {
		"success": True,
		"data": {
			"valid": True,
			"coupon": {
				"code": coupon.code,
				"description": coupon.description,
				"type": coupon.type,
				"value": coupon.value,
			},
			"pricing": {
				"original_amount": amount,
				"discount_amount": result.discount_amount,
				"final_amount": result.final_amount,
				"savings": result.discount_amount,
				"plan_type": req.plan_type,
				"billing_cycle": req.billing_cycle,
			},
			"warnings": result.warnings,
		},
	}


@router.get("/validate")
def coupon_info(code: Optional[str] = None, user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	if not code:
		raise HTTPException(status_code=400, detail="Coupon code is required")
	coupon = CouponService(db).get_by_code(code)
	if coupon is None:
		raise HTTPException(status_code=404, detail="Coupon code not found")
	return {
		"success": True,
		"data": {
			"code": coupon.code,
			"description": coupon.description,
			"type": coupon.type,
			"value": coupon.value,
			"max_discount": coupon.max_discount,
			"min_amount": coupon.min_amount,
			"valid_from": coupon.valid_from.isoformat(),
			"valid_until": coupon.valid_until.isoformat(),
			"status": coupon_status(coupon),
		},
	}


@router.post("/redeem")
def redeem_coupon(req: CouponRequest, request: Request, user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	code, amount = _check_request(req)
	coupons = CouponService(db)
	result = coupons.validate_coupon(code, user.id, user.role, req.plan_type, amount)
	if not result.is_valid:
		raise HTTPException(status_code=400, detail=result.error)
	coupon = result.coupon
	usage = coupons.record_usage(
		coupon,
		user_id=user.id,
		user_email=user.email,
		discount_amount=result.discount_amount,
		original_amount=amount,
		final_amount=result.final_amount,
		plan_type=req.plan_type,
		ip_address=audit.client_ip(request),
		user_agent=request.headers.get("user-agent"),
	)
	subscriptions = SubscriptionService(db)
	if coupon.type == "trial_extension":
		current = subscriptions.get_active_user_subscription(user.id)
		if current is not None and current.plan_type == "trial":
			subscription = subscriptions.extend_trial(user.id, int(coupon.value))
		else:
			subscription = subscriptions.create_subscription(user.id, "trial", coupon.code, result.discount_amount)
	else:
		subscription = subscriptions.upgrade_plan(user.id, "pro", coupon.code, result.discount_amount)
	audit.log_event(
		db,
		action=audit.AuditActions.COUPON_REDEEM,
		resource=audit.AuditResources.COUPON,
		actor=user,
		request=request,
		resource_id=coupon.id,
		details={"code": coupon.code, "discount": result.discount_amount, "subscription_id": subscription.id},
	)
	return {
		"success": True,
		"data": {
			"redemption": {
				"coupon_code": coupon.code,
				"discount_amount": result.discount_amount,
				"original_amount": amount,
				"final_amount": result.final_amount,
				"savings": result.discount_amount,
				"plan_type": req.plan_type,
				"billing_cycle": req.billing_cycle,
				"redeemed_at": usage.used_at.isoformat(),
			},
			"subscription": subscription.to_dict(),
		},
		"message": "Coupon redeemed successfully",
	}


@router.get("/redeem")
def redemption_history(limit: int = 10, offset: int = 0, user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	history = CouponService(db).usage_history(user_id=user.id)
	page = history[offset:offset + limit]
	return {
		"success": True,
		"data": {
			"history": [
				{
					"id": u.id,
					"coupon_code": u.coupon_code,
					"discount_amount": u.discount_amount,
					"original_amount": u.original_amount,
					"final_amount": u.final_amount,
					"plan_type": u.plan_type,
					"used_at": u.used_at.isoformat(),
				}
				for u in page
			],
			"pagination": {"total": len(history), "limit": limit, "offset": offset, "has_more": offset + limit < len(history)},
		},
	}
