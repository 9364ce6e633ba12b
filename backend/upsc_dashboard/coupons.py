from __future__ import annotations
import logging
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .models import Coupon, CouponUsage, make_id, utcnow

logger = logging.getLogger(__name__)

COUPON_TYPES = ("percentage", "fixed", "trial_extension", "upgrade_promo")
CODE_PATTERN = re.compile(r"^[A-Z0-9\-_]+$")
RESERVED_CODES = {"TEST", "ADMIN", "SYSTEM", "DEFAULT"}
# No 0/O or 1/I/L, they get misread when typed in by hand
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"

EDITABLE_FIELDS = (
	"code", "description", "type", "value", "max_discount", "min_amount", "usage_limit",
	"user_usage_limit", "valid_from", "valid_until", "is_active", "eligible_plans", "eligible_roles",
)


class CouponError(ValueError):
	pass


@dataclass
class CouponValidation:
	is_valid: bool
	error: Optional[str] = None
	coupon: Optional[Coupon] = None
	discount_amount: float = 0
	final_amount: float = 0
	warnings: List[str] = field(default_factory=list)


def _as_datetime(value: Any) -> Optional[datetime]:
	if value is None or value == "":
		return None
	if isinstance(value, datetime):
		parsed = value
	else:
		try:
			parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
		except ValueError:
			raise CouponError(f"Invalid date: {value}") from None
	if parsed.tzinfo is not None:
		parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
	return parsed


def validate_coupon_data(data: Dict[str, Any], *, now: Optional[datetime] = None) -> List[str]:
	"""Check a coupon definition and return every problem found."""
	errors: List[str] = []
	now = now or utcnow()
	code = data.get("code")
	if code is not None:
		if len(code) < 3:
			errors.append("Coupon code must be at least 3 characters long")
		if len(code) > 50:
			errors.append("Coupon code must be no more than 50 characters long")
		if not CODE_PATTERN.match(code):
			errors.append("Coupon code can only contain uppercase letters, numbers, hyphens, and underscores")
		if code in RESERVED_CODES:
			errors.append("This coupon code is reserved and cannot be used")
	description = data.get("description")
	if description is not None:
		if len(description) < 10:
			errors.append("Description must be at least 10 characters long")
		if len(description) > 200:
			errors.append("Description must be no more than 200 characters long")
	coupon_type = data.get("type")
	if coupon_type is not None and coupon_type not in COUPON_TYPES:
		errors.append(f"Coupon type must be one of: {', '.join(COUPON_TYPES)}")
	value = data.get("value")
	if value is not None:
		if coupon_type == "percentage" and not 1 <= value <= 100:
			errors.append("Percentage discount must be between 1% and 100%")
		if coupon_type == "fixed" and not 1 <= value <= 10000:
			errors.append("Fixed discount must be between ₹1 and ₹10000")
	valid_from = data.get("valid_from")
	valid_until = data.get("valid_until")
	if valid_from and valid_until and valid_from >= valid_until:
		errors.append("Valid from date must be before valid until date")
	if valid_until and valid_until <= now:
		errors.append("Valid until date must be in the future")
	usage_limit = data.get("usage_limit")
	if usage_limit is not None and not 1 <= usage_limit <= 100000:
		errors.append("Usage limit must be between 1 and 100000")
	user_usage_limit = data.get("user_usage_limit")
	if user_usage_limit is not None and not 1 <= user_usage_limit <= 100:
		errors.append("User usage limit must be between 1 and 100")
	return errors


def generate_coupon_code(prefix: str = "UPSC", length: int = 8) -> str:
	suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
	return f"{prefix}{suffix}"


def calculate_discount(coupon: Coupon, amount: float) -> tuple[float, float]:
	discount = 0.0
	if coupon.type == "percentage":
		discount = amount * coupon.value / 100
		if coupon.max_discount:
			discount = min(discount, coupon.max_discount)
	elif coupon.type == "fixed":
		discount = min(coupon.value, amount)
	elif coupon.type == "upgrade_promo":
		discount = amount * coupon.value / 100
	# trial_extension carries no money off
	return discount, max(0.0, amount - discount)


def coupon_status(coupon: Coupon, now: Optional[datetime] = None) -> str:
	now = now or utcnow()
	if coupon.valid_until <= now:
		return "expired"
	if not coupon.is_active:
		return "inactive"
	return "active"


class CouponService:
	def __init__(self, db: Session) -> None:
		self.db = db

	def _normalize(self, data: Dict[str, Any]) -> Dict[str, Any]:
		clean = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
		if clean.get("code"):
			clean["code"] = str(clean["code"]).strip().upper()
		for key in ("valid_from", "valid_until"):
			if key in clean:
				clean[key] = _as_datetime(clean[key])
		return clean

	def create(self, data: Dict[str, Any], created_by: Optional[str] = None) -> Coupon:
		clean = self._normalize(data)
		clean.setdefault("valid_from", utcnow())
		missing = [k for k in ("code", "description", "type", "value", "valid_until") if clean.get(k) in (None, "")]
		if missing:
			raise CouponError(f"Missing required fields: {', '.join(missing)}")
		errors = validate_coupon_data(clean)
		if errors:
			raise CouponError(f"Validation failed: {', '.join(errors)}")
		if self.get_by_code(clean["code"]):
			raise CouponError("A coupon with this code already exists")
		coupon = Coupon(id=make_id("coupon"), used_count=0, is_active=clean.pop("is_active", True), created_by=created_by, **clean)
		self.db.add(coupon)
		self.db.commit()
		self.db.refresh(coupon)
		logger.info("created coupon %s", coupon.code)
		return coupon

	def get(self, coupon_id: str) -> Optional[Coupon]:
		return self.db.get(Coupon, coupon_id)

	def get_by_code(self, code: str) -> Optional[Coupon]:
		return self.db.query(Coupon).filter(func.upper(Coupon.code) == (code or "").strip().upper()).first()

	def update(self, coupon: Coupon, updates: Dict[str, Any]) -> Coupon:
		clean = self._normalize(updates)
		if clean.get("code") and clean["code"] != coupon.code:
			if self.get_by_code(clean["code"]):
				raise CouponError("A coupon with this code already exists")
		merged = {key: getattr(coupon, key) for key in EDITABLE_FIELDS}
		merged.update(clean)
		# Only re-check the fields being changed, plus the date pair and value/type pair together
		to_check = dict(clean)
		if "valid_from" in clean or "valid_until" in clean:
			to_check["valid_from"] = merged["valid_from"]
			to_check["valid_until"] = merged["valid_until"]
		if "value" in clean or "type" in clean:
			to_check["value"] = merged["value"]
			to_check["type"] = merged["type"]
		errors = validate_coupon_data(to_check)
		if errors:
			raise CouponError(f"Validation failed: {', '.join(errors)}")
		for key, value in clean.items():
			setattr(coupon, key, value)
		coupon.updated_at = utcnow()
		self.db.commit()
		self.db.refresh(coupon)
		return coupon

	def delete(self, coupon: Coupon) -> None:
		self.db.delete(coupon)
		self.db.commit()

	def toggle(self, coupon: Coupon) -> Coupon:
		coupon.is_active = not coupon.is_active
		coupon.updated_at = utcnow()
		self.db.commit()
		self.db.refresh(coupon)
		return coupon

	def bulk_update(self, coupon_ids: List[str], updates: Dict[str, Any]) -> List[Coupon]:
		updated = []
		for coupon_id in coupon_ids:
			coupon = self.get(coupon_id)
			if coupon is not None:
				updated.append(self.update(coupon, updates))
		return updated

	def list_coupons(self, *, search: Optional[str] = None, status: Optional[str] = None) -> List[Coupon]:
		query = self.db.query(Coupon)
		if search:
			term = f"%{search.strip()}%"
			query = query.filter(or_(Coupon.code.ilike(term), Coupon.description.ilike(term)))
		coupons = query.order_by(Coupon.created_at.desc()).all()
		if status:
			now = utcnow()
			coupons = [c for c in coupons if coupon_status(c, now) == status]
		return coupons

	def active_coupons(self) -> List[Coupon]:
		return self.list_coupons(status="active")

	def expired_coupons(self) -> List[Coupon]:
		return self.list_coupons(status="expired")

	def user_usage_count(self, user_id: str, coupon_id: str) -> int:
		return (
			self.db.query(CouponUsage)
			.filter(CouponUsage.user_id == user_id, CouponUsage.coupon_id == coupon_id)
			.count()
		)

	def validate_coupon(self, code: str, user_id: str, user_role: str, plan_type: str, amount: float) -> CouponValidation:
		coupon = self.get_by_code(code)
		if coupon is None:
			return CouponValidation(False, "Coupon code not found")
		if not coupon.is_active:
			return CouponValidation(False, "This coupon is no longer active")
		now = utcnow()
		if now < coupon.valid_from:
			return CouponValidation(False, "This coupon is not yet valid")
		if now > coupon.valid_until:
			return CouponValidation(False, "This coupon has expired")
		if coupon.usage_limit and coupon.used_count >= coupon.usage_limit:
			return CouponValidation(False, "This coupon has reached its usage limit")
		if coupon.user_usage_limit and self.user_usage_count(user_id, coupon.id) >= coupon.user_usage_limit:
			return CouponValidation(False, "You have reached the usage limit for this coupon")
		if coupon.eligible_roles and user_role not in coupon.eligible_roles:
			return CouponValidation(False, "This coupon is not available for your account type")
		if coupon.eligible_plans and plan_type not in coupon.eligible_plans:
			return CouponValidation(False, "This coupon is not applicable to your selected plan")
		if coupon.min_amount and amount < coupon.min_amount:
			return CouponValidation(False, f"Minimum purchase amount of ₹{coupon.min_amount:g} required for this coupon")
		discount, final = calculate_discount(coupon, amount)
		return CouponValidation(
			True,
			coupon=coupon,
			discount_amount=discount,
			final_amount=final,
			warnings=["No discount applied"] if discount == 0 else [],
		)

	def record_usage(self, coupon: Coupon, *, user_id: str, user_email: Optional[str], discount_amount: float,
			original_amount: float, final_amount: float, plan_type: str, ip_address: Optional[str] = None,
			user_agent: Optional[str] = None) -> CouponUsage:
		usage = CouponUsage(
			id=make_id("usage"),
			coupon_id=coupon.id,
			coupon_code=coupon.code,
			user_id=user_id,
			user_email=user_email,
			discount_amount=discount_amount,
			original_amount=original_amount,
			final_amount=final_amount,
			plan_type=plan_type,
			used_at=utcnow(),
			ip_address=ip_address,
			user_agent=user_agent,
		)
		self.db.add(usage)
		coupon.used_count = (coupon.used_count or 0) + 1
		coupon.updated_at = utcnow()
		self.db.commit()
		self.db.refresh(usage)
		return usage

	def usage_history(self, coupon_id: Optional[str] = None, user_id: Optional[str] = None) -> List[CouponUsage]:
		query = self.db.query(CouponUsage)
		if coupon_id:
			query = query.filter(CouponUsage.coupon_id == coupon_id)
		if user_id:
			query = query.filter(CouponUsage.user_id == user_id)
		return query.order_by(CouponUsage.used_at.desc()).all()

	def stats(self) -> Dict[str, Any]:
		coupons = self.db.query(Coupon).all()
		usage = self.db.query(CouponUsage).all()
		now = utcnow()
		total_savings = sum(u.discount_amount for u in usage)
		top: Dict[str, Dict[str, Any]] = {c.id: {"code": c.code, "usage_count": 0, "total_savings": 0.0} for c in coupons}
		months: Dict[str, Dict[str, Any]] = {}
		for u in usage:
			if u.coupon_id in top:
				top[u.coupon_id]["usage_count"] += 1
				top[u.coupon_id]["total_savings"] += u.discount_amount
			key = u.used_at.strftime("%Y-%m")
			bucket = months.setdefault(key, {"month": key, "usage": 0, "savings": 0.0})
			bucket["usage"] += 1
			bucket["savings"] += u.discount_amount
		return {
			"total": len(coupons),
			"active": sum(1 for c in coupons if c.is_active and c.valid_until > now),
			"expired": sum(1 for c in coupons if c.valid_until <= now),
			"inactive": sum(1 for c in coupons if not c.is_active),
			"total_usage": len(usage),
			"total_savings": total_savings,
			"average_discount": total_savings / len(usage) if usage else 0,
			"top_coupons": sorted(top.values(), key=lambda t: t["usage_count"], reverse=True)[:10],
			"usage_by_month": [months[k] for k in sorted(months)][-12:],
		}
