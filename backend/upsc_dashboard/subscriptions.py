from __future__ import annotations
import calendar
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from .models import Subscription, make_id, utcnow

logger = logging.getLogger(__name__)

PLAN_TYPES = ("free", "trial", "pro")
TRIAL_DAYS = 7

PLAN_PRICING: Dict[str, Dict[str, int]] = {
	"free": {"monthly": 0, "yearly": 0},
	"trial": {"monthly": 0, "yearly": 0},
	"pro": {"monthly": 200, "yearly": 2000},
}

FeatureValue = Union[bool, int, str]

PLAN_FEATURES: Dict[str, Dict[str, FeatureValue]] = {
	"free": {
		"ai_queries_per_day": 10,
		"question_bank_access": 50,
		"advanced_analytics": False,
		"interactive_maps": False,
		"current_affairs_hub": False,
		"goal_tracking": False,
		"priority_support": False,
		"offline_access": False,
		"progress_export": False,
		"custom_study_plans": False,
		"mock_test_series": False,
		"performance_predictions": False,
	},
	"trial": {
		"ai_queries_per_day": "unlimited",
		"question_bank_access": "unlimited",
		"advanced_analytics": True,
		"interactive_maps": True,
		"current_affairs_hub": True,
		"goal_tracking": True,
		"priority_support": False,
		"offline_access": True,
		"progress_export": True,
		"custom_study_plans": True,
		"mock_test_series": True,
		"performance_predictions": True,
	},
	"pro": {
		"ai_queries_per_day": "unlimited",
		"question_bank_access": "unlimited",
		"advanced_analytics": True,
		"interactive_maps": True,
		"current_affairs_hub": True,
		"goal_tracking": True,
		"priority_support": True,
		"offline_access": True,
		"progress_export": True,
		"custom_study_plans": True,
		"mock_test_series": True,
		"performance_predictions": True,
	},
}


class SubscriptionError(ValueError):
	pass


def add_months(value: datetime, months: int) -> datetime:
	month_index = value.month - 1 + months
	year = value.year + month_index // 12
	month = month_index % 12 + 1
	day = min(value.day, calendar.monthrange(year, month)[1])
	return value.replace(year=year, month=month, day=day)


def feature_enabled(value: Optional[FeatureValue]) -> bool:
	if isinstance(value, bool):
		return value
	if value == "unlimited":
		return True
	if isinstance(value, (int, float)):
		return value > 0
	return False


class SubscriptionService:
	def __init__(self, db: Session) -> None:
		self.db = db

	def create_subscription(self, user_id: str, plan_type: str, coupon_code: Optional[str] = None,
			discount_applied: Optional[float] = None) -> Subscription:
		if plan_type not in PLAN_TYPES:
			raise SubscriptionError(f"Unknown plan type: {plan_type}")
		now = utcnow()
		subscription = Subscription(
			id=make_id("sub"),
			user_id=user_id,
			plan_type=plan_type,
			status="active",
			start_date=now,
			coupon_used=coupon_code,
			discount_applied=discount_applied,
			created_at=now,
			updated_at=now,
		)
		if plan_type == "trial":
			subscription.trial_end_date = now + timedelta(days=TRIAL_DAYS)
			subscription.end_date = subscription.trial_end_date
		elif plan_type == "pro":
			subscription.end_date = add_months(now, 1)
			subscription.next_billing_date = subscription.end_date

		active = (
			self.db.query(Subscription)
			.filter(Subscription.user_id == user_id, Subscription.status == "active")
			.all()
		)
		for existing in active:
			existing.status = "cancelled"
			existing.updated_at = now
		self.db.add(subscription)
		self.db.commit()
		self.db.refresh(subscription)
		logger.info("user %s subscribed to %s", user_id, plan_type)
		return subscription

	def get(self, subscription_id: str) -> Optional[Subscription]:
		return self.db.get(Subscription, subscription_id)

	def list_subscriptions(self, *, status: Optional[str] = None, plan_type: Optional[str] = None,
			user_id: Optional[str] = None) -> List[Subscription]:
		query = self.db.query(Subscription)
		if status:
			query = query.filter(Subscription.status == status)
		if plan_type:
			query = query.filter(Subscription.plan_type == plan_type)
		if user_id:
			query = query.filter(Subscription.user_id == user_id)
		return query.order_by(Subscription.created_at.desc()).all()

	def get_active_user_subscription(self, user_id: str) -> Optional[Subscription]:
		subscription = (
			self.db.query(Subscription)
			.filter(Subscription.user_id == user_id, Subscription.status == "active")
			.order_by(Subscription.created_at.desc())
			.first()
		)
		if subscription is None:
			return None
		if subscription.end_date and subscription.end_date <= utcnow():
			self.expire(subscription)
			return None
		return subscription

	def update(self, subscription: Subscription, **updates: Any) -> Subscription:
		for key, value in updates.items():
			setattr(subscription, key, value)
		subscription.updated_at = utcnow()
		self.db.commit()
		self.db.refresh(subscription)
		return subscription

	def expire(self, subscription: Subscription) -> Subscription:
		return self.update(subscription, status="expired")

	def cancel(self, subscription: Subscription) -> Subscription:
		return self.update(subscription, status="cancelled")

	def upgrade_plan(self, user_id: str, plan_type: str = "pro", coupon_code: Optional[str] = None,
			discount_applied: Optional[float] = None) -> Subscription:
		current = self.get_active_user_subscription(user_id)
		if current is not None:
			self.cancel(current)
		return self.create_subscription(user_id, plan_type, coupon_code, discount_applied)

	def extend_trial(self, user_id: str, extension_days: int) -> Subscription:
		subscription = self.get_active_user_subscription(user_id)
		if subscription is None or subscription.plan_type != "trial":
			raise SubscriptionError("No active trial subscription found")
		current_end = subscription.trial_end_date or subscription.end_date or utcnow()
		new_end = current_end + timedelta(days=int(extension_days))
		return self.update(subscription, trial_end_date=new_end, end_date=new_end)

	def get_user_plan_type(self, user_id: str) -> str:
		subscription = self.get_active_user_subscription(user_id)
		return subscription.plan_type if subscription else "free"

	def get_user_plan_features(self, user_id: str) -> Dict[str, FeatureValue]:
		return dict(PLAN_FEATURES[self.get_user_plan_type(user_id)])

	def has_feature_access(self, user_id: str, feature: str) -> bool:
		return feature_enabled(self.get_user_plan_features(user_id).get(feature))

	def stats(self) -> Dict[str, Any]:
		subscriptions = self.db.query(Subscription).all()
		by_plan: Dict[str, int] = {}
		revenue = 0.0
		for sub in subscriptions:
			by_plan[sub.plan_type] = by_plan.get(sub.plan_type, 0) + 1
			if sub.plan_type == "pro" and sub.status == "active":
				# Counted at the monthly price
				revenue += PLAN_PRICING["pro"]["monthly"] - (sub.discount_applied or 0)
		trial_users = {s.user_id for s in subscriptions if s.plan_type == "trial"}
		return {
			"total": len(subscriptions),
			"active": sum(1 for s in subscriptions if s.status == "active"),
			"expired": sum(1 for s in subscriptions if s.status == "expired"),
			"cancelled": sum(1 for s in subscriptions if s.status == "cancelled"),
			"by_plan": by_plan,
			"revenue": revenue,
			"trial_conversions": sum(1 for s in subscriptions if s.plan_type == "pro" and s.user_id in trial_users),
		}

	def cleanup_expired_subscriptions(self) -> int:
		now = utcnow()
		rows = (
			self.db.query(Subscription)
			.filter(Subscription.status == "active", Subscription.end_date.isnot(None), Subscription.end_date <= now)
			.all()
		)
		for row in rows:
			row.status = "expired"
			row.updated_at = now
		self.db.commit()
		if rows:
			logger.info("expired %d subscriptions", len(rows))
		return len(rows)
