from __future__ import annotations
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, JSON, String, Text, UniqueConstraint
from .db import Base


def utcnow() -> datetime:
	# Naive UTC, matching what SQLite hands back
	return datetime.now(timezone.utc).replace(tzinfo=None)


def make_id(prefix: str) -> str:
	return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def isoformat(value: datetime | None) -> str | None:
	return value.isoformat() if value else None


class RecordMixin:
	_private_fields: tuple = ()

	def to_dict(self) -> Dict[str, Any]:
		out: Dict[str, Any] = {}
		for column in self.__table__.columns:
			if column.name in self._private_fields:
				continue
			value = getattr(self, column.name)
			if isinstance(value, datetime):
				value = value.isoformat()
			out[column.name] = value
		return out


class Tenant(RecordMixin, Base):
	__tablename__ = "tenants"
	id = Column(String(64), primary_key=True)
	name = Column(String(128), unique=True, nullable=False, index=True)
	display_name = Column(String(256), nullable=False)
	domain = Column(String(256), nullable=True, index=True)
	settings = Column(JSON, nullable=False, default=dict)
	owner_id = Column(String(64), nullable=True)
	is_active = Column(Boolean, default=True, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class User(RecordMixin, Base):
	__tablename__ = "users"
	_private_fields = ("password_hash",)
	id = Column(String(64), primary_key=True)
	# Stored lower-cased; uniqueness is case-insensitive
	email = Column(String(256), unique=True, nullable=False, index=True)
	name = Column(String(128), nullable=False)
	password_hash = Column(String(256), nullable=False)
	role = Column(String(32), nullable=False, default="student")
	tenant_id = Column(String(64), nullable=False, index=True, default="default")
	tenant_role = Column(String(32), nullable=False, default="member")
	tenants = Column(JSON, nullable=False, default=list)
	preferences = Column(JSON, nullable=True)
	is_active = Column(Boolean, default=True, nullable=False)
	last_login = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AuthSession(RecordMixin, Base):
	__tablename__ = "auth_sessions"
	session_id = Column(String(64), primary_key=True)
	user_id = Column(String(64), nullable=False, index=True)
	ip_address = Column(String(64), nullable=True)
	user_agent = Column(String(512), nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=utcnow, nullable=False)
	expires_at = Column(DateTime, nullable=True)
	revoked = Column(Boolean, default=False, nullable=False)


class TenantRecord(Base):
	__tablename__ = "tenant_records"
	id = Column(String(96), primary_key=True)
	tenant_id = Column(String(64), nullable=False, index=True)
	user_id = Column(String(64), nullable=False, index=True)
	data_type = Column(String(64), nullable=False, index=True)
	payload = Column(JSON, nullable=False, default=dict)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

	def to_dict(self) -> Dict[str, Any]:
		return {
			**(self.payload or {}),
			"id": self.id,
			"tenant_id": self.tenant_id,
			"user_id": self.user_id,
			"data_type": self.data_type,
			"created_at": isoformat(self.created_at),
			"updated_at": isoformat(self.updated_at),
		}


class AuditEvent(RecordMixin, Base):
	__tablename__ = "audit_events"
	id = Column(String(64), primary_key=True)
	timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)
	user_id = Column(String(64), nullable=True, index=True)
	user_email = Column(String(256), nullable=True)
	user_role = Column(String(32), nullable=True)
	tenant_id = Column(String(64), nullable=True, index=True)
	action = Column(String(64), nullable=False, index=True)
	resource = Column(String(64), nullable=False)
	resource_id = Column(String(96), nullable=True)
	details = Column(JSON, nullable=True)
	ip_address = Column(String(64), nullable=True)
	user_agent = Column(String(512), nullable=True)
	session_id = Column(String(64), nullable=True)
	success = Column(Boolean, default=True, nullable=False)
	error_message = Column(Text, nullable=True)
	severity = Column(String(16), default="low", nullable=False)


class Coupon(RecordMixin, Base):
	__tablename__ = "coupons"
	id = Column(String(64), primary_key=True)
	code = Column(String(64), unique=True, nullable=False, index=True)
	description = Column(String(256), nullable=False)
	type = Column(String(32), nullable=False)
	value = Column(Float, nullable=False)
	max_discount = Column(Float, nullable=True)
	min_amount = Column(Float, nullable=True)
	usage_limit = Column(Integer, nullable=True)
	user_usage_limit = Column(Integer, nullable=True)
	used_count = Column(Integer, default=0, nullable=False)
	valid_from = Column(DateTime, nullable=False)
	valid_until = Column(DateTime, nullable=False)
	is_active = Column(Boolean, default=True, nullable=False)
	eligible_plans = Column(JSON, nullable=True)
	eligible_roles = Column(JSON, nullable=True)
	created_by = Column(String(64), nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class CouponUsage(RecordMixin, Base):
	__tablename__ = "coupon_usages"
	id = Column(String(64), primary_key=True)
	coupon_id = Column(String(64), nullable=False, index=True)
	coupon_code = Column(String(64), nullable=False)
	user_id = Column(String(64), nullable=False, index=True)
	user_email = Column(String(256), nullable=True)
	discount_amount = Column(Float, default=0, nullable=False)
	original_amount = Column(Float, default=0, nullable=False)
	final_amount = Column(Float, default=0, nullable=False)
	plan_type = Column(String(16), nullable=False)
	used_at = Column(DateTime, default=utcnow, nullable=False)
	ip_address = Column(String(64), nullable=True)
	user_agent = Column(String(512), nullable=True)


class Subscription(RecordMixin, Base):
	__tablename__ = "subscriptions"
	id = Column(String(64), primary_key=True)
	user_id = Column(String(64), nullable=False, index=True)
	plan_type = Column(String(16), nullable=False)
	status = Column(String(16), default="active", nullable=False)
	start_date = Column(DateTime, default=utcnow, nullable=False)
	end_date = Column(DateTime, nullable=True)
	trial_end_date = Column(DateTime, nullable=True)
	next_billing_date = Column(DateTime, nullable=True)
	coupon_used = Column(String(64), nullable=True)
	discount_applied = Column(Float, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class QuestionPaper(RecordMixin, Base):
	__tablename__ = "question_papers"
	id = Column(String(96), primary_key=True)
	tenant_id = Column(String(64), nullable=False, index=True)
	title = Column(String(256), nullable=False)
	year = Column(Integer, nullable=False)
	exam_type = Column(String(16), nullable=False)
	paper_type = Column(String(16), nullable=False)
	date = Column(String(32), nullable=True)
	duration = Column(Integer, nullable=False)
	total_marks = Column(Integer, nullable=False)
	total_questions = Column(Integer, default=0, nullable=False)
	instructions = Column(JSON, nullable=False, default=list)
	file_name = Column(String(256), nullable=True)
	parse_status = Column(String(16), default="completed", nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Question(RecordMixin, Base):
	__tablename__ = "questions"
	id = Column(String(96), primary_key=True)
	tenant_id = Column(String(64), nullable=False, index=True)
	paper_id = Column(String(96), nullable=True, index=True)
	question_text = Column(Text, nullable=False)
	question_number = Column(Integer, nullable=True)
	marks = Column(Integer, default=0, nullable=False)
	difficulty = Column(String(16), default="Medium", nullable=False)
	subject = Column(String(128), nullable=False)
	topic = Column(String(128), nullable=False, default="")
	keywords = Column(JSON, nullable=False, default=list)
	year = Column(Integer, nullable=False, index=True)
	exam_type = Column(String(16), nullable=False)
	paper_type = Column(String(16), nullable=False)
	question_type = Column(String(16), nullable=False)
	options = Column(JSON, nullable=True)
	correct_answer = Column(String(16), nullable=True)
	explanation = Column(Text, nullable=True)
	tags = Column(JSON, nullable=False, default=list)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class KnowledgeItem(RecordMixin, Base):
	__tablename__ = "knowledge_items"
	id = Column(String(64), primary_key=True)
	user_id = Column(String(64), nullable=False, index=True)
	tenant_id = Column(String(64), nullable=False)
	title = Column(String(256), nullable=False)
	content = Column(Text, nullable=False, default="")
	category = Column(String(64), nullable=False)
	tags = Column(JSON, nullable=False, default=list)
	difficulty = Column(String(16), default="intermediate", nullable=False)
	access_count = Column(Integer, default=0, nullable=False)
	last_accessed = Column(DateTime, nullable=True)
	is_favorite = Column(Boolean, default=False, nullable=False)
	related_items = Column(JSON, nullable=False, default=list)
	attachments = Column(JSON, nullable=False, default=list)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class WellnessEntry(RecordMixin, Base):
	__tablename__ = "wellness_entries"
	__table_args__ = (UniqueConstraint("user_id", "date", name="uq_wellness_user_date"),)
	id = Column(String(64), primary_key=True)
	user_id = Column(String(64), nullable=False, index=True)
	date = Column(String(10), nullable=False)
	mood = Column(String(16), default="neutral", nullable=False)
	energy = Column(Integer, default=5, nullable=False)
	stress = Column(Integer, default=5, nullable=False)
	sleep = Column(Float, default=0, nullable=False)
	exercise = Column(Integer, default=0, nullable=False)
	study_hours = Column(Float, default=0, nullable=False)
	notes = Column(Text, nullable=False, default="")
	activities = Column(JSON, nullable=False, default=list)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SyllabusItem(RecordMixin, Base):
	__tablename__ = "syllabus_items"
	id = Column(String(64), primary_key=True)
	user_id = Column(String(64), nullable=False, index=True)
	subject = Column(String(64), nullable=False)
	topic = Column(String(256), nullable=False)
	subtopics = Column(JSON, nullable=False, default=list)
	status = Column(String(16), default="not-started", nullable=False)
	priority = Column(String(8), default="medium", nullable=False)
	difficulty = Column(String(8), default="medium", nullable=False)
	estimated_hours = Column(Float, default=0, nullable=False)
	completed_hours = Column(Float, default=0, nullable=False)
	last_studied = Column(DateTime, nullable=True)
	notes = Column(Text, nullable=False, default="")
	resources = Column(JSON, nullable=False, default=list)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class RevisionItem(RecordMixin, Base):
	__tablename__ = "revision_items"
	id = Column(String(64), primary_key=True)
	user_id = Column(String(64), nullable=False, index=True)
	topic = Column(String(256), nullable=False)
	subject = Column(String(64), nullable=False)
	priority = Column(String(8), default="medium", nullable=False)
	difficulty = Column(String(8), default="medium", nullable=False)
	last_revised = Column(DateTime, nullable=True)
	next_revision = Column(String(10), nullable=False)
	revision_count = Column(Integer, default=0, nullable=False)
	confidence = Column(Integer, default=5, nullable=False)
	notes = Column(Text, nullable=False, default="")
	tags = Column(JSON, nullable=False, default=list)
	status = Column(String(16), default="pending", nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class CalendarEvent(RecordMixin, Base):
	__tablename__ = "calendar_events"
	id = Column(String(64), primary_key=True)
	user_id = Column(String(64), nullable=False, index=True)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	date = Column(String(10), nullable=False, index=True)
	time = Column(String(5), nullable=True)
	duration = Column(Integer, nullable=True)
	type = Column(String(16), default="study", nullable=False)
	priority = Column(String(8), default="medium", nullable=False)
	completed = Column(Boolean, default=False, nullable=False)
	recurring = Column(JSON, nullable=True)
	reminders = Column(JSON, nullable=False, default=list)
	tags = Column(JSON, nullable=False, default=list)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class ScheduleBlock(RecordMixin, Base):
	__tablename__ = "schedule_blocks"
	id = Column(String(64), primary_key=True)
	user_id = Column(String(64), nullable=False, index=True)
	title = Column(String(256), nullable=False)
	subject = Column(String(128), nullable=False)
	start_time = Column(String(5), nullable=False)
	end_time = Column(String(5), nullable=False)
	date = Column(String(10), nullable=False, index=True)
	type = Column(String(16), default="study", nullable=False)
	priority = Column(String(8), default="medium", nullable=False)
	completed = Column(Boolean, default=False, nullable=False)
	notes = Column(Text, nullable=True)
	color = Column(String(16), nullable=True)
	topics = Column(JSON, nullable=False, default=list)
	tags = Column(JSON, nullable=False, default=list)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AIUsage(RecordMixin, Base):
	__tablename__ = "ai_usage"
	id = Column(String(96), primary_key=True)
	user_id = Column(String(64), nullable=False, index=True)
	date = Column(String(10), nullable=False, index=True)
	query_count = Column(Integer, default=0, nullable=False)
	last_used = Column(DateTime, default=utcnow, nullable=False)
	features = Column(JSON, nullable=False, default=dict)


class AnalyticsSession(RecordMixin, Base):
	__tablename__ = "analytics_sessions"
	id = Column(String(96), primary_key=True)
	user_id = Column(String(64), nullable=False, index=True)
	session_start = Column(DateTime, default=utcnow, nullable=False)
	session_end = Column(DateTime, nullable=True)
	duration = Column(Integer, nullable=True)
	user_agent = Column(String(512), nullable=True)
	ip_address = Column(String(64), nullable=True)
	referrer = Column(String(512), nullable=True)
	exit_page = Column(String(256), nullable=True)


class PageView(RecordMixin, Base):
	__tablename__ = "page_views"
	id = Column(String(128), primary_key=True)
	session_id = Column(String(96), nullable=False, index=True)
	user_id = Column(String(64), nullable=False, index=True)
	path = Column(String(256), nullable=False)
	title = Column(String(256), nullable=False, default="")
	timestamp = Column(DateTime, default=utcnow, nullable=False)
	load_time = Column(Integer, nullable=True)
	time_on_page = Column(Integer, nullable=True)
	interactions = Column(Integer, default=0, nullable=False)
	scroll_depth = Column(Integer, default=0, nullable=False)


class AnalyticsEvent(RecordMixin, Base):
	__tablename__ = "analytics_events"
	id = Column(String(128), primary_key=True)
	user_id = Column(String(64), nullable=False, index=True)
	session_id = Column(String(96), nullable=False)
	event_type = Column(String(32), nullable=False)
	event_data = Column(JSON, nullable=False, default=dict)
	page = Column(String(256), nullable=False)
	timestamp = Column(DateTime, default=utcnow, nullable=False)


class ContentItem(RecordMixin, Base):
	__tablename__ = "content_items"
	id = Column(String(64), primary_key=True)
	tenant_id = Column(String(64), nullable=False, index=True)
	title = Column(String(256), nullable=False)
	content_type = Column(String(32), nullable=False, default="article")
	category = Column(String(64), nullable=False, default="General")
	body = Column(Text, nullable=False, default="")
	status = Column(String(16), nullable=False, default="draft")
	tags = Column(JSON, nullable=False, default=list)
	author_id = Column(String(64), nullable=True)
	published_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
