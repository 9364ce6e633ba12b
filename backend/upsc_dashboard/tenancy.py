from __future__ import annotations
import logging
import re
import secrets
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .models import Tenant, TenantRecord, make_id, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TENANT_ID = "default"
DEFAULT_FEATURES = ["dashboard", "learning", "calendar", "progress", "ai-assistant"]
IMMUTABLE_TENANT_FIELDS = {"id", "owner_id", "created_at"}

ALLOWED_DATA_TYPES = (
	"notes",
	"calendar-events",
	"study-sessions",
	"progress-tracking",
	"bookmarks",
	"practice-history",
	"learning-items",
	"user-preferences",
	"daily-goals",
	"revision-items",
	"current-affairs",
	"mindmaps",
	"flashcards",
)


class TenantError(ValueError):
	pass


def generate_tenant_id() -> str:
	return f"tenant_{secrets.token_hex(8)}"


def slugify_tenant_name(name: str) -> str:
	return re.sub(r"[^a-z0-9]", "-", name.lower())


def create_default_tenant(owner_id: str, name: str, organization_type: str = "individual") -> Tenant:
	individual = organization_type == "individual"
	return Tenant(
		id=generate_tenant_id(),
		name=slugify_tenant_name(name),
		display_name=name,
		settings={
			"allow_self_registration": not individual,
			"default_role": "student",
			"max_users": 1 if individual else None,
			"features": list(DEFAULT_FEATURES),
			"branding": {"primary_color": "#3b82f6", "secondary_color": "#1e40af"},
		},
		owner_id=owner_id,
		is_active=True,
	)


def has_multi_tenant_access(user: Any, tenant_id: str) -> bool:
	if getattr(user, "tenant_id", None) == tenant_id:
		return True
	if tenant_id in (getattr(user, "tenants", None) or []):
		return True
	return getattr(user, "role", None) in ("admin", "super_admin")


def validate_tenant_access(user_tenant_id: str, resource_tenant_id: str) -> bool:
	return user_tenant_id == resource_tenant_id or resource_tenant_id == DEFAULT_TENANT_ID


def get_tenant_scoped_key(tenant_id: str, key: str) -> str:
	return f"{tenant_id}:{key}"


def parse_tenant_scoped_key(scoped_key: str) -> tuple[str, str]:
	tenant_id, _, key = scoped_key.partition(":")
	if not key:
		raise TenantError(f"not a tenant scoped key: {scoped_key!r}")
	return tenant_id, key


# ---- tenant storage ----

def find_tenant(db: Session, tenant_id: str) -> Optional[Tenant]:
	return db.get(Tenant, tenant_id)


def find_tenant_by_name(db: Session, name: str) -> Optional[Tenant]:
	return db.query(Tenant).filter(Tenant.name == name).first()


def find_tenant_by_domain(db: Session, domain: str) -> Optional[Tenant]:
	return db.query(Tenant).filter(Tenant.domain == domain).first()


def list_tenants(db: Session) -> List[Tenant]:
	return db.query(Tenant).order_by(Tenant.created_at).all()


def tenants_for_user(db: Session, user: Any) -> List[Tenant]:
	ids = set(getattr(user, "tenants", None) or [])
	ids.add(user.tenant_id)
	return db.query(Tenant).filter(Tenant.id.in_(ids)).order_by(Tenant.created_at).all()


def add_tenant(db: Session, tenant: Tenant) -> Tenant:
	if find_tenant_by_name(db, tenant.name):
		raise TenantError("Tenant name already exists")
	db.add(tenant)
	db.commit()
	db.refresh(tenant)
	logger.info("created tenant %s (%s)", tenant.id, tenant.name)
	return tenant


def update_tenant(db: Session, tenant: Tenant, updates: Dict[str, Any]) -> Tenant:
	for key, value in updates.items():
		if key in IMMUTABLE_TENANT_FIELDS or not hasattr(Tenant, key):
			continue
		if key == "name" and value != tenant.name and find_tenant_by_name(db, value):
			raise TenantError("Tenant name already exists")
		if key == "settings" and isinstance(value, dict):
			value = {**(tenant.settings or {}), **value}
		setattr(tenant, key, value)
	tenant.updated_at = utcnow()
	db.commit()
	db.refresh(tenant)
	return tenant


def delete_tenant(db: Session, tenant: Tenant) -> None:
	if tenant.id == DEFAULT_TENANT_ID:
		raise TenantError("Cannot delete default tenant")
	db.query(TenantRecord).filter(TenantRecord.tenant_id == tenant.id).delete()
	db.delete(tenant)
	db.commit()
	logger.info("deleted tenant %s", tenant.id)


# ---- per tenant data records ----

def read_records(db: Session, tenant_id: str, data_type: str, user_id: Optional[str] = None) -> List[TenantRecord]:
	query = db.query(TenantRecord).filter(TenantRecord.tenant_id == tenant_id, TenantRecord.data_type == data_type)
	if user_id:
		query = query.filter(TenantRecord.user_id == user_id)
	return query.order_by(TenantRecord.created_at).all()


def add_record(db: Session, tenant_id: str, data_type: str, user_id: str, payload: Dict[str, Any]) -> TenantRecord:
	clean = {k: v for k, v in payload.items() if k not in ("id", "tenant_id", "user_id", "data_type", "created_at", "updated_at")}
	record = TenantRecord(
		id=make_id(data_type),
		tenant_id=tenant_id,
		user_id=user_id,
		data_type=data_type,
		payload=clean,
	)
	db.add(record)
	db.commit()
	db.refresh(record)
	return record


def get_record(db: Session, tenant_id: str, data_type: str, record_id: str) -> Optional[TenantRecord]:
	return (
		db.query(TenantRecord)
		.filter(TenantRecord.id == record_id, TenantRecord.tenant_id == tenant_id, TenantRecord.data_type == data_type)
		.first()
	)


def update_record(db: Session, record: TenantRecord, updates: Dict[str, Any]) -> TenantRecord:
	merged = dict(record.payload or {})
	for key, value in updates.items():
		if key in ("id", "tenant_id", "user_id", "data_type", "created_at", "updated_at"):
			continue
		merged[key] = value
	# Reassign so the JSON column is flagged dirty
	record.payload = merged
	record.updated_at = utcnow()
	db.commit()
	db.refresh(record)
	return record


def delete_record(db: Session, record: TenantRecord) -> None:
	db.delete(record)
	db.commit()
