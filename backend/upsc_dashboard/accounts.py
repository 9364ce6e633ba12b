from __future__ import annotations
import logging
import re
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import Tenant, User, make_id, utcnow
from .security import hash_password
from .settings import settings
from .tenancy import (
	DEFAULT_FEATURES,
	DEFAULT_TENANT_ID,
	add_tenant,
	create_default_tenant,
	find_tenant,
)

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
IMMUTABLE_USER_FIELDS = {"id", "password_hash", "created_at"}


class UserError(ValueError):
	pass


def normalize_email(email: str) -> str:
	return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
	return bool(EMAIL_RE.match(email or ""))


def find_user(db: Session, user_id: str) -> Optional[User]:
	return db.get(User, user_id)


def find_user_by_email(db: Session, email: str) -> Optional[User]:
	return db.query(User).filter(func.lower(User.email) == normalize_email(email)).first()


def users_in_tenant(db: Session, tenant_id: str) -> List[User]:
	return db.query(User).filter(User.tenant_id == tenant_id).order_by(User.created_at).all()


def list_users(db: Session) -> List[User]:
	return db.query(User).order_by(User.created_at).all()


def create_user(
	db: Session,
	*,
	name: str,
	email: str,
	password: str,
	role: str = "student",
	tenant_id: Optional[str] = None,
	tenant_name: Optional[str] = None,
	organization_type: str = "individual",
	tenant_role: Optional[str] = None,
) -> User:
	if find_user_by_email(db, email):
		raise UserError("Email already exists")
	user_id = make_id("user")
	role_in_tenant = tenant_role or "member"
	if not tenant_id and tenant_name:
		tenant = create_default_tenant(user_id, tenant_name, organization_type)
		add_tenant(db, tenant)
		tenant_id = tenant.id
		role_in_tenant = "owner"
	elif not tenant_id:
		tenant_id = DEFAULT_TENANT_ID
	user = User(
		id=user_id,
		email=normalize_email(email),
		name=name.strip(),
		password_hash=hash_password(password),
		role=role or "student",
		tenant_id=tenant_id,
		tenant_role=role_in_tenant,
		tenants=[tenant_id],
		is_active=True,
		preferences={"default_tenant": tenant_id, "theme": "light", "language": "en"},
	)
	db.add(user)
	db.commit()
	db.refresh(user)
	logger.info("created user %s in tenant %s", user.id, tenant_id)
	return user


def update_user(db: Session, user: User, updates: Dict[str, Any]) -> User:
	for key, value in updates.items():
		if key in IMMUTABLE_USER_FIELDS or not hasattr(User, key):
			continue
		if key == "email":
			value = normalize_email(value)
			other = find_user_by_email(db, value)
			if other is not None and other.id != user.id:
				raise UserError("Email already exists")
		if key in ("tenants", "preferences") and value is not None:
			value = list(value) if key == "tenants" else dict(value)
		setattr(user, key, value)
	user.updated_at = utcnow()
	db.commit()
	db.refresh(user)
	return user


def update_password(db: Session, user: User, new_password: str) -> None:
	user.password_hash = hash_password(new_password)
	user.updated_at = utcnow()
	db.commit()


def delete_user(db: Session, user: User) -> None:
	db.delete(user)
	db.commit()
	logger.info("deleted user %s", user.id)


def user_stats(db: Session, tenant_id: Optional[str] = None) -> Dict[str, Any]:
	query = db.query(User)
	if tenant_id:
		query = query.filter(User.tenant_id == tenant_id)
	users = query.all()
	by_role: Dict[str, int] = {}
	for user in users:
		by_role[user.role] = by_role.get(user.role, 0) + 1
	week_ago = utcnow() - timedelta(days=7)
	active = sum(1 for u in users if u.is_active)
	return {
		"total": len(users),
		"by_role": by_role,
		"active": active,
		"inactive": len(users) - active,
		"recent_logins": sum(1 for u in users if u.last_login and u.last_login >= week_ago),
	}


def tenant_user_count(db: Session, tenant_id: str) -> int:
	return db.query(User).filter(User.tenant_id == tenant_id).count()


def seed_defaults(db: Session) -> None:
	if find_tenant(db, DEFAULT_TENANT_ID) is None:
		db.add(Tenant(
			id=DEFAULT_TENANT_ID,
			name=DEFAULT_TENANT_ID,
			display_name="Default Organization",
			settings={
				"allow_self_registration": True,
				"default_role": "student",
				"max_users": 1000,
				"features": list(DEFAULT_FEATURES),
			},
			is_active=True,
		))
		db.commit()
		logger.info("seeded default tenant")
	if find_user_by_email(db, settings.seed_admin_email) is None:
		admin = create_user(
			db,
			name=settings.seed_admin_name,
			email=settings.seed_admin_email,
			password=settings.seed_admin_password,
			role="admin",
			tenant_id=DEFAULT_TENANT_ID,
			tenant_role="owner",
		)
		tenant = find_tenant(db, DEFAULT_TENANT_ID)
		if tenant is not None and not tenant.owner_id:
			tenant.owner_id = admin.id
			db.commit()
		logger.info("seeded admin account %s", admin.email)
