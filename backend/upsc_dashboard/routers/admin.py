from __future__ import annotations
import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import audit, rbac
from ..accounts import (
	UserError,
	create_user,
	find_user,
	find_user_by_email,
	is_valid_email,
	list_users,
	update_user,
	delete_user,
	user_stats,
	users_in_tenant,
)
from ..analytics import RANGES, AnalyticsService
from ..db import get_db
from ..models import ContentItem, Tenant, User, make_id, utcnow
from ..subscriptions import SubscriptionService
from .auth import SessionUser, require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

CONTENT_STATUSES = ("draft", "published", "archived")
CONTENT_FIELDS = ("title", "content_type", "category", "body", "status", "tags")
USER_FIELDS = ("name", "email", "role", "is_active", "tenant_id", "tenant_role", "tenants", "preferences")


class UserCreate(BaseModel):
	name: Optional[str] = None
	email: Optional[str] = None
	password: Optional[str] = None
	role: str = "student"
	tenant_id: Optional[str] = None


class ContentCreate(BaseModel):
	title: Optional[str] = None
	content_type: str = "article"
	category: str = "General"
	body: str = ""
	status: str = "draft"
	tags: List[str] = []


class AuditAction(BaseModel):
	action: Optional[str] = None
	filters: Dict[str, Any] = {}


# ---- users ----

def _scope(user: SessionUser) -> Optional[str]:
	"""Tenant the actor is limited to, or None for platform admins."""
	return None if rbac.is_admin_role(user.role) else user.tenant_id


def _safe_user(row: User) -> Dict[str, Any]:
	data = row.to_dict()
	data["account_age_days"] = (utcnow() - row.created_at).days if row.created_at else 0
	return data


def _load_user(db: Session, actor: SessionUser, user_id: str) -> User:
	row = find_user(db, user_id)
	scope = _scope(actor)
	if row is None or (scope and row.tenant_id != scope):
		raise HTTPException(status_code=404, detail="User not found")
	if rbac.role_level(row.role) > rbac.role_level(actor.role):
		raise HTTPException(status_code=403, detail="Cannot manage a user with a higher role")
	return row


def _check_role(actor: SessionUser, role: str) -> None:
	if role not in rbac.ROLE_NAMES:
		raise HTTPException(status_code=400, detail=f"Invalid role. Must be one of: {', '.join(rbac.ROLE_NAMES)}")
	if not rbac.can_change_role(actor.role, role):
		raise HTTPException(status_code=403, detail="Cannot assign a role above your own")


@router.get("/users")
def get_users(search: Optional[str] = None, role: Optional[str] = None, status: Optional[str] = None,
		user: SessionUser = Depends(require_permission("users", "manage")), db: Session = Depends(get_db)):
	scope = _scope(user)
	rows = users_in_tenant(db, scope) if scope else list_users(db)
	if search:
		needle = search.lower()
		rows = [r for r in rows if needle in r.name.lower() or needle in r.email.lower()]
	if role:
		rows = [r for r in rows if r.role == role]
	if status in ("active", "inactive"):
		rows = [r for r in rows if r.is_active == (status == "active")]
	return {
		"success": True,
		"data": {
			"users": [_safe_user(r) for r in rows],
			"stats": user_stats(db, scope),
		},
	}


@router.post("/users", status_code=201)
def post_user(req: UserCreate, request: Request, user: SessionUser = Depends(require_permission("users", "manage")),
		db: Session = Depends(get_db)):
	name = (req.name or "").strip()
	email = (req.email or "").strip()
	if not name or not email or not req.password:
		raise HTTPException(status_code=400, detail="Name, email and password are required")
	if not is_valid_email(email):
		raise HTTPException(status_code=400, detail="Invalid email format")
	if len(req.password) < 6:
		raise HTTPException(status_code=400, detail="Password must be at least 6 characters long")
	_check_role(user, req.role)
	tenant_id = req.tenant_id if rbac.is_admin_role(user.role) and req.tenant_id else user.tenant_id
	try:
		row = create_user(db, name=name, email=email, password=req.password, role=req.role, tenant_id=tenant_id)
	except UserError:
		raise HTTPException(status_code=409, detail="User with this email already exists") from None
	audit.log_user_event(db, audit.AuditActions.USER_CREATE, actor=user, target_user_id=row.id, request=request,
		details={"role": row.role, "tenant_id": row.tenant_id})
	return {"success": True, "data": _safe_user(row), "message": "User created successfully"}


@router.get("/users/{user_id}")
def get_user(user_id: str, user: SessionUser = Depends(require_permission("users", "manage")),
		db: Session = Depends(get_db)):
	return {"success": True, "data": _safe_user(_load_user(db, user, user_id))}


@router.put("/users/{user_id}")
def put_user(user_id: str, updates: Dict[str, Any], request: Request,
		user: SessionUser = Depends(require_permission("users", "manage")), db: Session = Depends(get_db)):
	row = _load_user(db, user, user_id)
	clean = {k: v for k, v in updates.items() if k in USER_FIELDS}
	if "name" in clean:
		name = str(clean["name"] or "").strip()
		if not 2 <= len(name) <= 100:
			raise HTTPException(status_code=400, detail="Name must be between 2 and 100 characters")
		clean["name"] = name
	if "email" in clean and not is_valid_email(str(clean["email"] or "")):
		raise HTTPException(status_code=400, detail="Invalid email format")
	if "role" in clean and clean["role"] != row.role:
		_check_role(user, clean["role"])
		if row.id == user.id:
			raise HTTPException(status_code=400, detail="You cannot change your own role")
	if clean.get("is_active") is False and row.id == user.id:
		raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
	if "email" in clean:
		other = find_user_by_email(db, clean["email"])
		if other is not None and other.id != row.id:
			raise HTTPException(status_code=409, detail="Email already exists")
	if not rbac.is_admin_role(user.role):
		clean.pop("tenant_id", None)
		clean.pop("tenants", None)
	previous_role, previous_active = row.role, row.is_active
	try:
		row = update_user(db, row, clean)
	except UserError:
		raise HTTPException(status_code=409, detail="Email already exists") from None
	if row.role != previous_role:
		audit.log_user_event(db, audit.AuditActions.ROLE_CHANGE, actor=user, target_user_id=row.id, request=request,
			details={"from": previous_role, "to": row.role})
	if row.is_active != previous_active:
		action = audit.AuditActions.USER_ACTIVATE if row.is_active else audit.AuditActions.USER_DEACTIVATE
		audit.log_user_event(db, action, actor=user, target_user_id=row.id, request=request)
	audit.log_user_event(db, audit.AuditActions.USER_UPDATE, actor=user, target_user_id=row.id, request=request,
		details={"fields": sorted(clean)})
	return {"success": True, "data": _safe_user(row), "message": "User updated successfully"}


def _delete_user(db: Session, actor: SessionUser, user_id: Optional[str], request: Request):
	if not user_id:
		raise HTTPException(status_code=400, detail="User ID is required")
	if user_id == actor.id:
		raise HTTPException(status_code=400, detail="You cannot delete your own account")
	row = _load_user(db, actor, user_id)
	email = row.email
	delete_user(db, row)
	audit.log_user_event(db, audit.AuditActions.USER_DELETE, actor=actor, target_user_id=user_id, request=request,
		details={"email": email})
	return {"success": True, "message": "User deleted successfully"}


@router.delete("/users")
def delete_user_by_query(request: Request, user_id: Optional[str] = None,
		user: SessionUser = Depends(require_permission("users", "manage")), db: Session = Depends(get_db)):
	return _delete_user(db, user, user_id, request)


@router.delete("/users/{user_id}")
def delete_user_by_path(user_id: str, request: Request,
		user: SessionUser = Depends(require_permission("users", "manage")), db: Session = Depends(get_db)):
	return _delete_user(db, user, user_id, request)


@router.get("/stats")
def get_stats(user: SessionUser = Depends(require_permission("admin", "access")), db: Session = Depends(get_db)):
	return {
		"success": True,
		"data": {
			"users": user_stats(db),
			"tenants": db.query(Tenant).count(),
			"subscriptions": SubscriptionService(db).stats(),
			"content": _content_stats(db.query(ContentItem).all()),
		},
	}


# ---- audit ----

@router.get("/audit")
def get_audit(request: Request, user: SessionUser = Depends(require_permission("analytics", "view")),
		db: Session = Depends(get_db)):
	filters: Dict[str, Any] = dict(request.query_params)
	scope = _scope(user)
	if scope:
		filters["tenant_id"] = scope
	if "success" in filters:
		filters["success"] = filters["success"].lower() == "true"
	try:
		result = audit.get_audit_events(db, filters)
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	return {"success": True, "data": result}


@router.post("/audit")
def post_audit(req: AuditAction, request: Request, user: SessionUser = Depends(require_permission("system", "manage")),
		db: Session = Depends(get_db)):
	try:
		if req.action == "export":
			result = audit.export_audit_events(db, req.filters)
			audit.log_admin_event(db, audit.AuditActions.DATA_EXPORT, audit.AuditResources.AUDIT, actor=user,
				request=request, details={"total": result["total"]})
			return {"success": True, "data": result}
		if req.action == "cleanup":
			result = audit.cleanup_audit_events(db, req.filters.get("older_than"), req.filters.get("severity"))
			audit.log_admin_event(db, audit.AuditActions.SYSTEM_CONFIG_CHANGE, audit.AuditResources.AUDIT,
				actor=user, request=request, details=result)
			return {"success": True, "data": result, "message": f"Deleted {result['deleted_count']} audit events"}
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	raise HTTPException(status_code=400, detail="Invalid action")


# ---- analytics ----

@router.get("/analytics")
def get_analytics(date_range: str = Query("7d", alias="range"), user: SessionUser = Depends(require_permission("analytics", "view")),
		db: Session = Depends(get_db)):
	if not rbac.is_admin_role(user.role):
		raise HTTPException(status_code=403, detail="Insufficient permissions")
	if date_range not in RANGES:
		raise HTTPException(status_code=400, detail=f"Invalid range. Must be one of: {', '.join(RANGES)}")
	data = AnalyticsService(db).summary(date_range)
	subs = SubscriptionService(db).stats()
	data["users"] = user_stats(db)
	data["revenue"] = {
		"total": subs["revenue"],
		"active_subscriptions": subs["active"],
		"by_plan": subs["by_plan"],
		"trial_conversions": subs["trial_conversions"],
	}
	return {"success": True, "data": data, "range": date_range}


# ---- content ----

def _content_stats(items: List[ContentItem]) -> Dict[str, Any]:
	return {
		"total": len(items),
		"by_status": dict(Counter(i.status for i in items)),
		"by_type": dict(Counter(i.content_type for i in items)),
		"by_category": dict(Counter(i.category for i in items)),
	}


def _content_query(db: Session, user: SessionUser):
	query = db.query(ContentItem)
	scope = _scope(user)
	if scope:
		query = query.filter(ContentItem.tenant_id == scope)
	return query


def _load_content(db: Session, user: SessionUser, content_id: str) -> ContentItem:
	item = _content_query(db, user).filter(ContentItem.id == content_id).first()
	if item is None:
		raise HTTPException(status_code=404, detail="Content not found")
	return item


def _check_status(status: Any) -> None:
	if status not in CONTENT_STATUSES:
		raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {', '.join(CONTENT_STATUSES)}")


@router.get("/content")
def get_content(status: Optional[str] = None, category: Optional[str] = None, search: Optional[str] = None,
		user: SessionUser = Depends(require_permission("content", "manage")), db: Session = Depends(get_db)):
	query = _content_query(db, user)
	if status:
		query = query.filter(ContentItem.status == status)
	if category:
		query = query.filter(ContentItem.category == category)
	items = query.order_by(ContentItem.updated_at.desc()).all()
	if search:
		needle = search.lower()
		items = [i for i in items if needle in i.title.lower() or needle in (i.body or "").lower()]
	return {"success": True, "data": [i.to_dict() for i in items]}


@router.get("/content/stats")
def get_content_stats(user: SessionUser = Depends(require_permission("content", "manage")),
		db: Session = Depends(get_db)):
	return {"success": True, "data": _content_stats(_content_query(db, user).all())}


@router.post("/content", status_code=201)
def post_content(req: ContentCreate, request: Request,
		user: SessionUser = Depends(require_permission("content", "manage")), db: Session = Depends(get_db)):
	title = (req.title or "").strip()
	if not title:
		raise HTTPException(status_code=400, detail="Title is required")
	_check_status(req.status)
	item = ContentItem(
		id=make_id("content"),
		tenant_id=user.tenant_id,
		title=title,
		content_type=req.content_type,
		category=req.category,
		body=req.body,
		status=req.status,
		tags=list(req.tags),
		author_id=user.id,
		published_at=utcnow() if req.status == "published" else None,
	)
	db.add(item)
	db.commit()
	db.refresh(item)
	audit.log_admin_event(db, audit.AuditActions.CONTENT_CREATE, audit.AuditResources.CONTENT, actor=user,
		resource_id=item.id, request=request, details={"title": item.title})
	if item.status == "published":
		audit.log_admin_event(db, audit.AuditActions.CONTENT_PUBLISH, audit.AuditResources.CONTENT, actor=user,
			resource_id=item.id, request=request)
	return {"success": True, "data": item.to_dict(), "message": "Content created successfully"}


@router.get("/content/{content_id}")
def get_content_item(content_id: str, user: SessionUser = Depends(require_permission("content", "manage")),
		db: Session = Depends(get_db)):
	return {"success": True, "data": _load_content(db, user, content_id).to_dict()}


@router.put("/content/{content_id}")
def put_content(content_id: str, updates: Dict[str, Any], request: Request,
		user: SessionUser = Depends(require_permission("content", "manage")), db: Session = Depends(get_db)):
	item = _load_content(db, user, content_id)
	clean = {k: v for k, v in updates.items() if k in CONTENT_FIELDS}
	if "title" in clean and not str(clean["title"] or "").strip():
		raise HTTPException(status_code=400, detail="Title is required")
	if "status" in clean:
		_check_status(clean["status"])
	publishing = clean.get("status") == "published" and item.status != "published"
	for key, value in clean.items():
		setattr(item, key, list(value) if key == "tags" else value)
	if publishing:
		item.published_at = utcnow()
	item.updated_at = utcnow()
	db.commit()
	db.refresh(item)
	action = audit.AuditActions.CONTENT_PUBLISH if publishing else audit.AuditActions.CONTENT_UPDATE
	audit.log_admin_event(db, action, audit.AuditResources.CONTENT, actor=user, resource_id=item.id, request=request,
		details={"fields": sorted(clean)})
	return {"success": True, "data": item.to_dict(), "message": "Content updated successfully"}


@router.delete("/content/{content_id}")
def delete_content(content_id: str, request: Request,
		user: SessionUser = Depends(require_permission("content", "manage")), db: Session = Depends(get_db)):
	item = _load_content(db, user, content_id)
	db.delete(item)
	db.commit()
	audit.log_admin_event(db, audit.AuditActions.CONTENT_DELETE, audit.AuditResources.CONTENT, actor=user,
		resource_id=content_id, request=request)
	return {"success": True, "message": "Content deleted successfully"}
