"""Audit trail for security relevant actions.

Writes never raise into the caller: an audit failure is logged and the
request carries on.
"""
from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import AuditEvent, make_id, utcnow
from .settings import settings

logger = logging.getLogger(__name__)


class AuditActions:
	LOGIN = "login"
	LOGOUT = "logout"
	LOGIN_FAILED = "login_failed"
	PASSWORD_CHANGE = "password_change"
	PASSWORD_RESET = "password_reset"
	SESSION_EXPIRED = "session_expired"
	USER_CREATE = "user_create"
	USER_UPDATE = "user_update"
	USER_DELETE = "user_delete"
	USER_ACTIVATE = "user_activate"
	USER_DEACTIVATE = "user_deactivate"
	ROLE_CHANGE = "role_change"
	CONTENT_CREATE = "content_create"
	CONTENT_UPDATE = "content_update"
	CONTENT_DELETE = "content_delete"
	CONTENT_PUBLISH = "content_publish"
	SYSTEM_CONFIG_CHANGE = "system_config_change"
	DATA_EXPORT = "data_export"
	DATA_IMPORT = "data_import"
	SENSITIVE_DATA_ACCESS = "sensitive_data_access"
	UNAUTHORIZED_ACCESS = "unauthorized_access"
	PERMISSION_DENIED = "permission_denied"
	SUSPICIOUS_ACTIVITY = "suspicious_activity"
	TENANT_CREATE = "tenant_create"
	TENANT_UPDATE = "tenant_update"
	TENANT_DELETE = "tenant_delete"
	COUPON_CREATE = "coupon_create"
	COUPON_UPDATE = "coupon_update"
	COUPON_DELETE = "coupon_delete"
	COUPON_REDEEM = "coupon_redeem"
	SUBSCRIPTION_CHANGE = "subscription_change"


class AuditResources:
	AUTH = "auth"
	USER = "user"
	CONTENT = "content"
	SYSTEM = "system"
	DATA = "data"
	SECURITY = "security"
	TENANT = "tenant"
	COUPON = "coupon"
	SUBSCRIPTION = "subscription"
	AUDIT = "audit"


_HIGH_USER_ACTIONS = {AuditActions.USER_DELETE, AuditActions.ROLE_CHANGE, AuditActions.USER_DEACTIVATE}
_MEDIUM_USER_ACTIONS = {AuditActions.USER_CREATE, AuditActions.USER_UPDATE, AuditActions.USER_ACTIVATE}


def client_ip(request: Optional[Request]) -> Optional[str]:
	if request is None:
		return None
	forwarded = request.headers.get("x-forwarded-for")
	if forwarded:
		return forwarded.split(",")[0].strip()
	real_ip = request.headers.get("x-real-ip")
	if real_ip:
		return real_ip
	return request.client.host if request.client else None


def severity_for_user_action(action: str) -> str:
	if action in _HIGH_USER_ACTIONS:
		return "high"
	if action in _MEDIUM_USER_ACTIONS:
		return "medium"
	return "low"


def log_event(
	db: Session,
	*,
	action: str,
	resource: str,
	actor: Any = None,
	request: Optional[Request] = None,
	resource_id: Optional[str] = None,
	details: Optional[Dict[str, Any]] = None,
	success: bool = True,
	error_message: Optional[str] = None,
	severity: str = "low",
	session_id: Optional[str] = None,
	user_email: Optional[str] = None,
) -> Optional[AuditEvent]:
	event = AuditEvent(
		id=make_id("audit"),
		timestamp=utcnow(),
		user_id=getattr(actor, "id", None),
		user_email=getattr(actor, "email", None) or user_email,
		user_role=getattr(actor, "role", None),
		tenant_id=getattr(actor, "tenant_id", None),
		action=action,
		resource=resource,
		resource_id=resource_id,
		details=details,
		ip_address=client_ip(request),
		user_agent=request.headers.get("user-agent") if request is not None else None,
		session_id=session_id or getattr(actor, "session_id", None),
		success=success,
		error_message=error_message,
		severity=severity,
	)
	try:
		db.add(event)
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		logger.exception("failed to write audit event %s/%s", resource, action)
		return None
	if severity in ("high", "critical"):
		logger.warning("audit %s %s by %s on %s", severity, action, event.user_email, resource_id or resource)
	return event


def log_auth_event(db: Session, action: str, *, actor: Any = None, request: Optional[Request] = None,
		success: bool = True, error_message: Optional[str] = None, **extra: Any) -> Optional[AuditEvent]:
	return log_event(
		db,
		action=action,
		resource=AuditResources.AUTH,
		actor=actor,
		request=request,
		success=success,
		error_message=error_message,
		severity="low" if success else "medium",
		**extra,
	)


def log_user_event(db: Session, action: str, *, actor: Any, target_user_id: str,
		request: Optional[Request] = None, details: Optional[Dict[str, Any]] = None) -> Optional[AuditEvent]:
	return log_event(
		db,
		action=action,
		resource=AuditResources.USER,
		actor=actor,
		request=request,
		resource_id=target_user_id,
		details=details,
		severity=severity_for_user_action(action),
	)


def log_admin_event(db: Session, action: str, resource: str, *, actor: Any, resource_id: Optional[str] = None,
		request: Optional[Request] = None, details: Optional[Dict[str, Any]] = None) -> Optional[AuditEvent]:
	return log_event(
		db,
		action=action,
		resource=resource,
		actor=actor,
		request=request,
		resource_id=resource_id,
		details=details,
		severity="medium",
	)


def log_tenant_event(db: Session, action: str, *, actor: Any, tenant_id: str,
		request: Optional[Request] = None, details: Optional[Dict[str, Any]] = None) -> Optional[AuditEvent]:
	return log_event(
		db,
		action=action,
		resource=AuditResources.TENANT,
		actor=actor,
		request=request,
		resource_id=tenant_id,
		details=details,
		severity="high" if action == AuditActions.TENANT_DELETE else "medium",
	)


def log_security_event(db: Session, action: str, *, actor: Any = None, request: Optional[Request] = None,
		details: Optional[Dict[str, Any]] = None) -> Optional[AuditEvent]:
	return log_event(
		db,
		action=action,
		resource=AuditResources.SECURITY,
		actor=actor,
		request=request,
		details=details,
		success=False,
		severity="high",
	)


def _parse_bound(value: Optional[str]) -> Optional[datetime]:
	if not value:
		return None
	try:
		parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
	except ValueError:
		raise ValueError(f"Invalid date: {value}") from None
	return parsed.replace(tzinfo=None) if parsed.tzinfo else parsed


def query_events(db: Session, filters: Dict[str, Any]):
	query = db.query(AuditEvent)
	for key in ("user_id", "tenant_id", "action", "resource", "severity"):
		if filters.get(key):
			query = query.filter(getattr(AuditEvent, key) == filters[key])
	if filters.get("success") is not None:
		query = query.filter(AuditEvent.success == bool(filters["success"]))
	start = _parse_bound(filters.get("start_date"))
	if start is not None:
		query = query.filter(AuditEvent.timestamp >= start)
	end = _parse_bound(filters.get("end_date"))
	if end is not None:
		query = query.filter(AuditEvent.timestamp <= end)
	return query


def get_audit_events(db: Session, filters: Dict[str, Any]) -> Dict[str, Any]:
	limit = int(filters.get("limit") or 50)
	offset = int(filters.get("offset") or 0)
	query = query_events(db, filters)
	total = query.count()
	rows = query.order_by(AuditEvent.timestamp.desc(), AuditEvent.id.desc()).offset(offset).limit(limit).all()
	return {
		"events": [row.to_dict() for row in rows],
		"total": total,
		"has_more": offset + limit < total,
	}


def export_audit_events(db: Session, filters: Dict[str, Any]) -> Dict[str, Any]:
	rows = query_events(db, filters).order_by(AuditEvent.timestamp.desc()).all()
	return {
		"format": "json",
		"filename": f"audit-logs-{utcnow().date().isoformat()}.json",
		"data": [row.to_dict() for row in rows],
		"total": len(rows),
	}


def cleanup_audit_events(db: Session, older_than: Optional[str] = None, severity: Optional[str] = None) -> Dict[str, Any]:
	cutoff = _parse_bound(older_than) or (utcnow() - timedelta(days=settings.audit_retention_days))
	query = db.query(AuditEvent).filter(AuditEvent.timestamp < cutoff)
	if severity:
		query = query.filter(AuditEvent.severity == severity)
	deleted = query.delete(synchronize_session=False)
	db.commit()
	logger.info("purged %d audit events older than %s", deleted, cutoff.isoformat())
	return {"deleted_count": deleted, "cutoff": cutoff.isoformat()}
