from __future__ import annotations
import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import audit, rbac
from ..accounts import UserError, create_user, find_user, find_user_by_email, is_valid_email, tenant_user_count
from ..db import get_db
from ..models import AuthSession, Tenant, User, utcnow
from ..security import create_access_token, decode_access_token, token_expiry, verify_password
from ..settings import settings
from ..tenancy import find_tenant, find_tenant_by_name, slugify_tenant_name

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

NAME_RE = re.compile(r"^[a-zA-Z\s]{2,50}$")
SELF_REGISTER_ROLES = ("teacher", "student")
EXPIRING_SOON = timedelta(hours=1)


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class SessionUser(BaseModel):
	id: str
	email: str
	name: str
	role: str
	tenant_id: str
	tenant_role: str
	tenants: List[str] = []
	is_active: bool = True
	session_id: Optional[str] = None
	expires_at: Optional[datetime] = None

	@classmethod
	def from_row(cls, user: User, *, session_id: Optional[str] = None, expires_at: Optional[datetime] = None) -> "SessionUser":
		return cls(
			id=user.id,
			email=user.email,
			name=user.name,
			role=user.role,
			tenant_id=user.tenant_id,
			tenant_role=user.tenant_role,
			tenants=list(user.tenants or []),
			is_active=user.is_active,
			session_id=session_id,
			expires_at=expires_at,
		)


class LoginRequest(BaseModel):
	email: Optional[str] = None
	password: Optional[str] = None


class RegisterRequest(BaseModel):
	name: Optional[str] = None
	email: Optional[str] = None
	password: Optional[str] = None
	role: Optional[str] = None
	tenant_id: Optional[str] = None
	tenant_name: Optional[str] = None
	organization_type: str = "individual"


def _unauthorized(message: str = "Authentication required") -> HTTPException:
	return HTTPException(status_code=401, detail={"error": message, "requires_login": True})


def _tenant_summary(tenant: Optional[Tenant]) -> Optional[Dict[str, Any]]:
	if tenant is None:
		return None
	return {
		"id": tenant.id,
		"name": tenant.name,
		"display_name": tenant.display_name,
		"settings": tenant.settings or {},
	}


def user_payload(user: User, tenant: Optional[Tenant] = None) -> Dict[str, Any]:
	data = user.to_dict()
	data["tenant"] = _tenant_summary(tenant)
	return data


def _session_claims(user: User, tenant: Optional[Tenant], session_id: str) -> Dict[str, Any]:
	tenant_claim = None
	if tenant is not None:
		tenant_claim = {"id": tenant.id, "name": tenant.name, "display_name": tenant.display_name}
	return {
		"sub": user.id,
		"jti": session_id,
		"email": user.email,
		"name": user.name,
		"role": user.role,
		"tenant_id": user.tenant_id,
		"tenant_role": user.tenant_role,
		"tenants": list(user.tenants or []),
		"tenant": tenant_claim,
	}


def _prune_sessions(db: Session, user_id: str) -> None:
	rows = (
		db.query(AuthSession)
		.filter(AuthSession.user_id == user_id)
		.order_by(AuthSession.created_at.desc())
		.offset(settings.session_log_limit)
		.all()
	)
	for row in rows:
		db.delete(row)


def set_session_cookie(response: Response, token: str, lifetime: timedelta) -> None:
	response.set_cookie(
		settings.cookie_name,
		token,
		max_age=int(lifetime.total_seconds()),
		httponly=True,
		secure=settings.cookie_secure,
		samesite="lax",
		path="/",
	)


def issue_session(db: Session, user: User, request: Request, *, lifetime: Optional[timedelta] = None) -> tuple[str, datetime]:
	"""Persist a new server side session for `user` and return (token, expiry)."""
	lifetime = lifetime or timedelta(days=settings.session_days)
	session_id = uuid.uuid4().hex
	expires_at = datetime.now(timezone.utc) + lifetime
	db.add(AuthSession(
		session_id=session_id,
		user_id=user.id,
		ip_address=audit.client_ip(request),
		user_agent=request.headers.get("user-agent"),
		expires_at=expires_at.replace(tzinfo=None),
	))
	db.flush()
	_prune_sessions(db, user.id)
	db.commit()
	tenant = find_tenant(db, user.tenant_id)
	token = create_access_token(_session_claims(user, tenant, session_id), lifetime)
	return token, expires_at


def _resolve_token(request: Request, bearer: Optional[str]) -> Optional[str]:
	return request.cookies.get(settings.cookie_name) or bearer


def _load_session(request: Request, bearer: Optional[str], db: Session) -> SessionUser:
	token = _resolve_token(request, bearer)
	if not token:
		raise _unauthorized()
	payload = decode_access_token(token)
	if payload is None:
		raise _unauthorized("Invalid or expired session")
	user_id = payload.get("sub")
	session_id = payload.get("jti")
	if not user_id or not session_id:
		raise _unauthorized("Invalid or expired session")
	row = db.get(AuthSession, session_id)
	if row is None or row.revoked or row.user_id != user_id:
		raise _unauthorized("Session has been revoked")
	user = find_user(db, user_id)
	if user is None:
		raise _unauthorized("User not found")
	if not user.is_active:
		raise _unauthorized("Account is deactivated")
	row.last_activity_at = utcnow()
	db.commit()
	return SessionUser.from_row(user, session_id=session_id, expires_at=token_expiry(payload))


def get_current_user(request: Request, token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> SessionUser:
	return _load_session(request, token, db)


def get_optional_user(request: Request, token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Optional[SessionUser]:
	try:
		return _load_session(request, token, db)
	except HTTPException:
		return None


def require_permission(resource: str, action: str):
	def dependency(
		request: Request,
		user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db),
	) -> SessionUser:
		if not rbac.has_permission(user, resource, action):
			audit.log_event(
				db,
				action=audit.AuditActions.PERMISSION_DENIED,
				resource=resource,
				actor=user,
				request=request,
				details={"required": f"{resource}:{action}", "path": request.url.path},
				success=False,
				severity="medium",
			)
			raise HTTPException(status_code=403, detail="Insufficient permissions")
		return user
	return dependency


def _authenticate(db: Session, email: str, password: str) -> Optional[User]:
	user = find_user_by_email(db, email)
	if user is None or not verify_password(password, user.password_hash):
		return None
	return user


@router.post("/login")
async def login(req: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
	email = (req.email or "").strip()
	password = req.password or ""
	if not email or not password:
		raise HTTPException(status_code=400, detail="Email and password are required")
	user = _authenticate(db, email, password)
	if user is None:
		audit.log_auth_event(db, audit.AuditActions.LOGIN_FAILED, request=request, success=False,
			error_message="Invalid credentials", user_email=email.lower())
		raise HTTPException(status_code=401, detail="Invalid credentials")
	if not user.is_active:
		audit.log_auth_event(db, audit.AuditActions.LOGIN_FAILED, actor=user, request=request, success=False,
			error_message="Account is deactivated")
		raise HTTPException(status_code=401, detail="Account is deactivated")
	user.last_login = utcnow()
	db.commit()
	token, expires_at = issue_session(db, user, request)
	set_session_cookie(response, token, timedelta(days=settings.session_days))
	audit.log_auth_event(db, audit.AuditActions.LOGIN, actor=user, request=request)
	tenant = find_tenant(db, user.tenant_id)
	return {
		"success": True,
		"data": {
			"user": user_payload(user, tenant),
			"expires_at": expires_at.isoformat(),
			"redirect_to": rbac.get_default_route(user),
		},
		"message": "Login successful",
	}


@router.post("/token", response_model=Token)
async def issue_token(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	user = _authenticate(db, form_data.username, form_data.password)
	if user is None or not user.is_active:
		raise HTTPException(status_code=401, detail="Incorrect email or password")
	token, _ = issue_session(db, user, request)
	return Token(access_token=token)


def _validate_registration(req: RegisterRequest) -> tuple[str, str, str, str]:
	name = (req.name or "").strip()
	email = (req.email or "").strip()
	password = req.password or ""
	if not name or not email or not password:
		raise HTTPException(status_code=400, detail={
			"error": "Please fill in all required fields: name, email, and password.",
			"code": "MISSING_FIELDS",
		})
	if not NAME_RE.match(name):
		raise HTTPException(status_code=400, detail={
			"error": "Please enter a valid name (2-50 characters, letters and spaces only).",
			"code": "INVALID_NAME",
		})
	if not is_valid_email(email):
		raise HTTPException(status_code=400, detail={"error": "Please enter a valid email address.", "code": "INVALID_EMAIL"})
	if len(password) < 6 or not re.search(r"[a-zA-Z]", password) or not re.search(r"\d", password):
		raise HTTPException(status_code=400, detail={
			"error": "Password must be at least 6 characters long and contain a mix of letters and numbers.",
			"code": "WEAK_PASSWORD",
		})
	role = req.role or "student"
	if role not in SELF_REGISTER_ROLES:
		raise HTTPException(status_code=400, detail={"error": "Please select a valid role.", "code": "INVALID_ROLE"})
	return name, email, password, role


def _check_tenant_open(db: Session, tenant_id: str) -> None:
	tenant = find_tenant(db, tenant_id)
	if tenant is None or not tenant.is_active:
		raise HTTPException(status_code=404, detail="Tenant not found")
	tenant_settings = tenant.settings or {}
	if not tenant_settings.get("allow_self_registration", False):
		raise HTTPException(status_code=403, detail="This organization does not allow self registration")
	max_users = tenant_settings.get("max_users")
	if max_users is not None and tenant_user_count(db, tenant.id) >= int(max_users):
		raise HTTPException(status_code=403, detail="This organization has reached its user limit")


@router.post("/register", status_code=201)
async def register(req: RegisterRequest, request: Request, response: Response, db: Session = Depends(get_db)):
	name, email, password, role = _validate_registration(req)
	if find_user_by_email(db, email):
		raise HTTPException(status_code=409, detail={
			"error": "An account with this email already exists. Please use a different email or try signing in.",
			"code": "EMAIL_EXISTS",
		})
	tenant_name = (req.tenant_name or "").strip() or None
	if tenant_name and find_tenant_by_name(db, slugify_tenant_name(tenant_name)):
		raise HTTPException(status_code=409, detail={"error": "Tenant name already exists", "code": "TENANT_EXISTS"})
	if not tenant_name:
		_check_tenant_open(db, req.tenant_id or "default")
	try:
		user = create_user(
			db,
			name=name,
			email=email,
			password=password,
			role=role,
			tenant_id=None if tenant_name else (req.tenant_id or None),
			tenant_name=tenant_name,
			organization_type=req.organization_type,
		)
	except UserError:
		raise HTTPException(status_code=409, detail={
			"error": "An account with this email already exists. Please use a different email or try signing in.",
			"code": "EMAIL_EXISTS",
		})
	audit.log_user_event(db, audit.AuditActions.USER_CREATE, actor=user, target_user_id=user.id, request=request,
		details={"self_registration": True})
	user.last_login = utcnow()
	db.commit()
	token, expires_at = issue_session(db, user, request)
	set_session_cookie(response, token, timedelta(days=settings.session_days))
	tenant = find_tenant(db, user.tenant_id)
	return {
		"success": True,
		"data": {
			"user": user_payload(user, tenant),
			"expires_at": expires_at.isoformat(),
			"redirect_to": rbac.get_default_route(user),
		},
		"message": "Account created successfully",
	}


@router.get("/me")
async def me(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	row = find_user(db, user.id)
	tenant = find_tenant(db, user.tenant_id)
	now = datetime.now(timezone.utc)
	expires_at = user.expires_at
	return {
		"success": True,
		"data": {
			"user": user_payload(row, tenant),
			"tenant": _tenant_summary(tenant),
			"expires_at": expires_at.isoformat() if expires_at else None,
			"is_expiring_soon": bool(expires_at and expires_at - now < EXPIRING_SOON),
			"permissions": [p.to_dict() for p in rbac.get_user_permissions(user)],
			"default_route": rbac.get_default_route(user),
		},
	}


async def _logout(request: Request, response: Response, db: Session, user: Optional[SessionUser]):
	if user is not None and user.session_id:
		row = db.get(AuthSession, user.session_id)
		if row is not None:
			row.revoked = True
			db.commit()
		audit.log_auth_event(db, audit.AuditActions.LOGOUT, actor=user, request=request)
	response.delete_cookie(settings.cookie_name, path="/")
	return {"success": True, "message": "Logged out successfully"}


@router.post("/logout")
async def logout(request: Request, response: Response, db: Session = Depends(get_db),
		user: Optional[SessionUser] = Depends(get_optional_user)):
	return await _logout(request, response, db, user)


@router.get("/logout")
async def logout_get(request: Request, response: Response, db: Session = Depends(get_db),
		user: Optional[SessionUser] = Depends(get_optional_user)):
	return await _logout(request, response, db, user)


@router.post("/refresh")
async def refresh(request: Request, response: Response, db: Session = Depends(get_db),
		user: Optional[SessionUser] = Depends(get_optional_user)):
	if user is None:
		raise _unauthorized("No valid session to refresh")
	now = datetime.now(timezone.utc)
	if user.expires_at and user.expires_at - now > timedelta(minutes=settings.refresh_threshold_minutes):
		return {
			"success": True,
			"data": {"refreshed": False, "expires_at": user.expires_at.isoformat()},
			"message": "Session is still valid",
		}
	row = find_user(db, user.id)
	if row is None:
		raise _unauthorized("User not found")
	if not row.is_active:
		raise _unauthorized("Account has been deactivated")
	old = db.get(AuthSession, user.session_id) if user.session_id else None
	if old is not None:
		old.revoked = True
		db.commit()
	lifetime = timedelta(days=settings.refresh_days)
	token, expires_at = issue_session(db, row, request, lifetime=lifetime)
	set_session_cookie(response, token, lifetime)
	return {
		"success": True,
		"data": {"refreshed": True, "expires_at": expires_at.isoformat(), "user": user_payload(row, find_tenant(db, row.tenant_id))},
		"message": "Session refreshed",
	}
