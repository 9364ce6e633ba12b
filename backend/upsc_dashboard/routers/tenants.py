from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import audit, rbac
from ..accounts import find_user
from ..db import get_db
from ..models import Tenant
from ..tenancy import (
	DEFAULT_TENANT_ID,
	IMMUTABLE_TENANT_FIELDS,
	TenantError,
	add_tenant,
	delete_tenant,
	find_tenant,
	generate_tenant_id,
	has_multi_tenant_access,
	list_tenants,
	slugify_tenant_name,
	tenants_for_user,
	update_tenant,
)
from .auth import SessionUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tenants", tags=["tenants"])


class TenantCreate(BaseModel):
	name: Optional[str] = None
	display_name: Optional[str] = None
	domain: Optional[str] = None
	settings: Optional[Dict[str, Any]] = None


def _get_or_404(db: Session, tenant_id: str) -> Tenant:
	tenant = find_tenant(db, tenant_id)
	if tenant is None:
		raise HTTPException(status_code=404, detail="Tenant not found")
	return tenant


@router.get("")
def get_tenants(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if rbac.is_admin_role(user.role):
		tenants = list_tenants(db)
	else:
		tenants = tenants_for_user(db, user)
	return {"success": True, "data": [t.to_dict() for t in tenants]}


@router.post("", status_code=201)
def create_tenant(req: TenantCreate, request: Request, user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	name = (req.name or "").strip()
	display_name = (req.display_name or "").strip()
	if not name or not display_name:
		raise HTTPException(status_code=400, detail="Name and display name are required")
	if not rbac.is_admin_role(user.role) and user.tenant_id != DEFAULT_TENANT_ID:
		raise HTTPException(status_code=403, detail="Insufficient permissions to create tenant")
	tenant = Tenant(
		id=generate_tenant_id(),
		name=slugify_tenant_name(name),
		display_name=display_name,
		domain=req.domain,
		settings={
			"allow_self_registration": False,
			"default_role": "student",
			"features": ["dashboard", "learning", "calendar"],
			**(req.settings or {}),
		},
		owner_id=user.id,
		is_active=True,
	)
	try:
		add_tenant(db, tenant)
	except TenantError as exc:
		raise HTTPException(status_code=409, detail=str(exc)) from None
	owner = find_user(db, user.id)
	if owner is not None:
		owner.tenants = list(dict.fromkeys([*(owner.tenants or []), tenant.id]))
		db.commit()
	audit.log_tenant_event(db, audit.AuditActions.TENANT_CREATE, actor=user, tenant_id=tenant.id, request=request,
		details={"name": tenant.name})
	return {"success": True, "data": tenant.to_dict(), "message": "Tenant created successfully"}


@router.get("/{tenant_id}")
def get_tenant(tenant_id: str, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if not has_multi_tenant_access(user, tenant_id):
		raise HTTPException(status_code=403, detail="Access denied to this tenant")
	tenant = _get_or_404(db, tenant_id)
	return {"success": True, "data": tenant.to_dict()}


def _can_manage(user: SessionUser, tenant: Tenant) -> bool:
	if rbac.is_admin_role(user.role):
		return True
	if tenant.owner_id == user.id:
		return True
	return user.tenant_id == tenant.id and user.tenant_role == "admin"


@router.put("/{tenant_id}")
def put_tenant(tenant_id: str, updates: Dict[str, Any], request: Request,
		user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	tenant = _get_or_404(db, tenant_id)
	if not _can_manage(user, tenant):
		raise HTTPException(status_code=403, detail="Insufficient permissions to update tenant")
	clean = {k: v for k, v in updates.items() if k not in IMMUTABLE_TENANT_FIELDS}
	if "name" in clean:
		clean["name"] = slugify_tenant_name(str(clean["name"]))
	try:
		tenant = update_tenant(db, tenant, clean)
	except TenantError as exc:
		raise HTTPException(status_code=409, detail=str(exc)) from None
	audit.log_tenant_event(db, audit.AuditActions.TENANT_UPDATE, actor=user, tenant_id=tenant.id, request=request,
		details={"fields": sorted(clean)})
	return {"success": True, "data": tenant.to_dict(), "message": "Tenant updated successfully"}


@router.delete("/{tenant_id}")
def remove_tenant(tenant_id: str, request: Request, user: SessionUser = Depends(get_current_user),
		db: Session = Depends(get_db)):
	if tenant_id == DEFAULT_TENANT_ID:
		raise HTTPException(status_code=400, detail="Cannot delete default tenant")
	tenant = _get_or_404(db, tenant_id)
	is_admin = rbac.is_admin_role(user.role)
	if tenant.owner_id != user.id and not is_admin:
		raise HTTPException(status_code=403, detail="Only tenant owner or admin can delete tenant")
	delete_tenant(db, tenant)
	audit.log_tenant_event(db, audit.AuditActions.TENANT_DELETE, actor=user, tenant_id=tenant_id, request=request)
	return {"success": True, "message": "Tenant deleted successfully"}
