"""Role based access control.

Roles are ordered by level; each role carries a list of resource/action
permissions, optionally guarded by conditions evaluated against the request
context (usually the tenant the request targets).
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class Permission:
	resource: str
	action: str
	conditions: Mapping[str, Any] = field(default_factory=dict)

	def to_dict(self) -> Dict[str, Any]:
		out: Dict[str, Any] = {"resource": self.resource, "action": self.action}
		if self.conditions:
			out["conditions"] = dict(self.conditions)
		return out


@dataclass(frozen=True)
class Role:
	name: str
	level: int
	permissions: List[Permission]
	inherits: List[str] = field(default_factory=list)


class Resources:
	SYSTEM = "system"
	ADMIN = "admin"
	DASHBOARD = "dashboard"
	USERS = "users"
	TENANTS = "tenants"
	CONTENT = "content"
	ANALYTICS = "analytics"
	COUPONS = "coupons"
	SUBSCRIPTIONS = "subscriptions"
	AI_ASSISTANT = "ai_assistant"
	ASSESSMENTS = "assessments"
	PROGRESS = "progress"


class Actions:
	CREATE = "create"
	READ = "read"
	UPDATE = "update"
	DELETE = "delete"
	MANAGE = "manage"
	ACCESS = "access"
	VIEW = "view"
	USE = "use"


SYSTEM_ROLES: Dict[str, Role] = {
	"super_admin": Role("Super Admin", 5, [
		Permission("*", "*"),
		Permission("system", "manage"),
		Permission("tenants", "create"),
		Permission("tenants", "delete"),
		Permission("users", "manage_all"),
		Permission("analytics", "view_global"),
	]),
	"admin": Role("Admin", 4, [
		Permission("admin", "access"),
		Permission("users", "manage"),
		Permission("content", "manage"),
		Permission("content", "create"),
		Permission("analytics", "view"),
		Permission("coupons", "manage"),
		Permission("subscriptions", "view"),
		Permission("subscriptions", "manage"),
	], inherits=["student"]),
	"tenant_admin": Role("Tenant Admin", 3, [
		Permission("tenant", "manage", {"own_tenant": True}),
		Permission("users", "manage", {"same_tenant": True}),
		Permission("content", "edit", {"tenant_scoped": True}),
		Permission("analytics", "view", {"tenant_scoped": True}),
	], inherits=["teacher"]),
	"teacher": Role("Teacher", 2, [
		Permission("dashboard", "access"),
		Permission("students", "view", {"same_tenant": True}),
		Permission("content", "create"),
		Permission("assessments", "manage"),
		Permission("progress", "view_students"),
	], inherits=["student"]),
	"student": Role("Student", 1, [
		Permission("dashboard", "access"),
		Permission("content", "view"),
		Permission("assessments", "take"),
		Permission("progress", "view_own"),
		Permission("ai_assistant", "use"),
	]),
	"trial_user": Role("Trial User", 0, [
		Permission("dashboard", "access"),
		Permission("content", "view", {"limited": True}),
		Permission("assessments", "take", {"limited": True}),
		Permission("ai_assistant", "use", {"limited": True}),
	]),
}

ROLE_NAMES = tuple(SYSTEM_ROLES)

ROUTE_PERMISSIONS: Dict[str, tuple[str, str]] = {
	"/admin": (Resources.ADMIN, Actions.ACCESS),
	"/admin/users": (Resources.USERS, Actions.MANAGE),
	"/admin/analytics": (Resources.ANALYTICS, Actions.VIEW),
	"/admin/content": (Resources.CONTENT, Actions.MANAGE),
	"/admin/coupons": (Resources.COUPONS, Actions.MANAGE),
	"/dashboard": (Resources.DASHBOARD, Actions.ACCESS),
}

_ADMIN_ROLES = {"super_admin", "admin", "tenant_admin"}


def _role_chain(role_name: str) -> List[Role]:
	"""Role plus every role it inherits from, nearest first, without repeats."""
	seen: List[str] = []
	stack = [role_name]
	while stack:
		name = stack.pop(0)
		if name in seen or name not in SYSTEM_ROLES:
			continue
		seen.append(name)
		stack.extend(SYSTEM_ROLES[name].inherits)
	return [SYSTEM_ROLES[name] for name in seen]


def _evaluate_conditions(conditions: Mapping[str, Any], user: Any, context: Optional[Mapping[str, Any]]) -> bool:
	context = context or {}
	user_tenant = getattr(user, "tenant_id", None)
	for key, value in conditions.items():
		if key in ("own_tenant", "same_tenant", "tenant_scoped"):
			target = context.get("tenant_id")
			if value and target and target != user_tenant:
				return False
		elif key == "limited":
			if value and getattr(user, "role", None) == "trial_user":
				return context.get("allow_trial") is True
		elif context.get(key) != value:
			return False
	return True


def _matches(permission: Permission, resource: str, action: str, user: Any, context: Optional[Mapping[str, Any]]) -> bool:
	if permission.resource == "*" and permission.action == "*":
		return True
	if permission.resource not in ("*", resource):
		return False
	if permission.action not in ("*", action):
		return False
	if permission.conditions:
		return _evaluate_conditions(permission.conditions, user, context)
	return True


def has_permission(user: Any, resource: str, action: str, context: Optional[Mapping[str, Any]] = None) -> bool:
	if user is None or not getattr(user, "is_active", False):
		return False
	role = getattr(user, "role", None)
	if role not in SYSTEM_ROLES:
		return False
	for current in _role_chain(role):
		for permission in current.permissions:
			if _matches(permission, resource, action, user, context):
				return True
	return False


def get_user_permissions(user: Any) -> List[Permission]:
	if user is None or not getattr(user, "is_active", False):
		return []
	permissions: List[Permission] = []
	for current in _role_chain(getattr(user, "role", "")):
		permissions.extend(current.permissions)
	return permissions


def can_access_route(user: Any, route: str) -> bool:
	required = ROUTE_PERMISSIONS.get(route)
	if required is None:
		return True
	return has_permission(user, *required)


def get_default_route(user: Any) -> str:
	if user is None or not getattr(user, "is_active", False):
		return "/login"
	if getattr(user, "role", None) in _ADMIN_ROLES:
		return "/admin"
	return "/dashboard"


def role_level(role: str) -> int:
	found = SYSTEM_ROLES.get(role)
	return found.level if found else 0


def can_change_role(current_role: str, target_role: str) -> bool:
	# Users can only hand out roles at or below their own level
	return role_level(current_role) >= role_level(target_role)


def has_role_level(user_role: str, required_role: str) -> bool:
	return role_level(user_role) >= role_level(required_role)


def is_admin_role(role: str) -> bool:
	return role in ("super_admin", "admin")
