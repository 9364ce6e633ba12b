import unittest
from types import SimpleNamespace

from upsc_dashboard import rbac


def user(role, tenant_id="default", is_active=True):
	return SimpleNamespace(role=role, tenant_id=tenant_id, is_active=is_active)


class PermissionTests(unittest.TestCase):
	def test_super_admin_has_everything(self):
		self.assertTrue(rbac.has_permission(user("super_admin"), "system", "manage"))
		self.assertTrue(rbac.has_permission(user("super_admin"), "anything", "at_all"))

	def test_admin(self):
		admin = user("admin")
		self.assertTrue(rbac.has_permission(admin, "coupons", "manage"))
		self.assertTrue(rbac.has_permission(admin, "ai_assistant", "use"))
		self.assertFalse(rbac.has_permission(admin, "system", "manage"))

	def test_inheritance(self):
		tenant_admin = user("tenant_admin", "tenant_a")
		self.assertTrue(rbac.has_permission(tenant_admin, "content", "create"))
		self.assertTrue(rbac.has_permission(tenant_admin, "ai_assistant", "use"))
		self.assertFalse(rbac.has_permission(user("student"), "content", "create"))

	def test_tenant_conditions(self):
		tenant_admin = user("tenant_admin", "tenant_a")
		self.assertTrue(rbac.has_permission(tenant_admin, "users", "manage", {"tenant_id": "tenant_a"}))
		self.assertFalse(rbac.has_permission(tenant_admin, "users", "manage", {"tenant_id": "tenant_b"}))

	def test_trial_limits(self):
		trial = user("trial_user")
		self.assertFalse(rbac.has_permission(trial, "ai_assistant", "use"))
		self.assertTrue(rbac.has_permission(trial, "ai_assistant", "use", {"allow_trial": True}))

	def test_inactive_or_unknown(self):
		self.assertFalse(rbac.has_permission(user("super_admin", is_active=False), "system", "manage"))
		self.assertFalse(rbac.has_permission(user("wizard"), "dashboard", "access"))
		self.assertFalse(rbac.has_permission(None, "dashboard", "access"))
		self.assertEqual(rbac.get_user_permissions(user("student", is_active=False)), [])

	def test_permission_list_follows_chain(self):
		resources = {p.resource for p in rbac.get_user_permissions(user("teacher"))}
		self.assertIn("ai_assistant", resources)
		self.assertIn("assessments", resources)


class RoleTests(unittest.TestCase):
	def test_role_changes(self):
		self.assertTrue(rbac.can_change_role("admin", "teacher"))
		self.assertTrue(rbac.can_change_role("admin", "admin"))
		self.assertFalse(rbac.can_change_role("admin", "super_admin"))
		self.assertFalse(rbac.can_change_role("student", "teacher"))

	def test_admin_roles(self):
		self.assertTrue(rbac.is_admin_role("admin"))
		self.assertFalse(rbac.is_admin_role("tenant_admin"))
		self.assertTrue(rbac.has_role_level("tenant_admin", "teacher"))

	def test_routes(self):
		self.assertEqual(rbac.get_default_route(user("tenant_admin")), "/admin")
		self.assertEqual(rbac.get_default_route(user("student")), "/dashboard")
		self.assertEqual(rbac.get_default_route(None), "/login")
		self.assertTrue(rbac.can_access_route(user("admin"), "/admin/coupons"))
		self.assertFalse(rbac.can_access_route(user("teacher"), "/admin"))
		self.assertTrue(rbac.can_access_route(user("student"), "/somewhere-else"))


if __name__ == "__main__":
	unittest.main()
