import unittest

from support import ADMIN_EMAIL, ADMIN_PASSWORD, ApiTestCase, add_user

from upsc_dashboard.tenancy import DEFAULT_TENANT_ID


class AdminUsersApiTests(ApiTestCase):
	def test_student_is_forbidden_and_audited(self):
		client = self.student()
		resp = client.get("/api/admin/users")
		self.assertEqual(resp.status_code, 403)
		self.assertEqual(resp.json()["error"], "Insufficient permissions")

		add_user("root@example.com", role="super_admin")
		root = self.login("root@example.com")
		events = root.get("/api/admin/audit?action=permission_denied").json()["data"]["events"]
		self.assertEqual(len(events), 1)
		self.assertFalse(events[0]["success"])
		self.assertEqual(events[0]["details"]["required"], "users:manage")

	def test_list_filters_and_stats(self):
		add_user("teacher@example.com", role="teacher", name="Meera Teacher")
		add_user("student@example.com", name="Kiran Student")
		client = self.admin()
		data = client.get("/api/admin/users").json()["data"]
		self.assertEqual(data["stats"]["total"], 3)
		self.assertEqual(data["stats"]["by_role"]["teacher"], 1)

		found = client.get("/api/admin/users?search=meera").json()["data"]["users"]
		self.assertEqual([u["email"] for u in found], ["teacher@example.com"])
		self.assertNotIn("password_hash", found[0])
		self.assertIn("account_age_days", found[0])

		students = client.get("/api/admin/users?role=student").json()["data"]["users"]
		self.assertEqual(len(students), 1)

	def test_create_validation(self):
		client = self.admin()
		base = {"name": "New Person", "email": "new@example.com", "password": "secret1"}
		self.assertEqual(client.post("/api/admin/users", json={**base, "email": "bad"}).status_code, 400)
		self.assertEqual(client.post("/api/admin/users", json={**base, "password": "abc"}).status_code, 400)
		self.assertEqual(client.post("/api/admin/users", json={**base, "role": "wizard"}).status_code, 400)
		resp = client.post("/api/admin/users", json={**base, "role": "super_admin"})
		self.assertEqual(resp.status_code, 403)
		self.assertEqual(client.post("/api/admin/users", json=base).status_code, 201)
		resp = client.post("/api/admin/users", json=base)
		self.assertEqual(resp.status_code, 409)
		self.assertEqual(resp.json()["error"], "User with this email already exists")

	def test_update_and_role_change_is_audited(self):
		user_id = add_user("student@example.com")
		client = self.admin()
		resp = client.put(f"/api/admin/users/{user_id}", json={"role": "teacher", "name": "Renamed Person"})
		self.assertEqual(resp.status_code, 200, resp.text)
		self.assertEqual(resp.json()["data"]["role"], "teacher")
		self.assertEqual(resp.json()["data"]["name"], "Renamed Person")

		add_user("root@example.com", role="super_admin")
		root = self.login("root@example.com")
		events = root.get("/api/admin/audit?action=role_change").json()["data"]["events"]
		self.assertEqual(events[0]["severity"], "high")
		self.assertEqual(events[0]["details"], {"from": "student", "to": "teacher"})

	def test_update_rules(self):
		user_id = add_user("student@example.com")
		add_user("other@example.com")
		client = self.admin()
		me = client.get("/api/auth/me").json()["data"]["user"]["id"]
		self.assertEqual(client.put(f"/api/admin/users/{user_id}", json={"name": "X"}).status_code, 400)
		resp = client.put(f"/api/admin/users/{me}", json={"role": "teacher"})
		self.assertEqual(resp.status_code, 400)
		self.assertEqual(resp.json()["error"], "You cannot change your own role")
		resp = client.put(f"/api/admin/users/{me}", json={"is_active": False})
		self.assertEqual(resp.json()["error"], "You cannot deactivate your own account")
		resp = client.put(f"/api/admin/users/{user_id}", json={"email": "other@example.com"})
		self.assertEqual(resp.status_code, 409)
		self.assertEqual(client.get("/api/admin/users/missing").status_code, 404)

	def test_deactivated_user_cannot_login(self):
		user_id = add_user("student@example.com")
		client = self.admin()
		self.assertEqual(client.put(f"/api/admin/users/{user_id}", json={"is_active": False}).status_code, 200)
		resp = self.client.post("/api/auth/login", json={"email": "student@example.com", "password": "secret123"})
		self.assertEqual(resp.status_code, 401)
		self.assertEqual(resp.json()["error"], "Account is deactivated")

	def test_delete(self):
		user_id = add_user("student@example.com")
		client = self.admin()
		me = client.get("/api/auth/me").json()["data"]["user"]["id"]
		resp = client.delete(f"/api/admin/users?user_id={me}")
		self.assertEqual(resp.status_code, 400)
		self.assertEqual(resp.json()["error"], "You cannot delete your own account")
		self.assertEqual(client.delete("/api/admin/users").status_code, 400)
		self.assertEqual(client.delete(f"/api/admin/users/{user_id}").status_code, 200)
		self.assertEqual(client.delete(f"/api/admin/users/{user_id}").status_code, 404)

	def test_tenant_admin_is_scoped(self):
		add_user("outsider@example.com", tenant_name="Elsewhere")
		add_user("local@example.com")
		add_user("tadmin@example.com", role="tenant_admin")
		client = self.login("tadmin@example.com")
		emails = {u["email"] for u in client.get("/api/admin/users").json()["data"]["users"]}
		self.assertIn("local@example.com", emails)
		self.assertNotIn("outsider@example.com", emails)

	def test_tenant_admin_cannot_touch_platform_admin(self):
		add_user("tadmin@example.com", role="tenant_admin")
		client = self.login("tadmin@example.com")
		admin_id = self.admin().get("/api/auth/me").json()["data"]["user"]["id"]
		self.assertEqual(client.get(f"/api/admin/users/{admin_id}").status_code, 403)
		resp = client.put(f"/api/admin/users/{admin_id}", json={"is_active": False})
		self.assertEqual(resp.status_code, 403)
		self.assertEqual(resp.json()["error"], "Cannot manage a user with a higher role")
		self.assertEqual(client.delete(f"/api/admin/users/{admin_id}").status_code, 403)
		self.login(ADMIN_EMAIL, ADMIN_PASSWORD)

	def test_admin_cannot_demote_super_admin(self):
		root_id = add_user("root@example.com", role="super_admin")
		client = self.admin()
		self.assertEqual(client.put(f"/api/admin/users/{root_id}", json={"role": "student"}).status_code, 403)
		self.assertEqual(client.delete(f"/api/admin/users/{root_id}").status_code, 403)
		root = self.login("root@example.com")
		self.assertEqual(root.get("/api/auth/me").json()["data"]["user"]["role"], "super_admin")


class AdminAuditApiTests(ApiTestCase):
	def test_admin_reads_but_cannot_purge(self):
		client = self.admin()
		resp = client.get("/api/admin/audit?action=login")
		self.assertEqual(resp.status_code, 200)
		self.assertEqual(resp.json()["data"]["total"], 1)
		self.assertEqual(client.post("/api/admin/audit", json={"action": "export"}).status_code, 403)

	def test_super_admin_export_and_cleanup(self):
		add_user("root@example.com", role="super_admin")
		root = self.login("root@example.com")
		resp = root.post("/api/admin/audit", json={"action": "export", "filters": {"action": "login"}})
		self.assertEqual(resp.status_code, 200)
		self.assertEqual(resp.json()["data"]["total"], 1)
		self.assertTrue(resp.json()["data"]["filename"].startswith("audit-logs-"))

		resp = root.post("/api/admin/audit", json={"action": "cleanup", "filters": {"older_than": "2999-01-01T00:00:00Z"}})
		self.assertEqual(resp.status_code, 200)
		self.assertGreaterEqual(resp.json()["data"]["deleted_count"], 2)

		self.assertEqual(root.post("/api/admin/audit", json={"action": "nuke"}).status_code, 400)

	def test_tenant_admin_sees_only_own_tenant(self):
		add_user("outsider@example.com", tenant_name="Elsewhere")
		self.login("outsider@example.com")
		add_user("tadmin@example.com", role="tenant_admin", tenant_name="Mine Org")
		client = self.login("tadmin@example.com")
		me = client.get("/api/auth/me").json()["data"]["user"]
		resp = client.get("/api/admin/audit?action=login")
		self.assertEqual(resp.status_code, 200)
		events = resp.json()["data"]["events"]
		self.assertEqual({e["tenant_id"] for e in events}, {me["tenant_id"]})
		resp = client.get(f"/api/admin/audit?tenant_id={DEFAULT_TENANT_ID}")
		self.assertEqual({e["tenant_id"] for e in resp.json()["data"]["events"]}, {me["tenant_id"]})

	def test_bad_date_filter(self):
		resp = self.admin().get("/api/admin/audit?start_date=yesterday")
		self.assertEqual(resp.status_code, 400)


class AdminAnalyticsApiTests(ApiTestCase):
	def test_range(self):
		client = self.admin()
		resp = client.get("/api/admin/analytics?range=30d")
		self.assertEqual(resp.status_code, 200)
		body = resp.json()
		self.assertEqual(body["range"], "30d")
		self.assertEqual(len(body["data"]["engagement"]["daily_active_users"]), 30)
		self.assertIn("revenue", body["data"])
		self.assertEqual(client.get("/api/admin/analytics?range=2y").status_code, 400)

	def test_tenant_admin_is_refused(self):
		add_user("tadmin@example.com", role="tenant_admin")
		resp = self.login("tadmin@example.com").get("/api/admin/analytics")
		self.assertEqual(resp.status_code, 403)

	def test_stats(self):
		data = self.admin().get("/api/admin/stats").json()["data"]
		self.assertEqual(data["users"]["total"], 1)
		self.assertEqual(data["tenants"], 1)
		self.assertEqual(data["content"]["total"], 0)


class AdminContentApiTests(ApiTestCase):
	def test_lifecycle(self):
		client = self.admin()
		self.assertEqual(client.post("/api/admin/content", json={"title": " "}).status_code, 400)
		self.assertEqual(client.post("/api/admin/content", json={"title": "x", "status": "live"}).status_code, 400)

		resp = client.post("/api/admin/content", json={"title": "Monsoon notes", "category": "Geography"})
		self.assertEqual(resp.status_code, 201)
		item = resp.json()["data"]
		self.assertEqual(item["status"], "draft")
		self.assertIsNone(item["published_at"])

		resp = client.put(f"/api/admin/content/{item['id']}", json={"status": "published"})
		self.assertEqual(resp.status_code, 200)
		self.assertIsNotNone(resp.json()["data"]["published_at"])

		stats = client.get("/api/admin/content/stats").json()["data"]
		self.assertEqual(stats["by_status"], {"published": 1})
		self.assertEqual(stats["by_category"], {"Geography": 1})

		found = client.get("/api/admin/content?search=monsoon").json()["data"]
		self.assertEqual(len(found), 1)

		self.assertEqual(client.delete(f"/api/admin/content/{item['id']}").status_code, 200)
		resp = client.get(f"/api/admin/content/{item['id']}")
		self.assertEqual(resp.status_code, 404)
		self.assertEqual(resp.json()["error"], "Content not found")


if __name__ == "__main__":
	unittest.main()
