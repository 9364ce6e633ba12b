import unittest

from support import ApiTestCase, add_user

from upsc_dashboard import tenancy


class TenantHelperTests(unittest.TestCase):
	def test_scoped_keys(self):
		key = tenancy.get_tenant_scoped_key("tenant_ab", "notes")
		self.assertEqual(key, "tenant_ab:notes")
		self.assertEqual(tenancy.parse_tenant_scoped_key(key), ("tenant_ab", "notes"))
		with self.assertRaises(tenancy.TenantError):
			tenancy.parse_tenant_scoped_key("no-colon")

	def test_resource_access(self):
		self.assertTrue(tenancy.validate_tenant_access("t1", "t1"))
		self.assertTrue(tenancy.validate_tenant_access("t1", "default"))
		self.assertFalse(tenancy.validate_tenant_access("t1", "t2"))

	def test_generated_ids_are_unique(self):
		ids = {tenancy.generate_tenant_id() for _ in range(50)}
		self.assertEqual(len(ids), 50)
		self.assertTrue(all(i.startswith("tenant_") for i in ids))


class TenantApiTests(ApiTestCase):
	def test_student_sees_only_own_tenant(self):
		add_user("owner@example.com", tenant_name="Other Academy")
		client = self.student()
		resp = client.get("/api/tenants")
		self.assertEqual(resp.status_code, 200)
		self.assertEqual([t["id"] for t in resp.json()["data"]], ["default"])

	def test_admin_lists_every_tenant(self):
		add_user("owner@example.com", tenant_name="Other Academy")
		resp = self.admin().get("/api/tenants")
		self.assertEqual(len(resp.json()["data"]), 2)

	def test_create_update_delete(self):
		client = self.student()
		resp = client.post("/api/tenants", json={"name": "My Study Group", "display_name": "My Study Group"})
		self.assertEqual(resp.status_code, 201, resp.text)
		tenant = resp.json()["data"]
		self.assertEqual(tenant["name"], "my-study-group")
		self.assertFalse(tenant["settings"]["allow_self_registration"])

		resp = client.get(f"/api/tenants/{tenant['id']}")
		self.assertEqual(resp.status_code, 200)

		resp = client.put(f"/api/tenants/{tenant['id']}", json={"display_name": "Renamed", "id": "hijack"})
		self.assertEqual(resp.status_code, 200)
		self.assertEqual(resp.json()["data"]["display_name"], "Renamed")
		self.assertEqual(resp.json()["data"]["id"], tenant["id"])

		resp = client.delete(f"/api/tenants/{tenant['id']}")
		self.assertEqual(resp.status_code, 200)
		self.assertEqual(self.admin().get(f"/api/tenants/{tenant['id']}").status_code, 404)

	def test_create_requires_names(self):
		resp = self.admin().post("/api/tenants", json={"name": "x"})
		self.assertEqual(resp.status_code, 400)

	def test_duplicate_name_conflicts(self):
		client = self.admin()
		payload = {"name": "Same Name", "display_name": "Same"}
		self.assertEqual(client.post("/api/tenants", json=payload).status_code, 201)
		self.assertEqual(client.post("/api/tenants", json=payload).status_code, 409)

	def test_default_tenant_cannot_be_deleted(self):
		resp = self.admin().delete("/api/tenants/default")
		self.assertEqual(resp.status_code, 400)
		self.assertEqual(resp.json()["error"], "Cannot delete default tenant")

	def test_foreign_tenant_access_denied(self):
		add_user("owner@example.com", tenant_name="Other Academy")
		other = [t for t in self.admin().get("/api/tenants").json()["data"] if t["id"] != "default"][0]
		client = self.student()
		self.assertEqual(client.get(f"/api/tenants/{other['id']}").status_code, 403)
		self.assertEqual(client.put(f"/api/tenants/{other['id']}", json={"display_name": "x"}).status_code, 403)
		self.assertEqual(client.delete(f"/api/tenants/{other['id']}").status_code, 403)


class TenantDataApiTests(ApiTestCase):
	def test_crud_round(self):
		client = self.student()
		resp = client.post("/api/tenant-data/notes", json={"title": "Polity", "body": "Article 21"})
		self.assertEqual(resp.status_code, 201)
		note = resp.json()["data"]
		self.assertEqual(note["title"], "Polity")
		self.assertEqual(note["tenant_id"], "default")

		resp = client.put("/api/tenant-data/notes", json={"id": note["id"], "title": "Polity II"})
		self.assertEqual(resp.status_code, 200)
		self.assertEqual(resp.json()["data"]["title"], "Polity II")
		self.assertEqual(resp.json()["data"]["body"], "Article 21")

		listing = client.get("/api/tenant-data/notes").json()["data"]
		self.assertEqual(len(listing), 1)

		self.assertEqual(client.delete(f"/api/tenant-data/notes?id={note['id']}").status_code, 200)
		self.assertEqual(client.get("/api/tenant-data/notes").json()["data"], [])

	def test_unknown_type_rejected(self):
		resp = self.student().get("/api/tenant-data/secrets")
		self.assertEqual(resp.status_code, 400)
		self.assertEqual(resp.json()["error"], "Invalid data type: secrets")

	def test_missing_id(self):
		client = self.student()
		self.assertEqual(client.put("/api/tenant-data/notes", json={"title": "x"}).status_code, 400)
		self.assertEqual(client.delete("/api/tenant-data/notes").status_code, 400)
		self.assertEqual(client.delete("/api/tenant-data/notes?id=nope").status_code, 404)

	def test_students_cannot_touch_each_other(self):
		first = self.student("first@example.com")
		note = first.post("/api/tenant-data/notes", json={"title": "mine"}).json()["data"]
		second = self.student("second@example.com")
		self.assertEqual(second.get(f"/api/tenant-data/notes?user_id={note['user_id']}").status_code, 403)
		self.assertEqual(second.put("/api/tenant-data/notes", json={"id": note["id"], "title": "x"}).status_code, 403)

	def test_teacher_reads_student_records(self):
		first = self.student("first@example.com")
		note = first.post("/api/tenant-data/notes", json={"title": "mine"}).json()["data"]
		add_user("teacher@example.com", role="teacher")
		teacher = self.login("teacher@example.com")
		resp = teacher.get(f"/api/tenant-data/notes?user_id={note['user_id']}")
		self.assertEqual(resp.status_code, 200)
		self.assertEqual(len(resp.json()["data"]), 1)

	def test_other_tenant_records_invisible(self):
		first = self.student("first@example.com")
		note = first.post("/api/tenant-data/notes", json={"title": "mine"}).json()["data"]
		add_user("outsider@example.com", role="teacher", tenant_name="Elsewhere")
		outsider = self.login("outsider@example.com")
		resp = outsider.put("/api/tenant-data/notes", json={"id": note["id"], "title": "x"})
		self.assertEqual(resp.status_code, 404)


if __name__ == "__main__":
	unittest.main()
