import unittest
from datetime import datetime, timedelta

from support import ApiTestCase, add_user, reset_db

from upsc_dashboard.db import SessionLocal
from upsc_dashboard.subscriptions import SubscriptionError, SubscriptionService, add_months, feature_enabled


class PlanHelperTests(unittest.TestCase):
	def test_add_months_clamps_day(self):
		self.assertEqual(add_months(datetime(2024, 1, 31), 1), datetime(2024, 2, 29))
		self.assertEqual(add_months(datetime(2024, 12, 15), 1), datetime(2025, 1, 15))

	def test_feature_enabled(self):
		self.assertTrue(feature_enabled("unlimited"))
		self.assertTrue(feature_enabled(10))
		self.assertFalse(feature_enabled(0))
		self.assertFalse(feature_enabled(False))
		self.assertFalse(feature_enabled(None))


class SubscriptionServiceTests(unittest.TestCase):
	def setUp(self):
		reset_db()
		self.db = SessionLocal()
		self.service = SubscriptionService(self.db)

	def tearDown(self):
		self.db.close()

	def test_new_subscription_replaces_active_one(self):
		trial = self.service.create_subscription("u1", "trial")
		self.assertEqual(trial.end_date - trial.start_date, timedelta(days=7))
		pro = self.service.upgrade_plan("u1", "pro")
		self.db.refresh(trial)
		self.assertEqual(trial.status, "cancelled")
		self.assertEqual(self.service.get_active_user_subscription("u1").id, pro.id)
		self.assertEqual(self.service.get_user_plan_type("u1"), "pro")

	def test_lapsed_subscription_expires_on_read(self):
		trial = self.service.create_subscription("u1", "trial")
		self.service.update(trial, end_date=datetime(2000, 1, 1))
		self.assertIsNone(self.service.get_active_user_subscription("u1"))
		self.db.refresh(trial)
		self.assertEqual(trial.status, "expired")
		self.assertEqual(self.service.get_user_plan_type("u1"), "free")

	def test_extend_trial_needs_trial(self):
		with self.assertRaises(SubscriptionError):
			self.service.extend_trial("u1", 7)
		self.service.create_subscription("u1", "pro")
		with self.assertRaises(SubscriptionError):
			self.service.extend_trial("u1", 7)

	def test_unknown_plan(self):
		with self.assertRaises(SubscriptionError):
			self.service.create_subscription("u1", "platinum")

	def test_cleanup_expired(self):
		sub = self.service.create_subscription("u1", "pro")
		self.service.update(sub, end_date=datetime(2000, 1, 1))
		self.assertEqual(self.service.cleanup_expired_subscriptions(), 1)
		self.assertEqual(self.service.stats()["expired"], 1)


class SubscriptionApiTests(ApiTestCase):
	def test_free_plan_by_default(self):
		client = self.student()
		data = client.get("/api/subscriptions").json()["data"]
		self.assertIsNone(data["subscription"])
		self.assertEqual(data["plan_type"], "free")
		self.assertEqual(data["features"]["ai_queries_per_day"], 10)
		self.assertEqual(data["pricing"]["pro"]["monthly"], 200)

	def test_subscribe_and_cancel(self):
		client = self.student()
		self.assertEqual(client.post("/api/subscriptions", json={"plan_type": "free"}).status_code, 400)
		resp = client.post("/api/subscriptions", json={"plan_type": "trial"})
		self.assertEqual(resp.status_code, 201)
		self.assertEqual(client.get("/api/subscriptions").json()["data"]["plan_type"], "trial")
		self.assertEqual(client.delete("/api/subscriptions").status_code, 200)
		resp = client.delete("/api/subscriptions")
		self.assertEqual(resp.status_code, 404)
		self.assertEqual(resp.json()["error"], "No active subscription found")

	def test_feature_checks(self):
		client = self.student()
		resp = client.get("/api/subscriptions/features?feature=mock_test_series")
		self.assertEqual(resp.json()["data"], {"feature": "mock_test_series", "has_access": False, "value": False})
		self.assertEqual(client.get("/api/subscriptions/features?feature=teleport").status_code, 400)
		client.post("/api/subscriptions", json={"plan_type": "pro"})
		resp = client.post("/api/subscriptions/features", json={"features": ["priority_support", "goal_tracking"]})
		self.assertEqual(resp.json()["data"]["access"], {"priority_support": True, "goal_tracking": True})
		self.assertEqual(client.post("/api/subscriptions/features", json={"features": []}).status_code, 400)


class AdminSubscriptionApiTests(ApiTestCase):
	def test_grant_list_and_stats(self):
		user_id = add_user("student@example.com")
		client = self.admin()
		self.assertEqual(client.post("/api/admin/subscriptions", json={"user_id": user_id}).status_code, 400)
		self.assertEqual(client.post("/api/admin/subscriptions", json={"user_id": "ghost", "plan_type": "pro"}).status_code, 404)
		resp = client.post("/api/admin/subscriptions", json={"user_id": user_id, "plan_type": "pro"})
		self.assertEqual(resp.status_code, 201)

		listed = client.get("/api/admin/subscriptions?plan_type=pro").json()["data"]
		self.assertEqual(listed["pagination"]["total"], 1)
		self.assertEqual(listed["subscriptions"][0]["user_id"], user_id)

		stats = client.get("/api/admin/subscriptions/stats").json()["data"]
		self.assertEqual(stats["active"], 1)
		self.assertEqual(stats["revenue"], 200)

	def test_students_forbidden(self):
		self.assertEqual(self.student().get("/api/admin/subscriptions").status_code, 403)


if __name__ == "__main__":
	unittest.main()
