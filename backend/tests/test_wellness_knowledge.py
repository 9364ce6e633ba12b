import unittest

from support import ApiTestCase

from upsc_dashboard.models import WellnessEntry
from upsc_dashboard.sync import hub
from upsc_dashboard.wellness import recommendations, wellness_stats


class WellnessScoreTests(unittest.TestCase):
	def test_empty(self):
		stats = wellness_stats([])
		self.assertEqual(stats["wellness_score"], 0)
		self.assertEqual(recommendations(stats, 0), ["Log how you feel today to get personalised suggestions"])

	def test_weighted_score(self):
		entry = WellnessEntry(mood="good", energy=7, stress=4, sleep=8, exercise=30)
		stats = wellness_stats([entry])
		self.assertEqual(stats["average_mood"], 4)
		self.assertEqual(stats["wellness_score"], 80)
		self.assertEqual(recommendations(stats, 1), ["Keep up your current routine, it is working well"])

	def test_recommendations_follow_weak_spots(self):
		entry = WellnessEntry(mood="poor", energy=3, stress=8, sleep=5, exercise=0)
		tips = recommendations(wellness_stats([entry]), 1)
		self.assertEqual(len(tips), 5)
		self.assertIn("Try to maintain consistent sleep schedule of 7-8 hours", tips)


class WellnessApiTests(ApiTestCase):
	def test_log_then_snapshot(self):
		client = self.student()
		resp = client.post("/api/wellness", json={"action": "log", "data": {"mood": "good", "energy": 7, "sleep": 8}})
		self.assertEqual(resp.status_code, 200, resp.text)
		entry = resp.json()["data"]
		self.assertEqual(entry["stress"], 5)

		snapshot = client.get("/api/wellness").json()["data"]
		self.assertEqual(snapshot["today_entry"]["id"], entry["id"])
		self.assertEqual(snapshot["weekly_data"], [])
		self.assertGreater(snapshot["stats"]["wellness_score"], 0)

		# logging again the same day updates the same entry
		resp = client.post("/api/wellness", json={"action": "log", "data": {"mood": "excellent"}})
		self.assertEqual(resp.json()["data"]["id"], entry["id"])
		self.assertEqual(resp.json()["data"]["energy"], 7)

		published = hub.snapshot("wellness", entry["user_id"])
		self.assertEqual(published["today_entry"]["mood"], "excellent")

	def test_update_by_today_alias(self):
		client = self.student()
		client.post("/api/wellness", json={"action": "log", "data": {"mood": "neutral"}})
		resp = client.post("/api/wellness", json={"action": "update", "entry_id": "wellness-today",
			"updates": {"study_hours": 6}})
		self.assertEqual(resp.status_code, 200)
		self.assertEqual(resp.json()["data"]["study_hours"], 6)

	def test_update_skips_nulls_and_rejects_wrong_types(self):
		client = self.student()
		client.post("/api/wellness", json={"action": "log", "data": {"mood": "good", "notes": "Slept well"}})
		resp = client.post("/api/wellness", json={"action": "update", "entry_id": "wellness-today",
			"updates": {"notes": None, "mood": None, "energy": 6}})
		self.assertEqual(resp.status_code, 200, resp.text)
		self.assertEqual(resp.json()["data"]["notes"], "Slept well")
		self.assertEqual(resp.json()["data"]["mood"], "good")
		for bad in ({"mood": ["good"]}, {"notes": 3}, {"energy": "high"}):
			resp = client.post("/api/wellness", json={"action": "update", "entry_id": "wellness-today", "updates": bad})
			self.assertEqual(resp.status_code, 400, bad)

	def test_errors(self):
		client = self.student()
		resp = client.post("/api/wellness", json={"action": "log", "data": {"energy": 11}})
		self.assertEqual(resp.status_code, 400)
		self.assertEqual(resp.json()["error"], "Energy must be between 1 and 10")
		resp = client.post("/api/wellness", json={"action": "log", "data": {"mood": "ecstatic"}})
		self.assertEqual(resp.status_code, 400)
		resp = client.post("/api/wellness", json={"action": "log", "data": {"date": "18/10/2026"}})
		self.assertEqual(resp.status_code, 400)
		self.assertEqual(client.post("/api/wellness", json={"action": "update"}).status_code, 400)
		resp = client.post("/api/wellness", json={"action": "update", "entry_id": "nope", "updates": {}})
		self.assertEqual(resp.status_code, 404)
		self.assertEqual(client.post("/api/wellness", json={"action": "dance"}).status_code, 400)


class KnowledgeBaseApiTests(ApiTestCase):
	def test_first_visit_seeds_once(self):
		client = self.student()
		data = client.get("/api/knowledge-base").json()["data"]
		self.assertEqual(data["stats"]["total_items"], 3)
		titles = {i["title"]: i for i in data["items"]}
		self.assertIn("Indian Monsoon System", titles)
		self.assertEqual(len(titles["Constitutional Framework of India"]["related_items"]), 1)

		item_id = data["items"][0]["id"]
		client.post("/api/knowledge-base", json={"action": "delete", "item_id": item_id})
		client.post("/api/knowledge-base", json={"action": "delete", "item_id": data["items"][1]["id"]})
		client.post("/api/knowledge-base", json={"action": "delete", "item_id": data["items"][2]["id"]})
		again = client.get("/api/knowledge-base").json()["data"]
		self.assertEqual(again["stats"]["total_items"], 0)

	def test_filters_and_tag_search(self):
		client = self.student()
		self.assertEqual(len(client.get("/api/knowledge-base?category=History").json()["data"]["items"]), 1)
		found = client.get("/api/knowledge-base?search=dpsp").json()["data"]["items"]
		self.assertEqual([i["category"] for i in found], ["Polity"])

	def test_actions(self):
		client = self.student()
		client.get("/api/knowledge-base")
		resp = client.post("/api/knowledge-base", json={"action": "create", "data": {
			"title": "Budget terms", "content": "Fiscal deficit and friends", "category": "Economy", "tags": ["budget"],
		}})
		self.assertEqual(resp.status_code, 200, resp.text)
		item_id = resp.json()["data"]["id"]

		resp = client.post("/api/knowledge-base", json={"action": "access", "item_id": item_id})
		self.assertEqual(resp.json()["data"]["access_count"], 1)
		resp = client.post("/api/knowledge-base", json={"action": "toggle_favorite", "item_id": item_id})
		self.assertTrue(resp.json()["data"]["is_favorite"])
		resp = client.post("/api/knowledge-base", json={"action": "update", "item_id": item_id,
			"updates": {"difficulty": "advanced"}})
		self.assertEqual(resp.json()["data"]["difficulty"], "advanced")

		summary = client.get("/api/knowledge-base").json()["data"]
		self.assertEqual(summary["stats"]["favorite_items"], 1)
		self.assertEqual(summary["stats"]["total_accesses"], 1)
		self.assertEqual(summary["recently_accessed"][0]["id"], item_id)
		self.assertEqual(summary["categories"][0]["count"], 1)

	def test_action_errors(self):
		client = self.student()
		resp = client.post("/api/knowledge-base", json={"action": "create", "data": {"title": "No category"}})
		self.assertEqual(resp.status_code, 400)
		self.assertEqual(resp.json()["error"], "Category is required")
		self.assertEqual(client.post("/api/knowledge-base", json={"action": "access"}).status_code, 400)
		self.assertEqual(client.post("/api/knowledge-base", json={"action": "access", "item_id": "x"}).status_code, 404)
		self.assertEqual(client.post("/api/knowledge-base", json={"action": "fly"}).status_code, 400)

		item_id = client.get("/api/knowledge-base").json()["data"]["items"][0]["id"]
		resp = client.post("/api/knowledge-base", json={"action": "update", "item_id": item_id,
			"updates": {"content": None, "is_favorite": None}})
		self.assertEqual(resp.status_code, 200, resp.text)
		self.assertTrue(resp.json()["data"]["content"])
		for bad in ({"title": 7}, {"content": {"x": 1}}, {"is_favorite": "yes"}):
			resp = client.post("/api/knowledge-base", json={"action": "update", "item_id": item_id, "updates": bad})
			self.assertEqual(resp.status_code, 400, bad)

	def test_items_are_private(self):
		first = self.student("first@example.com")
		item_id = first.get("/api/knowledge-base").json()["data"]["items"][0]["id"]
		second = self.student("second@example.com")
		resp = second.post("/api/knowledge-base", json={"action": "access", "item_id": item_id})
		self.assertEqual(resp.status_code, 404)


if __name__ == "__main__":
	unittest.main()
