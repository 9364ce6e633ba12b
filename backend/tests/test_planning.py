import unittest
from datetime import timedelta

from support import ApiTestCase, reset_db

from upsc_dashboard.db import SessionLocal
from upsc_dashboard.models import utcnow
from upsc_dashboard.planning import SYLLABUS_OUTLINE, PlanningError, RevisionService, revision_interval
from upsc_dashboard.sync import SyncHub


class RevisionIntervalTests(unittest.TestCase):
	def test_base_gap_by_confidence(self):
		self.assertEqual(revision_interval(3, 1), 3)
		self.assertEqual(revision_interval(6, 1), 7)
		self.assertEqual(revision_interval(9, 1), 14)

	def test_gap_grows_with_count_and_caps(self):
		self.assertEqual(revision_interval(6, 2), 14)
		self.assertEqual(revision_interval(9, 4), 56)
		self.assertEqual(revision_interval(9, 10), 56)
		self.assertEqual(revision_interval(9, 0), 14)


class RevisionServiceTests(unittest.TestCase):
	def setUp(self):
		reset_db()
		self.db = SessionLocal()
		self.hub = SyncHub()
		self.service = RevisionService(self.db, "u1", self.hub)

	def tearDown(self):
		self.db.close()

	def test_completed_item_comes_round_again(self):
		item = self.service.create({"topic": "Fundamental Rights", "subject": "Polity", "confidence": 8})
		self.service.complete(item.id)
		next_day = utcnow().date() + timedelta(days=14)
		self.assertEqual(item.next_revision, next_day.isoformat())

		later = self.service.buckets(today=next_day)
		self.assertEqual([i["id"] for i in later["today_revisions"]], [item.id])
		self.assertEqual(later["today_revisions"][0]["status"], "pending")
		self.assertEqual(later["stats"]["pending_today"], 1)

	def test_validation(self):
		with self.assertRaises(PlanningError):
			self.service.create({"topic": "No subject"})
		with self.assertRaises(PlanningError):
			self.service.create({"topic": "x", "subject": "y", "confidence": 11})
		with self.assertRaises(PlanningError):
			self.service.create({"topic": "x", "subject": "y", "next_revision": "soon"})

	def test_partial_update_ignores_nulls_and_rejects_wrong_types(self):
		item = self.service.create({"topic": "Budget", "subject": "Economy", "notes": "Read survey"})
		updated = self.service.update(item.id, {"notes": None, "priority": None, "confidence": 7})
		self.assertEqual(updated.notes, "Read survey")
		self.assertEqual(updated.priority, "medium")
		self.assertEqual(updated.confidence, 7)
		for bad in ({"topic": 5}, {"next_revision": 20261101}, {"notes": ["x"]}, {"tags": "gs3"},
				{"difficulty": "brutal"}):
			with self.assertRaises(PlanningError):
				self.service.update(item.id, bad)

	def test_changes_are_published(self):
		self.service.create({"topic": "Monsoon", "subject": "Geography"})
		self.assertEqual(self.hub.snapshot("revision", "u1")["stats"]["total_items"], 1)


class SyllabusApiTests(ApiTestCase):
	def test_seed_and_progress(self):
		client = self.student()
		data = client.get("/api/syllabus/progress").json()["data"]
		self.assertEqual(data["overall"]["total_topics"], len(SYLLABUS_OUTLINE))
		self.assertEqual(data["overall"]["completion_percentage"], 0)
		polity = next(s for s in data["subjects"] if s["name"] == "Polity")
		self.assertEqual(polity["total_topics"], 2)

		item_id = polity["items"][0]["id"]
		resp = client.post("/api/syllabus/progress", json={"item_id": item_id,
			"updates": {"status": "completed", "completed_hours": 15}})
		self.assertEqual(resp.status_code, 200, resp.text)
		body = resp.json()["data"]
		self.assertIsNotNone(body["item"]["last_studied"])
		polity = next(s for s in body["progress"]["subjects"] if s["name"] == "Polity")
		self.assertEqual(polity["completion_percentage"], 50)
		self.assertEqual(body["progress"]["overall"]["completion_percentage"], 10)

		again = client.get("/api/syllabus/progress").json()["data"]
		self.assertEqual(again["overall"]["total_topics"], len(SYLLABUS_OUTLINE))

	def test_errors(self):
		client = self.student()
		item_id = client.get("/api/syllabus/progress").json()["data"]["subjects"][0]["items"][0]["id"]
		self.assertEqual(client.post("/api/syllabus/progress", json={"item_id": item_id}).status_code, 400)
		resp = client.post("/api/syllabus/progress", json={"item_id": item_id, "updates": {"status": "done"}})
		self.assertEqual(resp.status_code, 400)
		resp = client.post("/api/syllabus/progress", json={"item_id": item_id, "updates": {"notes": None}})
		self.assertEqual(resp.status_code, 200, resp.text)
		resp = client.post("/api/syllabus/progress", json={"item_id": item_id, "updates": {"resources": "NCERT"}})
		self.assertEqual(resp.status_code, 400)
		resp = client.post("/api/syllabus/progress", json={"item_id": "nope", "updates": {"status": "completed"}})
		self.assertEqual(resp.status_code, 404)
		self.assertEqual(resp.json()["error"], "Syllabus item not found")


class RevisionApiTests(ApiTestCase):
	def test_buckets(self):
		client = self.student()
		yesterday = (utcnow().date() - timedelta(days=1)).isoformat()
		overdue = client.post("/api/revision/engine", json={"action": "create", "data": {
			"topic": "Mauryan Empire", "subject": "History", "next_revision": yesterday}}).json()["data"]
		client.post("/api/revision/engine", json={"action": "create", "data": {"topic": "Drainage", "subject": "Geography"}})

		data = client.get("/api/revision/engine").json()["data"]
		self.assertEqual(data["stats"]["overdue_count"], 1)
		self.assertEqual(len(data["today_revisions"]), 1)

		resp = client.post("/api/revision/engine", json={"action": "complete", "item_id": overdue["id"], "confidence": 9})
		self.assertEqual(resp.status_code, 200)
		self.assertEqual(resp.json()["data"]["revision_count"], 1)

		data = client.get("/api/revision/engine").json()["data"]
		self.assertEqual(data["stats"]["overdue_count"], 0)
		self.assertEqual(len(data["upcoming_revisions"]), 1)
		self.assertEqual(data["stats"]["completed_today"], 1)

	def test_errors(self):
		client = self.student()
		self.assertEqual(client.post("/api/revision/engine", json={"action": "complete"}).status_code, 400)
		resp = client.post("/api/revision/engine", json={"action": "update", "item_id": "nope", "updates": {}})
		self.assertEqual(resp.status_code, 404)
		resp = client.post("/api/revision/engine", json={"action": "create", "data": {"topic": "x"}})
		self.assertEqual(resp.status_code, 400)
		self.assertEqual(client.post("/api/revision/engine", json={"action": "shuffle"}).status_code, 400)


if __name__ == "__main__":
	unittest.main()
