import unittest
from datetime import datetime

from support import ApiTestCase, reset_db

from upsc_dashboard.db import SessionLocal
from upsc_dashboard.models import utcnow
from upsc_dashboard.sync import CalendarSyncService, SyncError, SyncHub


class SyncHubTests(unittest.TestCase):
	def setUp(self):
		self.hub = SyncHub()

	def test_late_subscriber_gets_last_snapshot(self):
		self.hub.publish("calendar", "u1", ["first"])
		seen = []
		self.hub.subscribe("calendar", "u1", seen.append)
		self.assertEqual(seen, [["first"]])
		self.hub.publish("calendar", "u1", ["second"])
		self.assertEqual(seen, [["first"], ["second"]])

	def test_channels_are_per_owner(self):
		seen = []
		self.hub.subscribe("calendar", "u1", seen.append)
		self.assertEqual(self.hub.publish("calendar", "u2", ["other"]), 0)
		self.assertEqual(seen, [])

	def test_unsubscribe(self):
		seen = []
		unsubscribe = self.hub.subscribe("wellness", "u1", seen.append)
		self.assertEqual(self.hub.listener_count("wellness", "u1"), 1)
		unsubscribe()
		unsubscribe()
		self.hub.publish("wellness", "u1", {"x": 1})
		self.assertEqual(seen, [])

	def test_failing_listener_does_not_block_others(self):
		def broken(_snapshot):
			raise RuntimeError("boom")

		seen = []
		self.hub.subscribe("schedule", "u1", broken)
		self.hub.subscribe("schedule", "u1", seen.append)
		with self.assertLogs("upsc_dashboard.sync", level="ERROR"):
			delivered = self.hub.publish("schedule", "u1", [1])
		self.assertEqual(delivered, 1)
		self.assertEqual(seen, [[1]])

	def test_unknown_channel(self):
		with self.assertRaises(SyncError):
			self.hub.publish("gossip", "u1", None)


class TodayScheduleTests(unittest.TestCase):
	def setUp(self):
		reset_db()
		self.db = SessionLocal()
		self.hub = SyncHub()
		self.service = CalendarSyncService(self.db, "u1", self.hub)

	def tearDown(self):
		self.db.close()

	def _block(self, start, end, **extra):
		data = {"title": "Block", "subject": "Polity", "date": utcnow().date().isoformat(),
			"start_time": start, "end_time": end}
		data.update(extra)
		return self.service.add_block(data)

	def test_statuses_from_clock(self):
		self._block("08:00", "09:00")
		self._block("10:00", "11:00")
		self._block("14:00", "15:30")
		self._block("16:00", "17:00", completed=True)
		today = utcnow().date()
		now = datetime(today.year, today.month, today.day, 10, 30)
		result = self.service.today_schedule(now)
		self.assertEqual([i["status"] for i in result["schedule"]],
			["completed", "in-progress", "pending", "completed"])
		self.assertEqual(result["stats"]["completion_rate"], 50)
		self.assertEqual(result["total_study_time"], 60 + 60 + 90 + 60)
		self.assertEqual(result["completed_study_time"], 120)

	def test_block_validation(self):
		with self.assertRaises(SyncError):
			self._block("10:00", "09:00")
		with self.assertRaises(SyncError):
			self._block("25:00", "26:00")
		block = self._block("10:00", "11:00")
		with self.assertRaises(SyncError):
			self.service.update_block(block.id, {"end_time": "09:30"})

	def test_changes_are_published(self):
		seen = []
		self.hub.subscribe("today_schedule", "u1", seen.append)
		self._block("10:00", "11:00")
		self.assertEqual(seen[-1]["stats"]["total"], 1)
		self.assertEqual(len(self.hub.snapshot("schedule", "u1")), 1)


class CalendarApiTests(ApiTestCase):
	def test_events(self):
		client = self.student()
		resp = client.post("/api/calendar/events", json={"title": "Mock test", "date": "2026-11-01", "time": "09:30",
			"type": "exam"})
		self.assertEqual(resp.status_code, 201, resp.text)
		event = resp.json()["data"]
		self.assertEqual(event["priority"], "medium")

		self.assertEqual(client.post("/api/calendar/events", json={"title": "x", "date": "tomorrow"}).status_code, 400)
		self.assertEqual(client.post("/api/calendar/events", json={"title": "x", "date": "2026-11-01", "type": "party"}).status_code, 400)

		resp = client.put(f"/api/calendar/events/{event['id']}", json={"completed": True})
		self.assertTrue(resp.json()["data"]["completed"])
		self.assertEqual(len(client.get("/api/calendar/events?date=2026-11-01").json()["data"]), 1)
		self.assertEqual(client.get("/api/calendar/events?date=11-01").status_code, 400)

		self.assertEqual(client.delete(f"/api/calendar/events/{event['id']}").status_code, 200)
		resp = client.delete(f"/api/calendar/events/{event['id']}")
		self.assertEqual(resp.status_code, 404)
		self.assertEqual(resp.json()["error"], "Event not found")

	def test_null_and_mistyped_fields(self):
		client = self.student()
		event = client.post("/api/calendar/events", json={"title": "Mock test", "date": "2026-11-01",
			"type": "exam"}).json()["data"]
		resp = client.put(f"/api/calendar/events/{event['id']}", json={"type": None, "priority": None})
		self.assertEqual(resp.status_code, 200, resp.text)
		self.assertEqual(resp.json()["data"]["type"], "exam")
		self.assertEqual(resp.json()["data"]["priority"], "medium")
		for bad in ({"title": 42}, {"date": 20261101}, {"time": 930}, {"completed": "yes"}, {"tags": "gs"}):
			resp = client.put(f"/api/calendar/events/{event['id']}", json=bad)
			self.assertEqual(resp.status_code, 400, bad)

		block = client.post("/api/calendar/schedule", json={"title": "Ethics", "subject": "GS-IV",
			"date": "2026-11-01", "start_time": "09:00", "end_time": "10:00"}).json()["data"]
		resp = client.put(f"/api/calendar/schedule/{block['id']}", json={"notes": None, "end_time": None})
		self.assertEqual(resp.status_code, 200, resp.text)
		self.assertEqual(resp.json()["data"]["end_time"], "10:00")
		resp = client.put(f"/api/calendar/schedule/{block['id']}", json={"start_time": 900})
		self.assertEqual(resp.status_code, 400)
		resp = client.post("/api/calendar/import", json={"calendar": ["not an event"]})
		self.assertEqual(resp.status_code, 400)

	def test_today_and_mark_complete(self):
		client = self.student()
		today = utcnow().date().isoformat()
		block = client.post("/api/calendar/schedule", json={"title": "Ethics", "subject": "GS-IV", "date": today,
			"start_time": "00:00", "end_time": "23:59"}).json()["data"]
		resp = client.post("/api/calendar/today", json={"block_id": block["id"]})
		self.assertEqual(resp.status_code, 200)
		self.assertEqual(resp.json()["data"]["stats"]["completed"], 1)
		data = client.get("/api/calendar/today").json()["data"]
		self.assertEqual(data["events"], [])
		self.assertEqual(client.post("/api/calendar/today", json={}).status_code, 400)
		self.assertEqual(client.post("/api/calendar/today", json={"block_id": "nope"}).status_code, 404)

	def test_export_import_clear(self):
		client = self.student()
		client.post("/api/calendar/events", json={"title": "Old", "date": "2026-11-01"})
		exported = client.get("/api/calendar/export").json()["data"]
		self.assertEqual(len(exported["calendar"]), 1)

		resp = client.post("/api/calendar/import", json={"calendar": [
			{"id": "foreign", "title": "New one", "date": "2026-12-01"},
			{"title": "New two", "date": "2026-12-02"},
		]})
		self.assertEqual(resp.status_code, 200, resp.text)
		self.assertEqual(resp.json()["data"], {"calendar": 2, "schedule": 0})
		titles = [e["title"] for e in client.get("/api/calendar/events").json()["data"]]
		self.assertEqual(titles, ["New one", "New two"])
		self.assertNotIn("foreign", [e["id"] for e in client.get("/api/calendar/events").json()["data"]])

		resp = client.post("/api/calendar/import", json={"calendar": [{"title": "bad"}]})
		self.assertEqual(resp.status_code, 400)
		self.assertEqual(len(client.get("/api/calendar/events").json()["data"]), 2)
		self.assertEqual(client.post("/api/calendar/import", json={}).status_code, 400)

		self.assertEqual(client.delete("/api/calendar").status_code, 200)
		self.assertEqual(client.get("/api/calendar/export").json()["data"], {"calendar": [], "schedule": []})

	def test_sync_snapshot_endpoint(self):
		client = self.student()
		client.post("/api/calendar/events", json={"title": "Essay practice", "date": "2026-11-01"})
		data = client.get("/api/sync/calendar").json()["data"]
		self.assertEqual(data["channel"], "calendar")
		self.assertEqual(data["snapshot"][0]["title"], "Essay practice")
		self.assertEqual(data["listeners"], 0)
		self.assertEqual(client.get("/api/sync/gossip").status_code, 400)


if __name__ == "__main__":
	unittest.main()
