"""Syllabus coverage tracking and the spaced revision queue."""
from __future__ import annotations
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .models import RevisionItem, SyllabusItem, make_id, utcnow
from .sync import DATE_RE, SyncHub, hub

logger = logging.getLogger(__name__)

SYLLABUS_STATUSES = ("not-started", "in-progress", "completed", "revision")
REVISION_STATUSES = ("pending", "in-progress", "completed")
LEVELS = ("low", "medium", "high")
DIFFICULTIES = ("easy", "medium", "hard")

SYLLABUS_FIELDS = ("status", "priority", "difficulty", "estimated_hours", "completed_hours", "notes", "resources", "subtopics")
REVISION_FIELDS = ("topic", "subject", "priority", "difficulty", "next_revision", "confidence", "notes", "tags", "status")

# subject, topic, subtopics, priority, difficulty, estimated hours, resources
SYLLABUS_OUTLINE = [
	("History", "Ancient India", ["Indus Valley Civilization", "Vedic Period", "Mauryan Empire", "Gupta Period"],
		"high", "medium", 12, ["NCERT Class 11", "Spectrum Ancient History"]),
	("History", "Medieval India", ["Delhi Sultanate", "Mughal Empire", "Vijayanagara Empire", "Maratha Empire"],
		"high", "medium", 14, ["NCERT Class 11", "Satish Chandra"]),
	("History", "Modern India", ["British Expansion", "Revolt of 1857", "National Movement", "Partition and Independence"],
		"high", "hard", 18, ["Spectrum Modern India", "Bipan Chandra"]),
	("Polity", "Constitutional Framework", ["Preamble", "Fundamental Rights", "DPSP", "Fundamental Duties"],
		"high", "medium", 15, ["M. Laxmikanth", "NCERT Class 11"]),
	("Polity", "Union Executive", ["President", "Prime Minister", "Council of Ministers", "Attorney General"],
		"medium", "medium", 10, ["M. Laxmikanth"]),
	("Geography", "Physical Geography", ["Geomorphology", "Climatology", "Oceanography", "Biogeography"],
		"high", "hard", 16, ["NCERT Class 11", "G.C. Leong"]),
	("Geography", "Indian Geography", ["Physiography", "Drainage", "Climate", "Natural Vegetation"],
		"high", "medium", 14, ["NCERT Class 11", "Majid Husain"]),
	("Economics", "Microeconomics", ["Demand and Supply", "Market Structures", "Price Theory"],
		"medium", "medium", 8, ["NCERT Class 12"]),
	("Economics", "Economic Developments", ["Planning", "Reforms of 1991", "Fiscal Policy", "Monetary Policy"],
		"high", "hard", 12, ["Ramesh Singh", "Economic Survey"]),
	("Current Affairs", "National and International Events", ["Government Schemes", "International Relations", "Reports and Indices"],
		"high", "medium", 20, ["PIB", "Yojana Magazine"]),
]


class PlanningError(ValueError):
	pass


def _check_shapes(data: Dict[str, Any]) -> None:
	if "difficulty" in data and data["difficulty"] not in DIFFICULTIES:
		raise PlanningError(f"Difficulty must be one of: {', '.join(DIFFICULTIES)}")
	if "notes" in data and not isinstance(data["notes"], str):
		raise PlanningError("Notes must be text")
	for key in ("tags", "resources", "subtopics"):
		if key in data and not isinstance(data[key], list):
			raise PlanningError(f"{key.capitalize()} must be a list")


def _percent(part: float, whole: float) -> int:
	return round(part / whole * 100) if whole else 0


class SyllabusService:
	def __init__(self, db: Session, user_id: str, sync_hub: Optional[SyncHub] = None) -> None:
		self.db = db
		self.user_id = user_id
		self.hub = sync_hub or hub

	def items(self) -> List[SyllabusItem]:
		return (
			self.db.query(SyllabusItem)
			.filter(SyllabusItem.user_id == self.user_id)
			.order_by(SyllabusItem.subject, SyllabusItem.created_at)
			.all()
		)

	def ensure_seeded(self) -> bool:
		if self.db.query(SyllabusItem).filter(SyllabusItem.user_id == self.user_id).count():
			return False
		for subject, topic, subtopics, priority, difficulty, hours, resources in SYLLABUS_OUTLINE:
			self.db.add(SyllabusItem(
				id=make_id("syl"),
				user_id=self.user_id,
				subject=subject,
				topic=topic,
				subtopics=list(subtopics),
				status="not-started",
				priority=priority,
				difficulty=difficulty,
				estimated_hours=hours,
				completed_hours=0,
				resources=list(resources),
			))
		self.db.commit()
		return True

	def progress(self) -> Dict[str, Any]:
		subjects: Dict[str, Dict[str, Any]] = {}
		items = self.items()
		for item in items:
			subject = subjects.setdefault(item.subject, {
				"name": item.subject,
				"total_topics": 0,
				"completed_topics": 0,
				"in_progress_topics": 0,
				"items": [],
			})
			subject["total_topics"] += 1
			if item.status == "completed":
				subject["completed_topics"] += 1
			elif item.status in ("in-progress", "revision"):
				subject["in_progress_topics"] += 1
			subject["items"].append(item.to_dict())
		for subject in subjects.values():
			subject["completion_percentage"] = _percent(subject["completed_topics"], subject["total_topics"])
		completed = sum(s["completed_topics"] for s in subjects.values())
		return {
			"subjects": list(subjects.values()),
			"overall": {
				"total_topics": len(items),
				"completed_topics": completed,
				"completion_percentage": _percent(completed, len(items)),
				"total_hours": sum(i.estimated_hours for i in items),
				"completed_hours": sum(i.completed_hours for i in items),
			},
		}

	def update(self, item_id: str, updates: Dict[str, Any]) -> Optional[SyllabusItem]:
		item = self.db.get(SyllabusItem, item_id)
		if item is None or item.user_id != self.user_id:
			return None
		clean = {k: v for k, v in updates.items() if k in SYLLABUS_FIELDS and v is not None}
		_check_shapes(clean)
		if "status" in clean and clean["status"] not in SYLLABUS_STATUSES:
			raise PlanningError(f"Status must be one of: {', '.join(SYLLABUS_STATUSES)}")
		if "priority" in clean and clean["priority"] not in LEVELS:
			raise PlanningError(f"Priority must be one of: {', '.join(LEVELS)}")
		for key in ("estimated_hours", "completed_hours"):
			if key in clean and not (isinstance(clean[key], (int, float)) and clean[key] >= 0):
				raise PlanningError(f"{key} must be a non-negative number")
		for key, value in clean.items():
			setattr(item, key, value)
		if "status" in clean or "completed_hours" in clean:
			item.last_studied = utcnow()
		item.updated_at = utcnow()
		self.db.commit()
		self.db.refresh(item)
		self.publish()
		return item

	def publish(self) -> Dict[str, Any]:
		data = self.progress()
		self.hub.publish("syllabus", self.user_id, data)
		return data


def revision_interval(confidence: int, revision_count: int) -> int:
	"""Days until the next revision.

	Confidence picks the base gap (3, 7 or 14 days) and every completed
	revision stretches it, up to four times the base.
	"""
	base = 14 if confidence >= 8 else 7 if confidence >= 6 else 3
	return base * max(1, min(revision_count, 4))


class RevisionService:
	def __init__(self, db: Session, user_id: str, sync_hub: Optional[SyncHub] = None) -> None:
		self.db = db
		self.user_id = user_id
		self.hub = sync_hub or hub

	def items(self) -> List[RevisionItem]:
		return (
			self.db.query(RevisionItem)
			.filter(RevisionItem.user_id == self.user_id)
			.order_by(RevisionItem.next_revision, RevisionItem.created_at)
			.all()
		)

	def get(self, item_id: str) -> Optional[RevisionItem]:
		item = self.db.get(RevisionItem, item_id)
		return item if item is not None and item.user_id == self.user_id else None

	def _check(self, data: Dict[str, Any], partial: bool) -> None:
		for key in ("topic", "subject"):
			if not partial or key in data:
				value = data.get(key)
				if not (isinstance(value, str) and value.strip()):
					raise PlanningError(f"{key.capitalize()} is required")
		if "next_revision" in data and not (isinstance(data["next_revision"], str) and DATE_RE.match(data["next_revision"])):
			raise PlanningError("next_revision must be in YYYY-MM-DD format")
		if data.get("confidence") is not None:
			if not (isinstance(data["confidence"], int) and 1 <= data["confidence"] <= 10):
				raise PlanningError("Confidence must be between 1 and 10")
		if data.get("status") is not None and data["status"] not in REVISION_STATUSES:
			raise PlanningError(f"Status must be one of: {', '.join(REVISION_STATUSES)}")
		if data.get("priority") is not None and data["priority"] not in LEVELS:
			raise PlanningError(f"Priority must be one of: {', '.join(LEVELS)}")
		_check_shapes(data)

	def create(self, data: Dict[str, Any]) -> RevisionItem:
		clean = {k: v for k, v in data.items() if k in REVISION_FIELDS and v is not None}
		self._check(clean, partial=False)
		clean.setdefault("next_revision", utcnow().date().isoformat())
		clean.setdefault("status", "pending")
		item = RevisionItem(id=make_id("rev"), user_id=self.user_id, revision_count=0, **clean)
		self.db.add(item)
		self.db.commit()
		self.db.refresh(item)
		self.publish()
		return item

	def complete(self, item_id: str, confidence: Optional[int] = None) -> Optional[RevisionItem]:
		item = self.get(item_id)
		if item is None:
			return None
		if confidence is not None:
			self._check({"confidence": confidence}, partial=True)
			item.confidence = confidence
		self._mark_completed(item)
		return self._save(item)

	def update(self, item_id: str, updates: Dict[str, Any]) -> Optional[RevisionItem]:
		item = self.get(item_id)
		if item is None:
			return None
		clean = {k: v for k, v in updates.items() if k in REVISION_FIELDS and v is not None}
		self._check(clean, partial=True)
		for key, value in clean.items():
			setattr(item, key, value)
		if clean.get("status") == "completed":
			self._mark_completed(item)
		return self._save(item)

	def _mark_completed(self, item: RevisionItem) -> None:
		now = utcnow()
		item.revision_count = (item.revision_count or 0) + 1
		item.last_revised = now
		item.status = "completed"
		days = revision_interval(item.confidence, item.revision_count)
		item.next_revision = (now.date() + timedelta(days=days)).isoformat()

	def _save(self, item: RevisionItem) -> RevisionItem:
		item.updated_at = utcnow()
		self.db.commit()
		self.db.refresh(item)
		self.publish()
		return item

	def buckets(self, today: Optional[date] = None) -> Dict[str, Any]:
		today = today or utcnow().date()
		key = today.isoformat()
		due_again = False
		today_items, upcoming, overdue = [], [], []
		completed_today = 0
		for item in self.items():
			revised_today = item.last_revised is not None and item.last_revised.date() == today
			if revised_today:
				completed_today += 1
			if item.next_revision <= key and item.status == "completed" and not revised_today:
				# A finished revision that has come round again
				item.status = "pending"
				due_again = True
			if item.next_revision == key:
				today_items.append(item)
			elif item.next_revision > key:
				upcoming.append(item)
			else:
				overdue.append(item)
		if due_again:
			self.db.commit()
		everything = today_items + upcoming + overdue
		return {
			"today_revisions": [i.to_dict() for i in today_items],
			"upcoming_revisions": [i.to_dict() for i in upcoming],
			"overdue_revisions": [i.to_dict() for i in overdue],
			"stats": {
				"total_items": len(everything),
				"completed_today": completed_today,
				"pending_today": sum(1 for i in today_items if i.status != "completed"),
				"overdue_count": len(overdue),
				"average_confidence": round(sum(i.confidence for i in everything) / len(everything), 1) if everything else 0,
			},
		}

	def publish(self) -> Dict[str, Any]:
		data = self.buckets()
		self.hub.publish("revision", self.user_id, data)
		return data
