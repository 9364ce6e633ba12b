"""In-process publish/subscribe hub and the calendar service that feeds it.

Each (channel, owner) pair keeps its last published snapshot in memory so a
late subscriber is primed straight away. Nothing here survives a restart;
the database rows stay the source of truth.
"""
from __future__ import annotations
import logging
import re
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .models import CalendarEvent, ScheduleBlock, make_id, utcnow

logger = logging.getLogger(__name__)

CHANNELS = ("calendar", "schedule", "today_schedule", "syllabus", "revision", "wellness", "knowledge")

Listener = Callable[[Any], None]


class SyncError(ValueError):
	pass


class SyncHub:
	def __init__(self) -> None:
		self._listeners: Dict[Tuple[str, str], List[Listener]] = defaultdict(list)
		self._snapshots: Dict[Tuple[str, str], Any] = {}

	@staticmethod
	def _key(channel: str, owner: str) -> Tuple[str, str]:
		if channel not in CHANNELS:
			raise SyncError(f"Unknown sync channel: {channel}")
		return channel, owner

	def subscribe(self, channel: str, owner: str, listener: Listener) -> Callable[[], None]:
		key = self._key(channel, owner)
		self._listeners[key].append(listener)
		if key in self._snapshots:
			self._deliver(key, listener, self._snapshots[key])

		def unsubscribe() -> None:
			if listener in self._listeners.get(key, []):
				self._listeners[key].remove(listener)

		return unsubscribe

	def publish(self, channel: str, owner: str, snapshot: Any) -> int:
		key = self._key(channel, owner)
		self._snapshots[key] = snapshot
		delivered = 0
		# Copy so a listener may unsubscribe while being notified
		for listener in list(self._listeners.get(key, [])):
			if self._deliver(key, listener, snapshot):
				delivered += 1
		return delivered

	def snapshot(self, channel: str, owner: str) -> Optional[Any]:
		return self._snapshots.get(self._key(channel, owner))

	def listener_count(self, channel: str, owner: str) -> int:
		return len(self._listeners.get(self._key(channel, owner), []))

	def reset(self) -> None:
		self._listeners.clear()
		self._snapshots.clear()

	@staticmethod
	def _deliver(key: Tuple[str, str], listener: Listener, snapshot: Any) -> bool:
		try:
			listener(snapshot)
		except Exception:
			logger.exception("sync listener failed on %s/%s", *key)
			return False
		return True


hub = SyncHub()

EVENT_TYPES = ("study", "exam", "revision", "break", "other")
BLOCK_TYPES = ("study", "practice", "revision", "break")
PRIORITIES = ("low", "medium", "high")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

EVENT_FIELDS = ("title", "description", "date", "time", "duration", "type", "priority", "completed",
	"recurring", "reminders", "tags")
BLOCK_FIELDS = ("title", "subject", "start_time", "end_time", "date", "type", "priority", "completed",
	"notes", "color", "topics", "tags")


def _minutes(hhmm: str) -> int:
	hours, minutes = hhmm.split(":")
	return int(hours) * 60 + int(minutes)


def _text(value: Any) -> str:
	return value.strip() if isinstance(value, str) else ""


def _check_common(data: Dict[str, Any], kinds: Tuple[str, ...], label: str) -> None:
	if "type" in data and data["type"] not in kinds:
		raise SyncError(f"{label} type must be one of: {', '.join(kinds)}")
	if "priority" in data and data["priority"] not in PRIORITIES:
		raise SyncError(f"Priority must be one of: {', '.join(PRIORITIES)}")
	if "completed" in data and not isinstance(data["completed"], bool):
		raise SyncError("Completed must be true or false")
	for key in ("tags", "topics", "reminders"):
		if key in data and not isinstance(data[key], list):
			raise SyncError(f"{key.capitalize()} must be a list")
	for key in ("description", "notes", "color"):
		if key in data and not isinstance(data[key], str):
			raise SyncError(f"{key.capitalize()} must be text")


def _check_event(data: Dict[str, Any], partial: bool = False) -> None:
	if not partial or "title" in data:
		if not _text(data.get("title")):
			raise SyncError("Title is required")
	if not partial or "date" in data:
		if not DATE_RE.match(_text(data.get("date"))):
			raise SyncError("Date must be in YYYY-MM-DD format")
	if "time" in data and not TIME_RE.match(_text(data["time"])):
		raise SyncError("Time must be in HH:MM format")
	if "duration" in data and (isinstance(data["duration"], bool) or not isinstance(data["duration"], int)):
		raise SyncError("Duration must be a whole number of minutes")
	_check_common(data, EVENT_TYPES, "Event")


def _check_block(data: Dict[str, Any], partial: bool = False) -> None:
	for key in ("title", "subject"):
		if not partial or key in data:
			if not _text(data.get(key)):
				raise SyncError(f"{key.capitalize()} is required")
	if not partial or "date" in data:
		if not DATE_RE.match(_text(data.get("date"))):
			raise SyncError("Date must be in YYYY-MM-DD format")
	for key in ("start_time", "end_time"):
		if not partial or key in data:
			if not TIME_RE.match(_text(data.get(key))):
				raise SyncError("Start and end times must be in HH:MM format")
	_check_common(data, BLOCK_TYPES, "Block")


def _clean(item: Any, fields: Tuple[str, ...]) -> Dict[str, Any]:
	if not isinstance(item, dict):
		raise SyncError("Each imported entry must be an object")
	return {k: v for k, v in item.items() if k in fields and v is not None}


def _rows(value: Any) -> List[Any]:
	if not isinstance(value, list):
		raise SyncError("Imported calendar and schedule must be lists")
	return value


class CalendarSyncService:
	"""Calendar events and schedule blocks for one user, published on every change."""

	def __init__(self, db: Session, user_id: str, sync_hub: Optional[SyncHub] = None) -> None:
		self.db = db
		self.user_id = user_id
		self.hub = sync_hub or hub

	# events

	def events(self, date: Optional[str] = None) -> List[CalendarEvent]:
		query = self.db.query(CalendarEvent).filter(CalendarEvent.user_id == self.user_id)
		if date:
			query = query.filter(CalendarEvent.date == date)
		return query.order_by(CalendarEvent.date, CalendarEvent.time, CalendarEvent.created_at).all()

	def get_event(self, event_id: str) -> Optional[CalendarEvent]:
		event = self.db.get(CalendarEvent, event_id)
		return event if event is not None and event.user_id == self.user_id else None

	def add_event(self, data: Dict[str, Any]) -> CalendarEvent:
		clean = {k: v for k, v in data.items() if k in EVENT_FIELDS and v is not None}
		_check_event(clean)
		event = CalendarEvent(id=make_id("cal"), user_id=self.user_id, **clean)
		self.db.add(event)
		self.db.commit()
		self.db.refresh(event)
		self._publish_calendar()
		return event

	def update_event(self, event_id: str, updates: Dict[str, Any]) -> Optional[CalendarEvent]:
		event = self.get_event(event_id)
		if event is None:
			return None
		clean = {k: v for k, v in updates.items() if k in EVENT_FIELDS and v is not None}
		_check_event(clean, partial=True)
		for key, value in clean.items():
			setattr(event, key, value)
		event.updated_at = utcnow()
		self.db.commit()
		self.db.refresh(event)
		self._publish_calendar()
		return event

	def delete_event(self, event_id: str) -> bool:
		event = self.get_event(event_id)
		if event is None:
			return False
		self.db.delete(event)
		self.db.commit()
		self._publish_calendar()
		return True

	# schedule blocks

	def schedule(self, date: Optional[str] = None) -> List[ScheduleBlock]:
		query = self.db.query(ScheduleBlock).filter(ScheduleBlock.user_id == self.user_id)
		if date:
			query = query.filter(ScheduleBlock.date == date)
		return query.order_by(ScheduleBlock.date, ScheduleBlock.start_time).all()

	def get_block(self, block_id: str) -> Optional[ScheduleBlock]:
		block = self.db.get(ScheduleBlock, block_id)
		return block if block is not None and block.user_id == self.user_id else None

	def add_block(self, data: Dict[str, Any]) -> ScheduleBlock:
		clean = {k: v for k, v in data.items() if k in BLOCK_FIELDS and v is not None}
		_check_block(clean)
		if _minutes(clean["end_time"]) <= _minutes(clean["start_time"]):
			raise SyncError("End time must be after start time")
		block = ScheduleBlock(id=make_id("sch"), user_id=self.user_id, **clean)
		self.db.add(block)
		self.db.commit()
		self.db.refresh(block)
		self._publish_schedule()
		return block

	def update_block(self, block_id: str, updates: Dict[str, Any]) -> Optional[ScheduleBlock]:
		block = self.get_block(block_id)
		if block is None:
			return None
		clean = {k: v for k, v in updates.items() if k in BLOCK_FIELDS and v is not None}
		_check_block(clean, partial=True)
		start = clean.get("start_time", block.start_time)
		end = clean.get("end_time", block.end_time)
		if _minutes(end) <= _minutes(start):
			raise SyncError("End time must be after start time")
		for key, value in clean.items():
			setattr(block, key, value)
		block.updated_at = utcnow()
		self.db.commit()
		self.db.refresh(block)
		self._publish_schedule()
		return block

	def delete_block(self, block_id: str) -> bool:
		block = self.get_block(block_id)
		if block is None:
			return False
		self.db.delete(block)
		self.db.commit()
		self._publish_schedule()
		return True

	# today

	def todays_events(self) -> List[CalendarEvent]:
		return self.events(utcnow().date().isoformat())

	def todays_schedule(self) -> List[ScheduleBlock]:
		return self.schedule(utcnow().date().isoformat())

	def today_schedule(self, now: Optional[datetime] = None) -> Dict[str, Any]:
		now = now or utcnow()
		today = now.date().isoformat()
		current = now.hour * 60 + now.minute
		items = []
		for block in self.schedule(today):
			start, end = _minutes(block.start_time), _minutes(block.end_time)
			if block.completed or end <= current:
				status = "completed"
			elif start <= current < end:
				status = "in-progress"
			else:
				status = "pending"
			items.append({
				"id": block.id,
				"time": f"{block.start_time} - {block.end_time}",
				"title": block.title,
				"subject": block.subject,
				"status": status,
				"color": block.color,
				"duration": end - start,
				"topics": list(block.topics or []),
				"date": today,
			})
		total = len(items)
		completed = [i for i in items if i["status"] == "completed"]
		return {
			"date": today,
			"schedule": items,
			"stats": {
				"total": total,
				"completed": len(completed),
				"pending": sum(1 for i in items if i["status"] == "pending"),
				"in_progress": sum(1 for i in items if i["status"] == "in-progress"),
				"completion_rate": round(len(completed) / total * 100) if total else 0,
			},
			"total_study_time": sum(i["duration"] for i in items),
			"completed_study_time": sum(i["duration"] for i in completed),
		}

	# bulk

	def export_data(self) -> Dict[str, Any]:
		return {
			"calendar": [e.to_dict() for e in self.events()],
			"schedule": [b.to_dict() for b in self.schedule()],
		}

	def import_data(self, data: Dict[str, Any]) -> Dict[str, int]:
		"""Replace the calendar and/or schedule with the lists given.

		A key that is absent leaves that side untouched. Incoming ids are
		discarded so imports never collide with another user's rows.
		"""
		counts = {"calendar": 0, "schedule": 0}
		if data.get("calendar") is not None:
			events = [_clean(item, EVENT_FIELDS) for item in _rows(data["calendar"])]
			for clean in events:
				_check_event(clean)
			self.db.query(CalendarEvent).filter(CalendarEvent.user_id == self.user_id).delete(synchronize_session=False)
			for clean in events:
				self.db.add(CalendarEvent(id=make_id("cal"), user_id=self.user_id, **clean))
				counts["calendar"] += 1
		if data.get("schedule") is not None:
			blocks = [_clean(item, BLOCK_FIELDS) for item in _rows(data["schedule"])]
			for clean in blocks:
				_check_block(clean)
			self.db.query(ScheduleBlock).filter(ScheduleBlock.user_id == self.user_id).delete(synchronize_session=False)
			for clean in blocks:
				self.db.add(ScheduleBlock(id=make_id("sch"), user_id=self.user_id, **clean))
				counts["schedule"] += 1
		self.db.commit()
		self._publish_calendar()
		self._publish_schedule()
		logger.info("imported %s calendar rows for %s", counts, self.user_id)
		return counts

	def clear_all(self) -> None:
		self.db.query(CalendarEvent).filter(CalendarEvent.user_id == self.user_id).delete(synchronize_session=False)
		self.db.query(ScheduleBlock).filter(ScheduleBlock.user_id == self.user_id).delete(synchronize_session=False)
		self.db.commit()
		self._publish_calendar()
		self._publish_schedule()

	def _publish_calendar(self) -> None:
		self.hub.publish("calendar", self.user_id, [e.to_dict() for e in self.events()])

	def _publish_schedule(self) -> None:
		self.hub.publish("schedule", self.user_id, [b.to_dict() for b in self.schedule()])
		self.hub.publish("today_schedule", self.user_id, self.today_schedule())
