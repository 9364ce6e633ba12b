from __future__ import annotations
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .models import WellnessEntry, make_id, utcnow
from .sync import DATE_RE, SyncHub, hub

logger = logging.getLogger(__name__)

MOOD_SCORES = {"terrible": 1, "poor": 2, "neutral": 3, "good": 4, "excellent": 5}
TODAY_ALIAS = "wellness-today"
ENTRY_FIELDS = ("mood", "energy", "stress", "sleep", "exercise", "study_hours", "notes", "activities")

# Weights of the 0-100 wellness score, summing to 100
SCORE_WEIGHTS = {"mood": 25, "energy": 20, "stress": 20, "sleep": 20, "exercise": 15}
TARGET_SLEEP_HOURS = 8
TARGET_EXERCISE_MINUTES = 30


class WellnessError(ValueError):
	pass


def _check_entry(data: Dict[str, Any]) -> None:
	if "mood" in data and (not isinstance(data["mood"], str) or data["mood"] not in MOOD_SCORES):
		raise WellnessError(f"Mood must be one of: {', '.join(MOOD_SCORES)}")
	for key in ("energy", "stress"):
		if key in data and not (isinstance(data[key], (int, float)) and 1 <= data[key] <= 10):
			raise WellnessError(f"{key.capitalize()} must be between 1 and 10")
	for key in ("sleep", "study_hours"):
		if key in data and not (isinstance(data[key], (int, float)) and 0 <= data[key] <= 24):
			raise WellnessError(f"{key.replace('_', ' ').capitalize()} must be between 0 and 24 hours")
	if "exercise" in data and not (isinstance(data["exercise"], (int, float)) and data["exercise"] >= 0):
		raise WellnessError("Exercise minutes cannot be negative")
	if "activities" in data and not isinstance(data["activities"], list):
		raise WellnessError("Activities must be a list")
	if "notes" in data and not isinstance(data["notes"], str):
		raise WellnessError("Notes must be text")


def _mean(values: List[float]) -> float:
	return round(sum(values) / len(values), 1) if values else 0


def wellness_stats(entries: List[WellnessEntry]) -> Dict[str, Any]:
	if not entries:
		return {
			"average_mood": 0,
			"average_energy": 0,
			"average_stress": 0,
			"average_sleep": 0,
			"total_exercise": 0,
			"wellness_score": 0,
		}
	mood = _mean([MOOD_SCORES.get(e.mood, 3) for e in entries])
	energy = _mean([e.energy for e in entries])
	stress = _mean([e.stress for e in entries])
	sleep = _mean([e.sleep for e in entries])
	exercise = sum(e.exercise for e in entries)
	parts = {
		"mood": (mood - 1) / 4,
		"energy": (energy - 1) / 9,
		"stress": (10 - stress) / 9,
		"sleep": min(sleep / TARGET_SLEEP_HOURS, 1),
		"exercise": min(exercise / len(entries) / TARGET_EXERCISE_MINUTES, 1),
	}
	score = sum(SCORE_WEIGHTS[k] * max(0.0, v) for k, v in parts.items())
	return {
		"average_mood": mood,
		"average_energy": energy,
		"average_stress": stress,
		"average_sleep": sleep,
		"total_exercise": exercise,
		"wellness_score": round(score),
	}


def recommendations(stats: Dict[str, Any], entry_count: int) -> List[str]:
	if not entry_count:
		return ["Log how you feel today to get personalised suggestions"]
	tips = []
	if stats["average_sleep"] < 7:
		tips.append("Try to maintain consistent sleep schedule of 7-8 hours")
	if stats["total_exercise"] / entry_count < TARGET_EXERCISE_MINUTES:
		tips.append("Consider adding more physical activity to reduce stress")
	if stats["average_stress"] > 6:
		tips.append("Practice mindfulness or meditation for better focus")
	if stats["average_energy"] < 5:
		tips.append("Take regular breaks during study sessions")
	if stats["average_mood"] < 3:
		tips.append("Maintain social connections for emotional well-being")
	return tips or ["Keep up your current routine, it is working well"]


class WellnessService:
	def __init__(self, db: Session, user_id: str, sync_hub: Optional[SyncHub] = None) -> None:
		self.db = db
		self.user_id = user_id
		self.hub = sync_hub or hub

	def _today(self) -> str:
		return utcnow().date().isoformat()

	def entry_for(self, day: str) -> Optional[WellnessEntry]:
		return (
			self.db.query(WellnessEntry)
			.filter(WellnessEntry.user_id == self.user_id, WellnessEntry.date == day)
			.first()
		)

	def get_entry(self, entry_id: str) -> Optional[WellnessEntry]:
		if entry_id == TODAY_ALIAS:
			return self.entry_for(self._today())
		entry = self.db.get(WellnessEntry, entry_id)
		return entry if entry is not None and entry.user_id == self.user_id else None

	def weekly_entries(self) -> List[WellnessEntry]:
		today = date.fromisoformat(self._today())
		start = (today - timedelta(days=7)).isoformat()
		return (
			self.db.query(WellnessEntry)
			.filter(
				WellnessEntry.user_id == self.user_id,
				WellnessEntry.date >= start,
				WellnessEntry.date < today.isoformat(),
			)
			.order_by(WellnessEntry.date.desc())
			.all()
		)

	def snapshot(self) -> Dict[str, Any]:
		today = self.entry_for(self._today())
		weekly = self.weekly_entries()
		entries = ([today] if today else []) + weekly
		stats = wellness_stats(entries)
		return {
			"today_entry": today.to_dict() if today else None,
			"weekly_data": [e.to_dict() for e in weekly],
			"stats": stats,
			"recommendations": recommendations(stats, len(entries)),
		}

	def log(self, data: Dict[str, Any]) -> WellnessEntry:
		clean = {k: v for k, v in data.items() if k in ENTRY_FIELDS and v is not None}
		_check_entry(clean)
		day = str(data.get("date") or self._today())
		if not DATE_RE.match(day):
			raise WellnessError("Date must be in YYYY-MM-DD format")
		entry = self.entry_for(day)
		if entry is None:
			entry = WellnessEntry(id=make_id("wellness"), user_id=self.user_id, date=day, **clean)
			self.db.add(entry)
		else:
			for key, value in clean.items():
				setattr(entry, key, value)
			entry.updated_at = utcnow()
		self.db.commit()
		self.db.refresh(entry)
		self.publish()
		return entry

	def update(self, entry_id: str, updates: Dict[str, Any]) -> Optional[WellnessEntry]:
		entry = self.get_entry(entry_id)
		if entry is None:
			return None
		clean = {k: v for k, v in updates.items() if k in ENTRY_FIELDS and v is not None}
		_check_entry(clean)
		for key, value in clean.items():
			setattr(entry, key, value)
		entry.updated_at = utcnow()
		self.db.commit()
		self.db.refresh(entry)
		self.publish()
		return entry

	def publish(self) -> Dict[str, Any]:
		data = self.snapshot()
		self.hub.publish("wellness", self.user_id, data)
		return data
