from __future__ import annotations
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .models import KnowledgeItem, User, make_id, utcnow
from .sync import SyncHub, hub

logger = logging.getLogger(__name__)

DIFFICULTIES = ("beginner", "intermediate", "advanced")
ITEM_FIELDS = ("title", "content", "category", "tags", "difficulty", "is_favorite", "related_items", "attachments")
RECENT_DAYS = 7
SEEDED_FLAG = "knowledge_seeded"

STARTER_ITEMS: List[Dict[str, Any]] = [
	{
		"title": "Constitutional Framework of India",
		"content": "Notes on the Indian Constitution: Preamble, Fundamental Rights, DPSP and Fundamental Duties, "
			"with the historical background, constituent assembly debates and key amendments.",
		"category": "Polity",
		"tags": ["constitution", "fundamental-rights", "dpsp", "amendments"],
		"difficulty": "intermediate",
	},
	{
		"title": "Ancient Indian History Timeline",
		"content": "Timeline from the Indus Valley Civilization to the end of the Gupta period, covering major "
			"dynasties, cultural developments and archaeological evidence.",
		"category": "History",
		"tags": ["ancient-history", "timeline", "dynasties", "culture"],
		"difficulty": "beginner",
	},
	{
		"title": "Indian Monsoon System",
		"content": "Mechanism, types and seasonal variations of the Indian monsoon and its impact on agriculture "
			"and the economy.",
		"category": "Geography",
		"tags": ["monsoon", "climate", "agriculture", "weather"],
		"difficulty": "advanced",
	},
]


class KnowledgeError(ValueError):
	pass


def _check_item(data: Dict[str, Any], partial: bool = False) -> None:
	for key in ("title", "category"):
		if not partial or key in data:
			value = data.get(key)
			if not (isinstance(value, str) and value.strip()):
				raise KnowledgeError(f"{key.capitalize()} is required")
	if data.get("difficulty") is not None and data["difficulty"] not in DIFFICULTIES:
		raise KnowledgeError(f"Difficulty must be one of: {', '.join(DIFFICULTIES)}")
	for key in ("tags", "related_items", "attachments"):
		if data.get(key) is not None and not isinstance(data[key], list):
			raise KnowledgeError(f"{key} must be a list")
	if "content" in data and not isinstance(data["content"], str):
		raise KnowledgeError("Content must be text")
	if "is_favorite" in data and not isinstance(data["is_favorite"], bool):
		raise KnowledgeError("is_favorite must be true or false")


class KnowledgeBaseService:
	def __init__(self, db: Session, user_id: str, tenant_id: str, sync_hub: Optional[SyncHub] = None) -> None:
		self.db = db
		self.user_id = user_id
		self.tenant_id = tenant_id
		self.hub = sync_hub or hub

	def _query(self):
		return self.db.query(KnowledgeItem).filter(KnowledgeItem.user_id == self.user_id)

	def ensure_seeded(self) -> bool:
		"""Give a new user the starter notes, once."""
		user = self.db.get(User, self.user_id)
		prefs = dict(user.preferences or {}) if user is not None else {}
		if prefs.get(SEEDED_FLAG) or self._query().count():
			return False
		created = [self._new_item(dict(item)) for item in STARTER_ITEMS]
		# Link each starter note to the next one
		for current, following in zip(created, created[1:]):
			current.related_items = [following.id]
		if user is not None:
			prefs[SEEDED_FLAG] = True
			user.preferences = prefs
		self.db.commit()
		return True

	def _new_item(self, data: Dict[str, Any]) -> KnowledgeItem:
		item = KnowledgeItem(
			id=make_id("kb"),
			user_id=self.user_id,
			tenant_id=self.tenant_id,
			access_count=0,
			is_favorite=bool(data.pop("is_favorite", False)),
			**data,
		)
		self.db.add(item)
		return item

	def get(self, item_id: str) -> Optional[KnowledgeItem]:
		item = self.db.get(KnowledgeItem, item_id)
		return item if item is not None and item.user_id == self.user_id else None

	def items(self, category: Optional[str] = None, search: Optional[str] = None) -> List[KnowledgeItem]:
		query = self._query()
		if category:
			query = query.filter(KnowledgeItem.category == category)
		if search:
			term = f"%{search.strip()}%"
			query = query.filter(or_(KnowledgeItem.title.ilike(term), KnowledgeItem.content.ilike(term)))
		items = query.order_by(KnowledgeItem.updated_at.desc()).all()
		if search:
			# Tags live in a JSON column, match them here
			needle = search.strip().lower()
			extra = [
				i for i in self._query().all()
				if i not in items and any(needle in t.lower() for t in (i.tags or []))
				and (not category or i.category == category)
			]
			items.extend(extra)
		return items

	def summary(self, category: Optional[str] = None, search: Optional[str] = None) -> Dict[str, Any]:
		everything = self._query().all()
		now = utcnow()
		recent_cutoff = now - timedelta(days=RECENT_DAYS)
		categories: Dict[str, Dict[str, Any]] = {}
		for item in everything:
			bucket = categories.setdefault(item.category, {"name": item.category, "count": 0, "recently_added": 0})
			bucket["count"] += 1
			if item.created_at >= recent_cutoff:
				bucket["recently_added"] += 1
		accessed = sorted(
			(i for i in everything if i.last_accessed is not None),
			key=lambda i: i.last_accessed,
			reverse=True,
		)
		return {
			"items": [i.to_dict() for i in self.items(category, search)],
			"categories": sorted(categories.values(), key=lambda c: c["count"], reverse=True),
			"stats": {
				"total_items": len(everything),
				"favorite_items": sum(1 for i in everything if i.is_favorite),
				"recently_accessed": sum(1 for i in accessed if i.last_accessed >= recent_cutoff),
				"total_accesses": sum(i.access_count for i in everything),
			},
			"recently_accessed": [i.to_dict() for i in accessed[:5]],
		}

	def create(self, data: Dict[str, Any]) -> KnowledgeItem:
		clean = {k: v for k, v in data.items() if k in ITEM_FIELDS and v is not None}
		_check_item(clean)
		item = self._new_item(clean)
		self.db.commit()
		self.db.refresh(item)
		self.publish()
		return item

	def update(self, item_id: str, updates: Dict[str, Any]) -> Optional[KnowledgeItem]:
		item = self.get(item_id)
		if item is None:
			return None
		clean = {k: v for k, v in updates.items() if k in ITEM_FIELDS and v is not None}
		_check_item(clean, partial=True)
		for key, value in clean.items():
			setattr(item, key, value)
		return self._save(item)

	def access(self, item_id: str) -> Optional[KnowledgeItem]:
		item = self.get(item_id)
		if item is None:
			return None
		item.access_count = (item.access_count or 0) + 1
		item.last_accessed = utcnow()
		return self._save(item)

	def toggle_favorite(self, item_id: str) -> Optional[KnowledgeItem]:
		item = self.get(item_id)
		if item is None:
			return None
		item.is_favorite = not item.is_favorite
		return self._save(item)

	def delete(self, item_id: str) -> bool:
		item = self.get(item_id)
		if item is None:
			return False
		self.db.delete(item)
		self.db.commit()
		self.publish()
		return True

	def _save(self, item: KnowledgeItem) -> KnowledgeItem:
		item.updated_at = utcnow()
		self.db.commit()
		self.db.refresh(item)
		self.publish()
		return item

	def publish(self) -> Dict[str, Any]:
		data = self.summary()
		self.hub.publish("knowledge", self.user_id, data)
		return data
