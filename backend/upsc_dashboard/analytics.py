from __future__ import annotations
import logging
import time
from collections import Counter, defaultdict
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .models import AnalyticsEvent, AnalyticsSession, PageView, utcnow

logger = logging.getLogger(__name__)

EVENT_TYPES = ("click", "scroll", "form_submit", "search", "download", "ai_query", "feature_use")
RANGES = {"1d": 1, "7d": 7, "30d": 30, "90d": 90}
PAGE_VIEW_UPDATES = ("time_on_page", "interactions", "scroll_depth")


class AnalyticsError(ValueError):
	pass


def range_days(date_range: Optional[str]) -> int:
	return RANGES.get(date_range or "7d", 90)


class AnalyticsService:
	def __init__(self, db: Session) -> None:
		self.db = db

	def _unique_id(self, model, prefix: str) -> str:
		stamp = int(time.time() * 1000)
		while self.db.get(model, f"{prefix}_{stamp}") is not None:
			stamp += 1
		return f"{prefix}_{stamp}"

	def start_session(self, user_id: str, user_agent: Optional[str], ip_address: Optional[str],
			referrer: Optional[str] = None) -> AnalyticsSession:
		session = AnalyticsSession(
			id=self._unique_id(AnalyticsSession, f"session_{user_id}"),
			user_id=user_id,
			session_start=utcnow(),
			user_agent=user_agent,
			ip_address=ip_address,
			referrer=referrer,
		)
		self.db.add(session)
		self.db.commit()
		self.db.refresh(session)
		return session

	def get_session(self, session_id: str) -> Optional[AnalyticsSession]:
		return self.db.get(AnalyticsSession, session_id)

	def end_session(self, session: AnalyticsSession, exit_page: Optional[str] = None) -> AnalyticsSession:
		session.session_end = utcnow()
		session.exit_page = exit_page
		session.duration = int((session.session_end - session.session_start).total_seconds())
		self.db.commit()
		self.db.refresh(session)
		return session

	def track_page_view(self, session_id: str, user_id: str, path: str, title: str = "",
			load_time: Optional[int] = None) -> PageView:
		view = PageView(
			id=self._unique_id(PageView, f"pv_{session_id}"),
			session_id=session_id,
			user_id=user_id,
			path=path,
			title=title or "",
			timestamp=utcnow(),
			load_time=load_time,
			interactions=0,
			scroll_depth=0,
		)
		self.db.add(view)
		self.db.commit()
		self.db.refresh(view)
		return view

	def update_page_view(self, view: PageView, updates: Dict[str, Any]) -> PageView:
		for key in PAGE_VIEW_UPDATES:
			if updates.get(key) is not None:
				setattr(view, key, int(updates[key]))
		self.db.commit()
		self.db.refresh(view)
		return view

	def get_page_view(self, view_id: str) -> Optional[PageView]:
		return self.db.get(PageView, view_id)

	def track_event(self, user_id: str, session_id: str, event_type: str, event_data: Dict[str, Any],
			page: str) -> AnalyticsEvent:
		if event_type not in EVENT_TYPES:
			raise AnalyticsError("Invalid event type")
		event = AnalyticsEvent(
			id=self._unique_id(AnalyticsEvent, f"event_{session_id}"),
			user_id=user_id,
			session_id=session_id,
			event_type=event_type,
			event_data=event_data or {},
			page=page,
			timestamp=utcnow(),
		)
		self.db.add(event)
		self.db.commit()
		self.db.refresh(event)
		return event

	def summary(self, date_range: str = "7d") -> Dict[str, Any]:
		now = utcnow()
		days = range_days(date_range)
		start = now - timedelta(days=days)
		sessions = self.db.query(AnalyticsSession).filter(AnalyticsSession.session_start >= start).all()
		views = self.db.query(PageView).filter(PageView.timestamp >= start).all()
		events = self.db.query(AnalyticsEvent).filter(AnalyticsEvent.timestamp >= start).all()

		views_per_session = Counter(v.session_id for v in views)
		durations = [s.duration for s in sessions if s.duration]
		day_ago = now - timedelta(days=1)

		path_counts = Counter(v.path for v in views)
		path_users: Dict[str, set] = defaultdict(set)
		for v in views:
			path_users[v.path].add(v.user_id)
		top_pages = [
			{"path": path, "views": count, "unique_views": len(path_users[path])}
			for path, count in path_counts.most_common(8)
		]

		features = Counter(
			(e.event_data or {}).get("feature") or "Unknown"
			for e in events if e.event_type == "feature_use"
		)
		load_times: Dict[str, List[int]] = defaultdict(list)
		for v in views:
			if v.load_time:
				load_times[v.path].append(v.load_time)
		performance = []
		for page, times in list(load_times.items())[:8]:
			ordered = sorted(times)
			performance.append({
				"page": page,
				"avg_time": round(sum(ordered) / len(ordered)),
				"p95_time": ordered[min(len(ordered) - 1, int(len(ordered) * 0.95))],
			})

		daily_users: Dict[str, set] = defaultdict(set)
		for s in sessions:
			daily_users[s.session_start.date().isoformat()].add(s.user_id)
		daily = []
		for offset in range(days - 1, -1, -1):
			day = (now - timedelta(days=offset)).date().isoformat()
			daily.append({"date": day, "users": len(daily_users.get(day, ()))})

		return {
			"overview": {
				"total_users": len({s.user_id for s in sessions}),
				"active_users": len({s.user_id for s in sessions if s.session_start >= day_ago}),
				"page_views": len(views),
				"avg_session_duration": round(sum(durations) / len(sessions)) if sessions else 0,
				"bounce_rate": round(
					sum(1 for s in sessions if views_per_session.get(s.id, 0) == 1) / len(sessions) * 100, 2
				) if sessions else 0,
			},
			"traffic": {"top_pages": top_pages},
			"engagement": {
				"daily_active_users": daily,
				"feature_usage": [{"feature": f, "usage": n} for f, n in features.most_common(8)],
			},
			"performance": {"load_times": performance},
		}

	def user_summary(self, user_id: str) -> Dict[str, Any]:
		sessions = (
			self.db.query(AnalyticsSession)
			.filter(AnalyticsSession.user_id == user_id)
			.order_by(AnalyticsSession.session_start.desc())
			.all()
		)
		views = self.db.query(PageView).filter(PageView.user_id == user_id).all()
		event_count = self.db.query(AnalyticsEvent).filter(AnalyticsEvent.user_id == user_id).count()
		durations = [s.duration for s in sessions if s.duration]
		return {
			"total_sessions": len(sessions),
			"total_page_views": len(views),
			"avg_session_duration": round(sum(durations) / len(sessions)) if sessions else 0,
			"favorite_pages": [path for path, _ in Counter(v.path for v in views).most_common(5)],
			"last_active": sessions[0].session_start.isoformat() if sessions else None,
			"total_events": event_count,
		}
