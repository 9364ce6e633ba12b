"""Study assistant: keyword intent routing, Gemini replies and daily usage metering."""
from __future__ import annotations
import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .gemini_client import GeminiClient, GeminiError, gemini_configured
from .models import AIUsage, utcnow

logger = logging.getLogger(__name__)

USAGE_FEATURES = ("chat_queries", "analysis_requests", "study_plan_generation", "question_analysis")

TUTOR_PROMPT = (
	"You are an experienced UPSC Civil Services mentor. Answer the aspirant's question clearly and "
	"accurately, linking it to the Prelims and Mains syllabus where relevant. Prefer short paragraphs "
	"and bullet points, cite standard sources (NCERTs, Laxmikanth, Economic Survey) when useful, and "
	"finish with one concrete next step for their preparation."
)

Reply = Dict[str, Any]


def _navigate(url: str) -> Dict[str, Any]:
	return {"type": "NAVIGATE", "payload": {"url": url}}


def _has(message: str, *words: str) -> bool:
	return any(w in message for w in words)


def _dashboard(message: str) -> Reply:
	if _has(message, "customize", "customise", "edit", "change layout"):
		return {
			"intent": "dashboard_customize",
			"message": "I can help you customise your dashboard. Drag widgets to reorder them, resize them, "
				"or hide the ones you do not use. Shall I turn on edit mode?",
			"actions": [{"type": "TOGGLE_DASHBOARD_EDIT_MODE", "payload": {}}, _navigate("/")],
			"suggestions": ["Enable edit mode", "Show widget options", "Reset to default layout"],
		}
	if _has(message, "reset", "default"):
		return {
			"intent": "dashboard_reset",
			"message": "I can reset your dashboard to the default layout, restoring every widget to its "
				"original position and size. Should I go ahead?",
			"actions": [{"type": "RESET_DASHBOARD_LAYOUT", "payload": {}}],
			"suggestions": ["Reset dashboard", "Keep current layout", "Show layout options"],
		}
	return {
		"intent": "dashboard",
		"message": "Your dashboard is fully customisable. You can rearrange widgets, change their sizes "
			"and shape it around your study routine. What would you like to do?",
		"actions": [_navigate("/")],
		"suggestions": ["Customize dashboard", "Reset layout", "Show widget options"],
	}


# (keywords, builder) checked in order; the first hit wins
INTENT_RULES: List[Tuple[Tuple[str, ...], Callable[[str], Reply]]] = [
	(("dashboard", "customize", "customise", "widget"), _dashboard),
	(("bookmark", "save", "favorite", "favourite"), lambda m: {
		"intent": "bookmarks",
		"message": "I can help you manage your bookmarks. Save important articles, notes or resources "
			"for quick access later.",
		"actions": [_navigate("/bookmarks")],
		"suggestions": ["View bookmarks", "Add current page", "Organize bookmarks"],
	}),
	(("remember", "recall", "history"), lambda m: {
		"intent": "memory",
		"message": "I keep track of your study patterns, so I can recall earlier discussions, follow "
			"your progress and tailor recommendations to your learning history.",
		"actions": [],
		"suggestions": ["Show conversation history", "View study patterns", "Get personalized tips"],
	}),
	(("dictionary", "vocabulary", "word"), lambda m: {
		"intent": "dictionary",
		"message": "The Dictionary section has filtering, a word of the day and UPSC relevant terms. "
			"Would you like me to open it?",
		"actions": [_navigate("/dictionary")],
		"suggestions": ["Open Dictionary", "Search for a specific word", "Show word of the day"],
	}),
	(("map", "geography", "location"), lambda m: {
		"intent": "maps",
		"message": "The Interactive Maps section covers important UPSC geography such as the Kashmir "
			"Valley and the Western Ghats, with notes on exam relevance.",
		"actions": [_navigate("/maps")],
		"suggestions": ["Open Maps", "Show important locations", "Geography quiz"],
	}),
	(("current affairs", "news", "editorial"), lambda m: {
		"intent": "current_affairs",
		"message": "Stay on top of current affairs with the latest news and editorial analysis.",
		"actions": [_navigate("/current-affairs")],
		"suggestions": ["Open Current Affairs", "Show latest editorials", "News analysis"],
	}),
	(("schedule", "calendar", "plan"), lambda m: {
		"intent": "schedule",
		"message": "Let me help you organise your study schedule. The Schedule section has time "
			"blocking and goal tracking.",
		"actions": [_navigate("/schedule")],
		"suggestions": ["Open Schedule", "Create study plan", "Set study goals"],
	}),
	(("analytics", "progress", "performance"), lambda m: {
		"intent": "analytics",
		"message": "Track your preparation with detailed analytics: study time, accuracy and "
			"improvement trends.",
		"actions": [_navigate("/analytics")],
		"suggestions": ["Open Analytics", "View progress report", "Check study streak"],
	}),
	(("syllabus", "curriculum", "topics"), lambda m: {
		"intent": "syllabus",
		"message": "Open the UPSC syllabus for topic by topic progress tracking.",
		"actions": [_navigate("/syllabus")],
		"suggestions": ["Open Syllabus", "Track topic progress", "Show important topics"],
	}),
	(("practice", "test", "quiz", "questions"), lambda m: {
		"intent": "practice",
		"message": "Practice makes perfect. Try the practice section for mock tests and question analysis.",
		"actions": [_navigate("/practice")],
		"suggestions": ["Start Practice", "Take mock test", "Review answers"],
	}),
	(("help", "how", "guide"), lambda m: {
		"intent": "help",
		"message": "I am here to help with your UPSC preparation. I can open sections of the dashboard, "
			"explain features or give study guidance. What would you like to know?",
		"actions": [],
		"suggestions": ["Show me the dictionary", "Open current affairs", "Check my progress", "Plan my study schedule"],
	}),
]

DEFAULT_REPLY: Reply = {
	"intent": "default",
	"message": "I am your UPSC preparation assistant. I can help you find your way around the dashboard, "
		"track progress and sharpen your study plan. What would you like to do?",
	"actions": [],
	"suggestions": [
		"Open Dictionary for vocabulary building",
		"Check Current Affairs for latest news",
		"View Analytics for progress tracking",
		"Access Interactive Maps for geography",
	],
}


def route_intent(message: str) -> Reply:
	text = message.lower()
	for keywords, build in INTENT_RULES:
		if _has(text, *keywords):
			return build(text)
	return {**DEFAULT_REPLY, "actions": [], "suggestions": list(DEFAULT_REPLY["suggestions"])}


def _history(context: Optional[Dict[str, Any]]) -> List[Dict[str, str]]:
	turns = (context or {}).get("history")
	if not isinstance(turns, list):
		return []
	return [
		{"role": t["role"], "content": t["content"]} for t in turns
		if isinstance(t, dict) and isinstance(t.get("role"), str) and isinstance(t.get("content"), str)
	][-10:]


async def answer(message: str, context: Optional[Dict[str, Any]] = None, *,
		client_factory: Callable[[], GeminiClient] = GeminiClient) -> Reply:
	reply = route_intent(message)
	if not gemini_configured():
		return {**reply, "ai_available": False}
	history = _history(context)
	try:
		async with client_factory() as client:
			text = await client.generate(message, system=TUTOR_PROMPT, history=history)
	except GeminiError as err:
		logger.warning("assistant falling back to rule reply: %s", err)
		return {**reply, "ai_available": False}
	return {**reply, "message": text.strip() or reply["message"], "ai_available": True}


class UsageTracker:
	def __init__(self, db: Session, user_id: str) -> None:
		self.db = db
		self.user_id = user_id

	def _row(self, day: str) -> Optional[AIUsage]:
		return self.db.get(AIUsage, f"{self.user_id}-{day}")

	def today_count(self) -> int:
		row = self._row(utcnow().date().isoformat())
		return row.query_count if row else 0

	def record(self, feature: str = "chat_queries") -> AIUsage:
		if feature not in USAGE_FEATURES:
			feature = "chat_queries"
		now = utcnow()
		day = now.date().isoformat()
		row = self._row(day)
		if row is None:
			row = AIUsage(
				id=f"{self.user_id}-{day}",
				user_id=self.user_id,
				date=day,
				query_count=0,
				features={k: 0 for k in USAGE_FEATURES},
			)
			self.db.add(row)
		features = dict(row.features or {})
		features[feature] = features.get(feature, 0) + 1
		row.features = features
		row.query_count = (row.query_count or 0) + 1
		row.last_used = now
		self.db.commit()
		self.db.refresh(row)
		return row

	def summary(self, daily_limit: Any) -> Dict[str, Any]:
		today = utcnow().date()
		month_start = (today - timedelta(days=29)).isoformat()
		week_start = (today - timedelta(days=6)).isoformat()
		rows = (
			self.db.query(AIUsage)
			.filter(AIUsage.user_id == self.user_id, AIUsage.date >= month_start)
			.order_by(AIUsage.date.desc())
			.all()
		)
		today_count = sum(r.query_count for r in rows if r.date == today.isoformat())
		month = sum(r.query_count for r in rows)
		breakdown = {k: 0 for k in USAGE_FEATURES}
		for r in rows:
			for key, value in (r.features or {}).items():
				breakdown[key] = breakdown.get(key, 0) + value
		if isinstance(daily_limit, bool) or not isinstance(daily_limit, int):
			remaining: Any = "unlimited"
		else:
			remaining = max(0, daily_limit - today_count)
		return {
			"today": today_count,
			"this_week": sum(r.query_count for r in rows if r.date >= week_start),
			"this_month": month,
			"average_daily": round(month / len(rows), 2) if rows else 0,
			"feature_breakdown": breakdown,
			"last_used": rows[0].last_used.isoformat() if rows else None,
			"limit": daily_limit,
			"remaining": remaining,
		}


def limit_reached(daily_limit: Any, used_today: int) -> bool:
	if isinstance(daily_limit, bool) or not isinstance(daily_limit, int):
		return False
	return used_today >= daily_limit
