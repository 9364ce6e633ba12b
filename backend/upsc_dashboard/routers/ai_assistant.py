from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..assistant import USAGE_FEATURES, UsageTracker, answer, limit_reached
from ..db import get_db
from ..subscriptions import SubscriptionService
from .auth import SessionUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai-assistant", tags=["ai-assistant"])


class AssistantRequest(BaseModel):
	message: Optional[str] = None
	context: Optional[Dict[str, Any]] = None
	feature: str = "chat_queries"


def _daily_limit(db: Session, user_id: str) -> Any:
	return SubscriptionService(db).get_user_plan_features(user_id).get("ai_queries_per_day", 0)


@router.post("")
async def ask(req: AssistantRequest, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	message = (req.message or "").strip()
	if not message:
		raise HTTPException(status_code=400, detail="Message is required")
	if req.feature not in USAGE_FEATURES:
		raise HTTPException(status_code=400, detail=f"Unknown feature: {req.feature}")
	tracker = UsageTracker(db, user.id)
	daily_limit = _daily_limit(db, user.id)
	used = tracker.today_count()
	if limit_reached(daily_limit, used):
		raise HTTPException(status_code=429, detail={
			"error": "Daily AI query limit reached",
			"code": "AI_LIMIT_REACHED",
			"limit": daily_limit,
			"used": used,
		})
	reply = await answer(message, req.context)
	row = tracker.record(req.feature)
	reply["usage"] = {
		"today": row.query_count,
		"limit": daily_limit,
		"remaining": "unlimited" if not isinstance(daily_limit, int) else max(0, daily_limit - row.query_count),
	}
	return {"success": True, "data": reply}


@router.get("/usage")
def usage(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	return {"success": True, "data": UsageTracker(db, user.id).summary(_daily_limit(db, user.id))}
