from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException

from ..sync import CHANNELS, hub
from .auth import SessionUser, get_current_user

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.get("/{channel}")
def get_snapshot(channel: str, user: SessionUser = Depends(get_current_user)):
	if channel not in CHANNELS:
		raise HTTPException(status_code=400, detail=f"Unknown sync channel: {channel}")
	return {
		"success": True,
		"data": {
			"channel": channel,
			"snapshot": hub.snapshot(channel, user.id),
			"listeners": hub.listener_count(channel, user.id),
		},
	}
