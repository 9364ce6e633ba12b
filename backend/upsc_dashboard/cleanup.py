from __future__ import annotations
import logging
from datetime import timedelta
from typing import Dict

from sqlalchemy import delete, or_
from sqlalchemy.orm import Session

from .audit import cleanup_audit_events
from .models import AuthSession, utcnow
from .subscriptions import SubscriptionService

logger = logging.getLogger(__name__)


def purge_stale_sessions(db: Session) -> int:
	threshold = utcnow()
	# Revoked rows linger for a day after their last activity
	revoked_cutoff = threshold - timedelta(days=1)
	res = db.execute(
		delete(AuthSession).where(
			or_(
				AuthSession.expires_at < threshold,
				(AuthSession.revoked.is_(True)) & (AuthSession.last_activity_at < revoked_cutoff),
			)
		)
	)
	db.commit()
	return res.rowcount or 0


def run_maintenance(db: Session) -> Dict[str, int]:
	expired = SubscriptionService(db).cleanup_expired_subscriptions()
	sessions = purge_stale_sessions(db)
	audit = cleanup_audit_events(db)["deleted_count"]
	result = {"expired_subscriptions": expired, "purged_sessions": sessions, "purged_audit_events": audit}
	logger.info("maintenance run: %s", result)
	return result
