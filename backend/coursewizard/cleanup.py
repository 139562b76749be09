from __future__ import annotations
from datetime import datetime, timedelta
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import AuthSession


def purge_idle_sessions(db: Session, days: int = 7) -> int:
	threshold = datetime.utcnow() - timedelta(days=days)
	# Tokens whose session row is gone stop authenticating
	res = db.execute(delete(AuthSession).where(AuthSession.last_activity_at < threshold))
	db.commit()
	return res.rowcount or 0
