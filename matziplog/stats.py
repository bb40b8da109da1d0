"""Admin dashboard counters, computed by direct count queries per request."""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from pymongo.database import Database

from matziplog.database import PHOTOS, USERS
from matziplog.moderation import count_pending


def utc_day_bounds(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Start (inclusive) and end (exclusive) of the current UTC day, naive."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def dashboard_stats(db: Database, now: Optional[datetime] = None) -> Dict[str, int]:
    start, end = utc_day_bounds(now)
    return {
        "totalUsers": db[USERS].count_documents({}),
        "todayUsers": db[USERS].count_documents({"created_at": {"$gte": start, "$lt": end}}),
        # no deletion audit trail is kept
        "todayDeletedUsers": 0,
        "totalPhotos": db[PHOTOS].count_documents({}),
        "pendingReports": count_pending(db),
    }
