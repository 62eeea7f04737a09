"""
Dashboard aggregates over the live complaint set.

Nothing is cached: every call reads the collection again. Counting uses
``$group`` pipelines; the trend series and resolution times walk the
timelines in Python because they depend on entry order.
"""

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from .lifecycle import as_utc, now_utc
from .models import (
    CATEGORY_DEPARTMENTS, DEPARTMENTS, Category, ComplaintStatus, Priority,
    TrendBucket, TrendMode,
)

logger = logging.getLogger(__name__)

# Canned six-month series for dashboards that want a fixed demo trend
FIXTURE_TREND = [
    {"month": "Jan", "complaints": 45, "resolved": 38},
    {"month": "Feb", "complaints": 52, "resolved": 45},
    {"month": "Mar", "complaints": 48, "resolved": 42},
    {"month": "Apr", "complaints": 61, "resolved": 55},
    {"month": "May", "complaints": 55, "resolved": 49},
    {"month": "Jun", "complaints": 58, "resolved": 52},
]

RESOLVED_STATUSES = (ComplaintStatus.RESOLVED.value, ComplaintStatus.CLOSED.value)


def bucket_start(moment: datetime, bucket: TrendBucket) -> date:
    day = moment.date()
    if bucket == TrendBucket.MONTH:
        return day.replace(day=1)
    if bucket == TrendBucket.WEEK:
        return day - timedelta(days=day.weekday())
    return day


def previous_bucket(start: date, bucket: TrendBucket) -> date:
    if bucket == TrendBucket.MONTH:
        return (start - timedelta(days=1)).replace(day=1)
    if bucket == TrendBucket.WEEK:
        return start - timedelta(days=7)
    return start - timedelta(days=1)


def bucket_label(start: date, bucket: TrendBucket) -> str:
    if bucket == TrendBucket.MONTH:
        return calendar.month_abbr[start.month]
    return start.isoformat()


def last_resolved_at(doc: dict) -> Optional[datetime]:
    for entry in reversed(doc.get("timeline", [])):
        if entry.get("status") == ComplaintStatus.RESOLVED.value:
            return as_utc(entry.get("timestamp"))
    return None


def first_resolved_at(doc: dict) -> Optional[datetime]:
    for entry in doc.get("timeline", []):
        if entry.get("status") == ComplaintStatus.RESOLVED.value:
            return as_utc(entry.get("timestamp"))
    return None


class ComplaintAnalytics:
    def __init__(self, db, trend_mode: TrendMode = TrendMode.COMPUTED):
        self.collection = db.complaints
        self.trend_mode = TrendMode(trend_mode)

    def _count_by(self, field: str) -> Dict[str, int]:
        results = self.collection.aggregate([
            {"$group": {"_id": f"${field}", "count": {"$sum": 1}}}])
        return {r["_id"]: r["count"] for r in results if r["_id"] is not None}

    def total(self) -> int:
        return self.collection.count_documents({})

    def stats_by_status(self) -> Dict[str, int]:
        counts = self._count_by("status")
        return {s.value: counts.get(s.value, 0) for s in ComplaintStatus}

    def stats_by_priority(self) -> Dict[str, int]:
        counts = self._count_by("priority")
        return {p.value: counts.get(p.value, 0) for p in Priority}

    def stats_by_category(self) -> List[dict]:
        counts = self._count_by("category")
        return [{"category": c.value, "count": counts.get(c.value, 0)} for c in Category]

    def stats_by_department(self) -> List[dict]:
        """Workload per department: explicit assignment first, category default otherwise."""
        totals = {d: {"department": d, "count": 0, "open": 0} for d in DEPARTMENTS}
        for doc in self.collection.find({}, {"category": 1, "assigned_department": 1, "status": 1}):
            dept = doc.get("assigned_department") or CATEGORY_DEPARTMENTS.get(doc.get("category"))
            if dept is None:
                continue
            row = totals.setdefault(dept, {"department": dept, "count": 0, "open": 0})
            row["count"] += 1
            if doc.get("status") not in RESOLVED_STATUSES + (ComplaintStatus.REJECTED.value,):
                row["open"] += 1
        return list(totals.values())

    def average_resolution_hours(self) -> Optional[float]:
        durations = []
        for doc in self.collection.find({"status": {"$in": list(RESOLVED_STATUSES)}},
                                        {"submitted_at": 1, "timeline": 1}):
            resolved_at = first_resolved_at(doc)
            submitted_at = as_utc(doc.get("submitted_at"))
            if resolved_at and submitted_at:
                durations.append((resolved_at - submitted_at).total_seconds() / 3600)
        if not durations:
            return None
        return round(sum(durations) / len(durations), 1)

    def summary(self) -> dict:
        by_status = self.stats_by_status()
        total = sum(by_status.values())
        resolved = sum(by_status[s] for s in RESOLVED_STATUSES)
        return {
            "total": total,
            "by_status": by_status,
            "by_priority": self.stats_by_priority(),
            "resolution_rate": round(resolved * 100 / total, 1) if total else 0.0,
            "avg_resolution_hours": self.average_resolution_hours(),
        }

    def trend(self, bucket: TrendBucket = TrendBucket.MONTH, periods: int = 6,
              mode: Optional[TrendMode] = None, now: Optional[datetime] = None) -> List[dict]:
        mode = TrendMode(mode or self.trend_mode)
        if mode == TrendMode.FIXTURE:
            return [dict(row) for row in FIXTURE_TREND]

        bucket = TrendBucket(bucket)
        starts = [bucket_start(now or now_utc(), bucket)]
        for _ in range(periods - 1):
            starts.append(previous_bucket(starts[-1], bucket))
        starts.reverse()
        rows = {s: {"period": s.isoformat(), "label": bucket_label(s, bucket),
                    "complaints": 0, "resolved": 0} for s in starts}

        for doc in self.collection.find({}, {"submitted_at": 1, "timeline": 1}):
            submitted_at = as_utc(doc.get("submitted_at"))
            if submitted_at is not None:
                key = bucket_start(submitted_at, bucket)
                if key in rows:
                    rows[key]["complaints"] += 1
            resolved_at = last_resolved_at(doc)
            if resolved_at is not None:
                key = bucket_start(resolved_at, bucket)
                if key in rows:
                    rows[key]["resolved"] += 1
        return [rows[s] for s in starts]
