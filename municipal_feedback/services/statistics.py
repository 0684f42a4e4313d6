"""
Per-municipality feedback aggregates.

Counts and histograms are pushed down to SQL; the average resolution time is
computed in Python so the data-quality guard (no future timestamps, no
negative durations) behaves the same on every database backend.
"""
import uuid
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.models import Feedback, FeedbackStatus, as_utc, utcnow


OPEN_STATUSES = (FeedbackStatus.PENDING.value, FeedbackStatus.IN_PROGRESS.value)
SECONDS_PER_DAY = 60 * 60 * 24
SECONDS_PER_HOUR = 60 * 60


def _scoped(db: Session, municipality_id: uuid.UUID, start: Optional[datetime], end: Optional[datetime]):
    q = db.query(Feedback).filter(Feedback.municipality_id == municipality_id)
    if start is not None:
        q = q.filter(Feedback.created_at >= as_utc(start))
    if end is not None:
        q = q.filter(Feedback.created_at <= as_utc(end))
    return q


def _histogram(query, column) -> Dict[str, int]:
    rows = query.with_entities(column, func.count(Feedback.id)).group_by(column).all()
    return {key: int(count) for key, count in rows}


def average_resolution_days(pairs, now: Optional[datetime] = None) -> float:
    """Mean of (resolved_at - created_at) in days over ``(created_at, resolved_at)`` pairs.

    Pairs with a missing or future timestamp, or a negative duration, are skipped.
    Returns 0 when nothing qualifies.
    """
    now = as_utc(now) or utcnow()
    total_seconds = 0.0
    counted = 0
    for created_at, resolved_at in pairs:
        created_at, resolved_at = as_utc(created_at), as_utc(resolved_at)
        if created_at is None or resolved_at is None:
            continue
        if created_at > now or resolved_at > now:
            continue
        duration = (resolved_at - created_at).total_seconds()
        if duration < 0:
            continue
        total_seconds += duration
        counted += 1
    if counted == 0:
        return 0
    return round(total_seconds / counted / SECONDS_PER_DAY, 2)


def feedback_statistics(
    db: Session,
    municipality_id: uuid.UUID,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> dict:
    q = _scoped(db, municipality_id, start, end)

    total = q.count()
    open_issues = q.filter(Feedback.status.in_(OPEN_STATUSES)).count()
    resolved = q.filter(Feedback.status == FeedbackStatus.RESOLVED.value).count()

    resolved_pairs = (
        q.filter(Feedback.status == FeedbackStatus.RESOLVED.value, Feedback.resolved_at.isnot(None))
        .with_entities(Feedback.created_at, Feedback.resolved_at)
        .all()
    )

    return {
        "totalFeedback": total,
        "openIssues": open_issues,
        "resolvedIssues": resolved,
        "statusDistribution": _histogram(q, Feedback.status),
        "feedbackByCategory": _histogram(q, Feedback.category),
        "averageResolutionTime": average_resolution_days(resolved_pairs, now=now),
        "dateRange": {
            "startDate": start.isoformat() if start else None,
            "endDate": end.isoformat() if end else None,
        },
    }


def feedback_summary(
    db: Session,
    municipality_id: uuid.UUID,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    areas: int = 5,
    trend: int = 10,
) -> dict:
    q = _scoped(db, municipality_id, start, end)

    # Group nearby reports by coordinates rounded to ~10m
    hotspots: Dict[str, dict] = {}
    for lat, lng, category in q.with_entities(Feedback.latitude, Feedback.longitude, Feedback.category).all():
        key = f"{lat:.4f},{lng:.4f}"
        spot = hotspots.setdefault(key, {"count": 0, "categories": {}})
        spot["count"] += 1
        spot["categories"][category] = spot["categories"].get(category, 0) + 1
    most_active = dict(sorted(hotspots.items(), key=lambda kv: kv[1]["count"], reverse=True)[:areas])

    recent_resolved = (
        q.filter(Feedback.status == FeedbackStatus.RESOLVED.value, Feedback.resolved_at.isnot(None))
        .with_entities(Feedback.created_at, Feedback.resolved_at)
        .order_by(Feedback.created_at.desc())
        .limit(trend)
        .all()
    )
    response_trend = [
        {
            "date": as_utc(created).isoformat(),
            "responseTime": round((as_utc(resolved) - as_utc(created)).total_seconds() / SECONDS_PER_HOUR, 2),
        }
        for created, resolved in recent_resolved
    ]

    return {
        "summary": {
            "statusDistribution": _histogram(q, Feedback.status),
            "mostActiveAreas": most_active,
            "responseTimeTrend": response_trend,
        },
        "dateRange": {
            "startDate": start.isoformat() if start else None,
            "endDate": end.isoformat() if end else None,
        },
    }
