"""
Read-side catalog analytics, computed from the current tables at query time.
"""
from datetime import datetime, date, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from auth.policy import Action, Collection, policy
from database.models import Category, Resource, ViewEvent
from services.category_service import UNCATEGORIZED
import config


def _as_date(value) -> Optional[date]:
    # func.date() yields a date on PostgreSQL and an ISO string on SQLite
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class AnalyticsService:
    """Summaries for teachers and admins."""

    @staticmethod
    def totals(db: Session) -> Dict[str, int]:
        count, views, downloads = db.query(
            func.count(Resource.id),
            func.coalesce(func.sum(Resource.view_count), 0),
            func.coalesce(func.sum(Resource.download_count), 0),
        ).one()
        return {
            "total_resources": int(count or 0),
            "total_views": int(views or 0),
            "total_downloads": int(downloads or 0),
        }

    @staticmethod
    def category_distribution(db: Session) -> List[Dict[str, Any]]:
        """Resource count per category name; resources without one count as Uncategorized."""
        rows = (
            db.query(Category.name, func.count(Resource.id))
            .select_from(Resource)
            .outerjoin(Category, Resource.category_id == Category.id)
            .group_by(Category.name)
            .all()
        )
        counts: Dict[str, int] = {}
        for name, count in rows:
            key = name or UNCATEGORIZED
            counts[key] = counts.get(key, 0) + int(count)
        return [
            {"name": name, "count": count}
            for name, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        ]

    @staticmethod
    def view_trend(db: Session, now: Optional[datetime] = None, days: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        View events per UTC calendar day over the most recent ``days`` days,
        today included. Days without events report 0. Oldest day first.
        """
        days = days or config.VIEW_TREND_DAYS
        today = (now or datetime.utcnow()).date()
        first_day = today - timedelta(days=days - 1)
        since = datetime.combine(first_day, time.min)

        day_col = func.date(ViewEvent.viewed_at)
        rows = (
            db.query(day_col, func.count(ViewEvent.id))
            .filter(ViewEvent.viewed_at >= since)
            .group_by(day_col)
            .all()
        )
        per_day = {}
        for day, count in rows:
            parsed = _as_date(day)
            if parsed is not None:
                per_day[parsed] = per_day.get(parsed, 0) + int(count)

        trend = []
        for offset in range(days):
            day = first_day + timedelta(days=offset)
            trend.append({"date": day.isoformat(), "views": per_day.get(day, 0)})
        return trend

    @staticmethod
    def top_resources(db: Session, limit: Optional[int] = None) -> List[Resource]:
        return (
            db.query(Resource)
            .order_by(Resource.view_count.desc(), Resource.created_at.desc())
            .limit(limit or config.TOP_RESOURCES_LIMIT)
            .all()
        )

    @staticmethod
    def summary(db: Session, principal_id: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Full analytics summary. Reads the view-event log, so only teachers
        and admins may ask for it.
        """
        policy.enforce(db, principal_id, Collection.RESOURCE, Action.SELECT)
        policy.enforce(db, principal_id, Collection.VIEW_EVENT, Action.SELECT)

        summary = AnalyticsService.totals(db)
        summary["category_distribution"] = AnalyticsService.category_distribution(db)
        summary["view_trend"] = AnalyticsService.view_trend(db, now=now)
        summary["top_resources"] = AnalyticsService.top_resources(db)
        return summary
