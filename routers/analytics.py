"""
Analytics APIs (Teachers and Admins).
"""
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user, get_db_session
from database.models import User
from routers.resources import ResourceResponse, resource_response
from services.analytics_service import AnalyticsService


router = APIRouter(prefix="/api/analytics", tags=["analytics"])


class CategoryCount(BaseModel):
    name: str
    count: int


class DayViews(BaseModel):
    date: str
    views: int


class AnalyticsResponse(BaseModel):
    """Catalog analytics summary."""
    totalResources: int
    totalViews: int
    totalDownloads: int
    categoryDistribution: List[CategoryCount]
    viewTrend: List[DayViews]
    topResources: List[ResourceResponse]


@router.get("", response_model=AnalyticsResponse)
async def get_analytics(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """
    Totals, category distribution, the last 7 days of views and the most
    viewed resources. Teachers and admins.
    """
    summary = AnalyticsService.summary(db, current_user.id)
    return AnalyticsResponse(
        totalResources=summary["total_resources"],
        totalViews=summary["total_views"],
        totalDownloads=summary["total_downloads"],
        categoryDistribution=[CategoryCount(**c) for c in summary["category_distribution"]],
        viewTrend=[DayViews(**d) for d in summary["view_trend"]],
        topResources=[resource_response(r) for r in summary["top_resources"]],
    )
