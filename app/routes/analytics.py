"""Analytics endpoints: event intake and the read views derived from the log."""

from fastapi import APIRouter, Depends, Request

from app.db.database import Database, get_db
from app.models.analytics import RecordEventRequest
from app.routes.auth import require_user_owner
from app.services import analytics

router = APIRouter(tags=["analytics"])


@router.post("/events")
async def record_event(body: RecordEventRequest, request: Request, db: Database = Depends(get_db)):
    require_user_owner(request, body.user_id)
    event = await analytics.record_event(db, body.user_id, body.event_type, body.event_data, body.session_id)
    return {"success": True, "eventId": event.id}


@router.get("/analytics/{user_id}")
async def get_user_analytics(
    user_id: str,
    request: Request,
    timeframe: str = analytics.DEFAULT_TIMEFRAME,
    db: Database = Depends(get_db),
):
    require_user_owner(request, user_id)
    return {"analytics": await analytics.get_user_analytics(db, user_id, timeframe)}


@router.get("/analytics/{user_id}/sections")
async def get_section_analytics(
    user_id: str,
    request: Request,
    section: str | None = None,
    timeframe: str = analytics.DEFAULT_TIMEFRAME,
    db: Database = Depends(get_db),
):
    require_user_owner(request, user_id)
    return {"analytics": await analytics.get_section_analytics(db, user_id, section, timeframe)}


@router.get("/analytics/{user_id}/progress")
async def get_progress_over_time(
    user_id: str,
    request: Request,
    section: str | None = None,
    timeframe: str = analytics.DEFAULT_TIMEFRAME,
    db: Database = Depends(get_db),
):
    require_user_owner(request, user_id)
    return {"progress": await analytics.get_progress_over_time(db, user_id, section, timeframe)}


@router.get("/analytics/{user_id}/recommendations")
async def get_recommendations(user_id: str, request: Request, db: Database = Depends(get_db)):
    require_user_owner(request, user_id)
    return {"recommendations": await analytics.get_recommendations(db, user_id)}


@router.get("/analytics/{user_id}/dashboard")
async def get_dashboard(user_id: str, request: Request, db: Database = Depends(get_db)):
    require_user_owner(request, user_id)
    return {"dashboard": await analytics.get_dashboard_summary(db, user_id)}
