from fastapi import APIRouter, Depends, Request

from app.db.database import Database, get_db
from app.routes.auth import require_user_owner
from app.services import progress_aggregator

router = APIRouter(prefix="/progress", tags=["progress"])


@router.get("/{user_id}")
async def get_progress(user_id: str, request: Request, section: str | None = None, db: Database = Depends(get_db)):
    """One section's progress, or all four sections when no section is given."""
    require_user_owner(request, user_id)
    if section:
        return {"progress": await progress_aggregator.get_progress(db, user_id, section)}
    return {"progress": await progress_aggregator.get_all_progress(db, user_id)}
