from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_actor
from app.database import get_db
from app.schemas.notifications import NotificationCountsResponseSchema
from app.services.actor import Actor
from app.services.notification_service import build_notification_counts

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/counts", response_model=NotificationCountsResponseSchema)
def notification_counts(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Badge payload; each category is zero-filled independently on failure."""
    return NotificationCountsResponseSchema(counts=build_notification_counts(db, actor))
