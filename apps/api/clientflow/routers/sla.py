"""SLA router - conversations waiting on a reply."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clientflow.core.config import settings
from clientflow.core.deps import get_db, require_org
from clientflow.db.models import Organization
from clientflow.schemas.sla import UnansweredConversationRead, UnansweredResponse
from clientflow.services import sla_service

router = APIRouter(tags=["sla"])


@router.get("/unanswered", response_model=UnansweredResponse)
def unanswered(
    minutes: int = Query(settings.SLA_DEFAULT_MINUTES, ge=0, le=7 * 24 * 60),
    org: Organization = Depends(require_org),
    db: Session = Depends(get_db),
):
    """Open conversations with an inbound message unanswered for over `minutes`."""
    rows = sla_service.get_unanswered_conversations(db, org.id, minutes)
    return UnansweredResponse(
        minutes=minutes,
        count=len(rows),
        data=[UnansweredConversationRead.model_validate(row) for row in rows],
    )
