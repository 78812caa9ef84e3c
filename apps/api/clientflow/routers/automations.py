"""Automations router - trigger automation jobs and accept inbound SMS."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from clientflow.core.config import settings
from clientflow.core.deps import get_db, require_org
from clientflow.core.rate_limit import limiter
from clientflow.core.structured_logging import build_log_context
from clientflow.db.models import Organization
from clientflow.schemas.automation import (
    AutomationRunRequest,
    AutomationRunResponse,
    SmsInboundRequest,
    SmsInboundResponse,
)
from clientflow.services import automation_service, conversation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/automations", tags=["automations"])


@router.post("/run", response_model=AutomationRunResponse)
@limiter.limit(f"{settings.RATE_LIMIT_API}/minute")
def run_automation(
    request: Request,
    body: AutomationRunRequest,
    org: Organization = Depends(require_org),
    db: Session = Depends(get_db),
):
    """Queue one automation run for the organization."""
    try:
        job, created = automation_service.run_automation(db, org.id, body.type, body.payload)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(
        "Automation run queued",
        extra=build_log_context(
            org_id=str(org.id),
            job_id=str(job.id),
            job_type=job.job_type,
            route=request.url.path,
            method=request.method,
        ),
    )
    return AutomationRunResponse(
        success=True,
        job_id=job.id,
        job_type=job.job_type,
        type=body.type,
        org_id=org.id,
        created=created,
    )


@router.post("/sms_inbound", response_model=SmsInboundResponse)
def sms_inbound(
    body: SmsInboundRequest,
    org: Organization = Depends(require_org),
    db: Session = Depends(get_db),
):
    """Record an inbound SMS and open (or reuse) the contact's conversation."""
    try:
        contact, conversation, _ = conversation_service.record_inbound_sms(
            db,
            org.id,
            from_number=body.from_number,
            body=body.body,
            provider_message_id=body.message_sid,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return SmsInboundResponse(
        success=True,
        message_id=body.message_sid,
        org_id=org.id,
        contact_id=contact.id,
        conversation_id=conversation.id,
    )
