"""Appointments router - read-only listings used by automations."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from clientflow.core.deps import get_db, require_org
from clientflow.db.enums import AppointmentStatus
from clientflow.db.models import Organization
from clientflow.schemas.appointment import AppointmentListResponse, AppointmentRead
from clientflow.services import appointment_service

router = APIRouter(tags=["appointments"])


@router.get("", response_model=AppointmentListResponse)
def list_appointments(
    window: str | None = None,
    status: str | None = None,
    within: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    org: Organization = Depends(require_org),
    db: Session = Depends(get_db),
):
    """
    List appointments.

    - window=next_24h: upcoming appointments with reminder_offset_minutes
    - status=completed&within=1d: appointments completed in the period
    - otherwise: paginated list, newest first
    """
    if window is not None:
        if window != "next_24h":
            raise HTTPException(status_code=400, detail=f"Unsupported window: {window}")
        upcoming = appointment_service.list_next_24h(db, org.id)
        data = [
            AppointmentRead.model_validate(item.appointment).model_copy(
                update={"reminder_offset_minutes": item.reminder_offset_minutes}
            )
            for item in upcoming
        ]
        return AppointmentListResponse(data=data)

    if status is not None or within is not None:
        if status != AppointmentStatus.COMPLETED.value or not within:
            raise HTTPException(
                status_code=400, detail="Only status=completed with a within period is supported"
            )
        try:
            period = appointment_service.parse_within(within)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        completed = appointment_service.list_completed_within(db, org.id, period)
        data = [
            AppointmentRead.model_validate(appointment).model_copy(
                update={"completed_at": appointment.updated_at}
            )
            for appointment in completed
        ]
        return AppointmentListResponse(data=data)

    appointments, total = appointment_service.list_appointments(
        db, org.id, page=page, limit=limit
    )
    return AppointmentListResponse(
        data=[AppointmentRead.model_validate(a) for a in appointments],
        total=total,
        page=page,
        limit=limit,
    )
