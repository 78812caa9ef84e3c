"""Shared helpers for worker job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from clientflow.db.models import Contact
from clientflow.services.messaging_service import Recipient

logger = logging.getLogger(__name__)


def coerce_uuid(raw_id: str | None) -> UUID | None:
    if not raw_id:
        return None
    try:
        return UUID(str(raw_id))
    except (TypeError, ValueError):
        logger.warning("Invalid UUID value '%s' in job payload", raw_id)
        return None


def recipient_for_contact(contact: Contact | None) -> Recipient | None:
    if contact is None or not (contact.phone or contact.email):
        return None
    return Recipient(phone=contact.phone, email=contact.email, name=contact.display_name)


def resolve_recipient(db: Session, org_id: UUID, payload: dict) -> Recipient | None:
    """
    Recipient from payload contact_id (scoped to the org), else inline phone/email.
    """
    contact_id = coerce_uuid(payload.get("contact_id"))
    if contact_id:
        contact = (
            db.query(Contact)
            .filter(Contact.id == contact_id, Contact.organization_id == org_id)
            .first()
        )
        return recipient_for_contact(contact)
    phone = payload.get("phone")
    email = payload.get("email")
    if not (phone or email):
        return None
    return Recipient(phone=phone, email=email, name=payload.get("name"))
