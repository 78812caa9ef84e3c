"""Conversation service - record messages and keep reply timestamps current."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from clientflow.core.structured_logging import mask_phone
from clientflow.db.enums import ConversationStatus, MessageChannel, MessageDirection
from clientflow.db.models import Contact, Conversation, Message
from clientflow.services.notification_senders import normalize_phone

logger = logging.getLogger(__name__)


def get_open_conversation(
    db: Session, org_id: UUID, contact_id: UUID, channel: MessageChannel
) -> Conversation | None:
    return (
        db.query(Conversation)
        .filter(
            Conversation.organization_id == org_id,
            Conversation.contact_id == contact_id,
            Conversation.channel == channel.value,
            Conversation.status == ConversationStatus.OPEN.value,
        )
        .order_by(Conversation.created_at.desc())
        .first()
    )


def get_or_open_conversation(
    db: Session, org_id: UUID, contact_id: UUID, channel: MessageChannel
) -> Conversation:
    conversation = get_open_conversation(db, org_id, contact_id, channel)
    if conversation:
        return conversation
    conversation = Conversation(
        organization_id=org_id,
        contact_id=contact_id,
        channel=channel.value,
        status=ConversationStatus.OPEN.value,
    )
    db.add(conversation)
    db.flush()
    return conversation


def record_message(
    db: Session,
    conversation: Conversation,
    *,
    direction: MessageDirection,
    body: str,
    provider_message_id: str | None = None,
    at: datetime | None = None,
) -> Message:
    """
    Store a message and move the conversation's inbound/responded timestamp.

    Commits; the SLA monitor reads these timestamps.
    """
    at = at or datetime.now(timezone.utc)
    message = Message(
        organization_id=conversation.organization_id,
        conversation_id=conversation.id,
        direction=direction.value,
        channel=conversation.channel,
        body=body or "",
        provider_message_id=provider_message_id,
        created_at=at,
    )
    db.add(message)

    if direction == MessageDirection.INBOUND:
        conversation.last_inbound_at = at
    else:
        conversation.last_responded_at = at
    conversation.updated_at = at

    db.commit()
    db.refresh(message)
    return message


def find_contact_by_phone(db: Session, org_id: UUID, phone: str) -> Contact | None:
    return (
        db.query(Contact)
        .filter(Contact.organization_id == org_id, Contact.phone == phone)
        .order_by(Contact.created_at.asc())
        .first()
    )


def record_inbound_sms(
    db: Session,
    org_id: UUID,
    *,
    from_number: str,
    body: str,
    provider_message_id: str | None = None,
    at: datetime | None = None,
) -> tuple[Contact, Conversation, Message]:
    """
    Store an inbound SMS: upsert the contact by phone, open or reuse the SMS
    conversation and record the message.

    Raises ValueError when the sender number cannot be normalized.
    """
    phone = normalize_phone(from_number)
    if not phone:
        raise ValueError("Invalid sender phone number")

    contact = find_contact_by_phone(db, org_id, phone)
    if contact is None:
        contact = Contact(
            organization_id=org_id, first_name="SMS", last_name="Contact", phone=phone
        )
        db.add(contact)
        db.flush()
        logger.info("Created contact from inbound SMS (org=%s phone=%s)", org_id, mask_phone(phone))

    conversation = get_or_open_conversation(db, org_id, contact.id, MessageChannel.SMS)
    message = record_message(
        db,
        conversation,
        direction=MessageDirection.INBOUND,
        body=body,
        provider_message_id=provider_message_id,
        at=at,
    )
    db.refresh(contact)
    db.refresh(conversation)
    return contact, conversation, message
