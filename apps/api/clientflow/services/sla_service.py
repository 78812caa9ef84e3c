"""SLA monitor - conversations waiting on a reply longer than a threshold."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from clientflow.db.enums import ConversationStatus, MessageDirection
from clientflow.db.models import Conversation, Message


@dataclass(frozen=True)
class ContactSummary:
    id: UUID
    name: str
    phone: str | None
    email: str | None


@dataclass(frozen=True)
class MessageSummary:
    id: UUID
    body: str
    channel: str
    created_at: datetime


@dataclass(frozen=True)
class UnansweredConversation:
    conversation_id: UUID
    channel: str
    last_inbound_at: datetime
    last_responded_at: datetime | None
    waiting_minutes: float
    contact: ContactSummary | None
    last_message: MessageSummary | None = None


def _latest_inbound_messages(db: Session, conversation_ids: list[UUID]) -> dict[UUID, Message]:
    if not conversation_ids:
        return {}
    messages = (
        db.query(Message)
        .filter(
            Message.conversation_id.in_(conversation_ids),
            Message.direction == MessageDirection.INBOUND.value,
        )
        .order_by(Message.created_at.desc())
        .all()
    )
    latest: dict[UUID, Message] = {}
    for message in messages:
        latest.setdefault(message.conversation_id, message)
    return latest


def get_unanswered_conversations(
    db: Session,
    org_id: UUID,
    minutes: int,
    *,
    now: datetime | None = None,
) -> list[UnansweredConversation]:
    """
    Open conversations whose last inbound message has gone unanswered for
    more than `minutes`, longest wait first. Read-only.
    """
    if minutes < 0:
        raise ValueError("minutes must be non-negative")
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=minutes)

    conversations = (
        db.query(Conversation)
        .options(joinedload(Conversation.contact))
        .filter(
            Conversation.organization_id == org_id,
            Conversation.status == ConversationStatus.OPEN.value,
            Conversation.last_inbound_at.is_not(None),
            Conversation.last_inbound_at < cutoff,
            or_(
                Conversation.last_responded_at.is_(None),
                Conversation.last_responded_at < Conversation.last_inbound_at,
            ),
        )
        .order_by(Conversation.last_inbound_at.asc())
        .all()
    )

    latest_messages = _latest_inbound_messages(db, [c.id for c in conversations])

    results = []
    for conversation in conversations:
        contact = conversation.contact
        summary = None
        if contact is not None:
            summary = ContactSummary(
                id=contact.id,
                name=contact.display_name,
                phone=contact.phone,
                email=contact.email,
            )
        message = latest_messages.get(conversation.id)
        last_message = None
        if message is not None:
            last_message = MessageSummary(
                id=message.id,
                body=message.body,
                channel=message.channel,
                created_at=message.created_at,
            )
        waiting = (now - conversation.last_inbound_at).total_seconds() / 60.0
        results.append(
            UnansweredConversation(
                conversation_id=conversation.id,
                channel=conversation.channel,
                last_inbound_at=conversation.last_inbound_at,
                last_responded_at=conversation.last_responded_at,
                waiting_minutes=round(waiting, 2),
                contact=summary,
                last_message=last_message,
            )
        )
    return results
