from datetime import datetime, timezone

import pytest

from clientflow.db.enums import MessageDirection
from clientflow.db.models import Contact, Message
from clientflow.services import conversation_service

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def test_inbound_sms_from_unknown_number_creates_contact(db, test_org):
    contact, conversation, message = conversation_service.record_inbound_sms(
        db,
        test_org.id,
        from_number="(555) 555-0199",
        body="Hi, are you open Saturday?",
        provider_message_id="SM-in-1",
        at=NOW,
    )

    assert contact.phone == "+15555550199"
    assert contact.display_name == "SMS Contact"
    assert conversation.contact_id == contact.id
    assert conversation.last_inbound_at == NOW
    assert message.direction == MessageDirection.INBOUND.value
    assert message.provider_message_id == "SM-in-1"


def test_inbound_sms_reuses_existing_contact_and_conversation(db, test_org, test_contact):
    first = conversation_service.record_inbound_sms(
        db, test_org.id, from_number="+15555550123", body="Hello", at=NOW
    )
    second = conversation_service.record_inbound_sms(
        db, test_org.id, from_number="+1 555 555 0123", body="Still there?", at=NOW
    )

    assert first[0].id == test_contact.id
    assert second[0].id == test_contact.id
    assert first[1].id == second[1].id
    assert db.query(Contact).filter(Contact.organization_id == test_org.id).count() == 1
    assert db.query(Message).count() == 2


def test_inbound_sms_is_org_scoped(db, test_org, other_org, test_contact):
    contact, _, _ = conversation_service.record_inbound_sms(
        db, other_org.id, from_number=test_contact.phone, body="Hello"
    )

    assert contact.id != test_contact.id
    assert contact.organization_id == other_org.id


def test_inbound_sms_rejects_unusable_number(db, test_org):
    with pytest.raises(ValueError):
        conversation_service.record_inbound_sms(db, test_org.id, from_number="12", body="x")
