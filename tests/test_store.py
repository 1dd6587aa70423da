"""
Tests for the message store against a real SQLite file.
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import ConversationConflictError, DuplicateMessageError, ValidationError
from app.models.conversation import Conversation
from app.models.message import MessageStatus
from app.services.store import MessageFilter, NewMessage

BUSINESS = "918329446654"
CUSTOMER = "919937320320"
BASE_TIME = datetime(2025, 8, 5, 10, 0, tzinfo=timezone.utc)


def new_message(message_id, sender=CUSTOMER, recipient=BUSINESS, text="Hello", minutes=0, status="sent"):
    return NewMessage(
        message_id=message_id,
        sender=sender,
        recipient=recipient,
        text=text,
        type="text",
        timestamp=BASE_TIME + timedelta(minutes=minutes),
        contact_name="Ravi Kumar",
        status=status,
    )


class TestApplyMessageEvent:
    """Tests for the one-transaction message write."""

    def test_first_message_creates_conversation(self, run_services):
        async def scenario(services):
            store = services.store
            conversation, message, created = await store.apply_message_event(
                CUSTOMER, "Ravi Kumar", "Hello", new_message("m1")
            )
            stored = await store.find_conversation_by_participant(CUSTOMER)
            return conversation, message, created, stored

        conversation, message, created, stored = run_services(scenario)
        assert created is True
        assert stored is not None
        assert stored.id == conversation.id
        assert stored.name == "Ravi Kumar"
        assert stored.last_message == "Hello"
        assert message.conversation_id == conversation.id
        assert message.wa_id == CUSTOMER
        assert message.status == "sent"

    def test_next_message_updates_summary(self, run_services):
        async def scenario(services):
            store = services.store
            first, _, _ = await store.apply_message_event(CUSTOMER, "Ravi Kumar", "Hello", new_message("m1"))
            second, _, created = await store.apply_message_event(
                CUSTOMER, "Ravi Kumar", "Any updates?", new_message("m2", minutes=1)
            )
            return first, second, created, await store.list_messages(first.id)

        first, second, created, messages = run_services(scenario)
        assert created is False
        assert second.id == first.id
        assert second.last_message == "Any updates?"
        assert [m.message_id for m in messages] == ["m1", "m2"]

    def test_duplicate_message_writes_nothing(self, run_services):
        async def scenario(services):
            store = services.store
            conversation, _, _ = await store.apply_message_event(CUSTOMER, "Ravi Kumar", "Hello", new_message("m1"))
            with pytest.raises(DuplicateMessageError):
                await store.apply_message_event(CUSTOMER, "Ravi Kumar", "Changed", new_message("m1", text="Changed"))
            return (
                await store.find_conversation_by_participant(CUSTOMER),
                await store.list_messages(conversation.id),
            )

        conversation, messages = run_services(scenario)
        assert conversation.last_message == "Hello"
        assert len(messages) == 1

    def test_duplicate_message_is_a_validation_error(self):
        assert issubclass(DuplicateMessageError, ValidationError)


class TestConversations:
    """Tests for conversation rows."""

    def test_create_conversation_conflict(self, run_services):
        async def scenario(services):
            await services.store.create_conversation(CUSTOMER, "Ravi Kumar", "")
            with pytest.raises(ConversationConflictError) as exc_info:
                await services.store.create_conversation(CUSTOMER, "Someone else", "")
            return exc_info.value

        error = run_services(scenario)
        assert error.wa_id == CUSTOMER

    def test_update_conversation(self, run_services):
        async def scenario(services):
            await services.store.create_conversation(CUSTOMER, "Ravi Kumar", "")
            updated = await services.store.update_conversation(CUSTOMER, name="Ravi K")
            missing = await services.store.update_conversation("910000000000", name="Nobody")
            return updated, missing

        updated, missing = run_services(scenario)
        assert updated.name == "Ravi K"
        assert missing is None

    def test_update_conversation_rejects_identity_change(self, run_services):
        async def scenario(services):
            with pytest.raises(ValueError):
                await services.store.update_conversation(CUSTOMER, wa_id="910000000000")

        run_services(scenario)

    def test_list_conversations_most_recent_first(self, run_services):
        async def scenario(services):
            store = services.store
            await store.apply_message_event(CUSTOMER, "Ravi Kumar", "Hello", new_message("m1"))
            await store.apply_message_event("929967673820", "Neha Joshi", "Hi", new_message("m2", sender="929967673820"))
            return await store.list_conversations(), await store.list_conversations(exclude_wa_id="929967673820")

        everything, filtered = run_services(scenario)
        assert [c.wa_id for c in everything] == ["929967673820", CUSTOMER]
        assert [c.wa_id for c in filtered] == [CUSTOMER]

    def test_rename_participant_updates_messages(self, run_services):
        async def scenario(services):
            store = services.store
            conversation, _, _ = await store.apply_message_event(CUSTOMER, "Ravi Kumar", "Hello", new_message("m1"))
            await store.apply_message_event(
                CUSTOMER, "Ravi Kumar", "Reply", new_message("m2", sender=BUSINESS, recipient=CUSTOMER, minutes=1)
            )
            await store.rename_participant(CUSTOMER, "Ravi")
            return (
                await store.find_conversation_by_participant(CUSTOMER),
                await store.list_messages(conversation.id),
            )

        conversation, messages = run_services(scenario)
        assert conversation.name == "Ravi"
        by_id = {m.message_id: m for m in messages}
        assert by_id["m1"].contact_name == "Ravi"
        assert by_id["m2"].contact_name == "Ravi"

    def test_messages_after_rename_keep_conversation_name(self, run_services):
        async def scenario(services):
            store = services.store
            conversation, _, _ = await store.apply_message_event(CUSTOMER, "Ravi Kumar", "Hello", new_message("m1"))
            await store.apply_message_event(
                CUSTOMER, "Ravi Kumar", "Reply", new_message("m2", sender=BUSINESS, recipient=CUSTOMER, minutes=1)
            )
            await store.rename_participant(CUSTOMER, "Ravi")
            await store.apply_message_event(CUSTOMER, "Ravi Kumar", "Still there?", new_message("m3", minutes=2))
            await store.create_message(conversation, new_message("m4", sender=BUSINESS, recipient=CUSTOMER, minutes=3))
            return (
                await store.find_conversation_by_participant(CUSTOMER),
                await store.list_messages(conversation.id),
            )

        conversation, messages = run_services(scenario)
        assert conversation.name == "Ravi"
        assert len(messages) == 4
        assert {m.contact_name for m in messages} == {"Ravi"}

    def test_rename_unknown_participant(self, run_services):
        async def scenario(services):
            store = services.store
            skipped = await store.rename_participant(CUSTOMER, "Ravi")
            created = await store.rename_participant(CUSTOMER, "Ravi", create_if_missing=True)
            return skipped, created

        skipped, created = run_services(scenario)
        assert skipped is None
        assert created.wa_id == CUSTOMER
        assert created.name == "Ravi"


class TestMessageStatus:
    """Tests for conditional status updates."""

    def test_forward_transitions_only(self, run_services):
        async def scenario(services):
            store = services.store
            await store.apply_message_event(CUSTOMER, "Ravi", "Hi", new_message("m1", sender=BUSINESS, recipient=CUSTOMER))
            return [
                await store.update_message_status("m1", "delivered"),
                await store.update_message_status("m1", "delivered"),
                await store.update_message_status("m1", "read"),
                await store.update_message_status("m1", "delivered"),
                await store.update_message_status("m1", "sent"),
            ], await store.get_message("m1")

        counts, message = run_services(scenario)
        assert counts == [1, 0, 1, 0, 0]
        assert message.status == "read"

    def test_unknown_message_is_noop(self, run_services):
        async def scenario(services):
            return await services.store.update_message_status("does-not-exist", "read")

        assert run_services(scenario) == 0

    def test_mark_read_is_directional(self, run_services):
        async def scenario(services):
            store = services.store
            conversation, _, _ = await store.apply_message_event(CUSTOMER, "Ravi", "Hi", new_message("in-1"))
            await store.apply_message_event(CUSTOMER, "Ravi", "Hi again", new_message("in-2", minutes=1))
            await store.apply_message_event(
                CUSTOMER, "Ravi", "Hello!", new_message("out-1", sender=BUSINESS, recipient=CUSTOMER, minutes=2)
            )
            updated = await store.mark_read(recipient=BUSINESS, sender=CUSTOMER)
            return updated, await store.list_messages(conversation.id)

        updated, messages = run_services(scenario)
        assert updated == 2
        statuses = {m.message_id: m.status for m in messages}
        assert statuses == {"in-1": "read", "in-2": "read", "out-1": "sent"}

    def test_count_messages_with_filter(self, run_services):
        async def scenario(services):
            store = services.store
            conversation, _, _ = await store.apply_message_event(CUSTOMER, "Ravi", "a", new_message("a"))
            await store.apply_message_event(CUSTOMER, "Ravi", "b", new_message("b", minutes=1, status="read"))
            await store.apply_message_event(
                CUSTOMER, "Ravi", "c", new_message("c", sender=BUSINESS, recipient=CUSTOMER, minutes=2)
            )
            return (
                await store.count_messages(conversation.id),
                await store.count_messages(conversation.id, MessageFilter(sender=CUSTOMER)),
                await store.count_messages(conversation.id, MessageFilter(statuses=[MessageStatus.READ.value])),
                await store.count_unread_by_participant(BUSINESS),
            )

        total, from_customer, read, unread = run_services(scenario)
        assert (total, from_customer, read) == (3, 2, 1)
        assert unread == {CUSTOMER: 1}

    def test_clear_all(self, run_services):
        async def scenario(services):
            store = services.store
            await store.apply_message_event(CUSTOMER, "Ravi", "a", new_message("a"))
            await store.apply_message_event(CUSTOMER, "Ravi", "b", new_message("b", minutes=1))
            cleared = await store.clear_all()
            return cleared, await store.list_conversations()

        cleared, remaining = run_services(scenario)
        assert cleared == (2, 1)
        assert remaining == []


class TestCreateMessage:
    """Tests for inserting into an existing conversation."""

    def test_create_message(self, run_services):
        async def scenario(services):
            store = services.store
            conversation = await store.create_conversation(CUSTOMER, "Ravi Kumar", "")
            message = await store.create_message(conversation, new_message("m1"))
            with pytest.raises(DuplicateMessageError):
                await store.create_message(conversation, new_message("m1"))
            return conversation, message, await store.list_messages(conversation.id)

        conversation, message, messages = run_services(scenario)
        assert message.conversation_id == conversation.id
        assert message.wa_id == CUSTOMER
        assert len(messages) == 1

    def test_create_message_needs_conversation(self, run_services):
        async def scenario(services):
            missing = Conversation(id=9999, wa_id=CUSTOMER, name="", last_message="")
            with pytest.raises(ValidationError):
                await services.store.create_message(missing, new_message("m1"))
            return await services.store.get_message("m1")

        assert run_services(scenario) is None
