"""
Tests for the conversation, membership, read-state and message services.

Editing, reactions, search and typing have their own modules.
"""

from datetime import datetime, timedelta, timezone as dt_timezone
from unittest.mock import patch

import pytest
from django.utils import timezone
from freezegun import freeze_time

from chat.constants import MESSAGE_CONFIG
from chat.models import Conversation, ConversationMember, DirectConversationPair, MemberRole, Message, TypingIndicator
from chat.services import (
    ConversationService,
    ConversationUpdate,
    MembershipService,
    MessageService,
    ReadStateService,
    decode_cursor,
    encode_cursor,
)
from chat.tests.factories import (
    DirectConversationFactory,
    GroupConversationFactory,
    MessageFactory,
    TypingIndicatorFactory,
)


# =============================================================================
# Conversation Registry
# =============================================================================


@pytest.mark.django_db
class TestCreateConversation:
    def test_direct_creates_pair_and_memberships(self):
        result = ConversationService.create_conversation("user_a", ["user_b"])

        assert result.success
        conversation = result.data
        assert conversation.is_group is False
        assert conversation.name == ""
        assert sorted(conversation.participant_ids) == ["user_a", "user_b"]
        assert conversation.get_membership("user_a").role == MemberRole.ADMIN
        assert conversation.get_membership("user_b").role == MemberRole.MEMBER
        assert conversation.last_message_at is not None

    def test_direct_is_found_not_duplicated(self):
        """Both orderings of the same pair resolve to one conversation."""
        first = ConversationService.create_conversation("user_a", ["user_b"]).data
        second = ConversationService.create_conversation("user_b", ["user_a"]).data
        third = ConversationService.create_conversation("user_a", ["user_a", "user_b"]).data

        assert first.id == second.id == third.id
        assert Conversation.objects.filter(is_group=False).count() == 1
        assert DirectConversationPair.objects.count() == 1

    def test_direct_create_losing_the_race_returns_winner(self):
        """
        A concurrent create inserts the pair between our lookup and our
        insert; the unique pair constraint fires and the winner is returned.
        """
        existing = ConversationService.create_conversation("user_a", ["user_b"]).data

        with patch.object(ConversationService, "_find_direct", side_effect=[None, existing]) as find:
            result = ConversationService.create_conversation("user_b", ["user_a"])

        assert result.success
        assert result.data.id == existing.id
        assert find.call_count == 2
        assert Conversation.objects.count() == 1
        assert DirectConversationPair.objects.count() == 1
        assert ConversationMember.objects.filter(conversation=existing).count() == 2

    def test_direct_needs_exactly_two(self):
        alone = ConversationService.create_conversation("user_a", ["user_a"])
        crowd = ConversationService.create_conversation("user_a", ["user_b", "user_c"])

        assert alone.error_code == "INVALID_PARTICIPANTS"
        assert crowd.error_code == "INVALID_PARTICIPANTS"
        assert not Conversation.objects.exists()

    def test_group_always_creates(self):
        first = ConversationService.create_conversation("user_a", ["user_b"], is_group=True, name=" Team ")
        second = ConversationService.create_conversation("user_a", ["user_b"], is_group=True, name="Team")

        assert first.data.id != second.data.id
        assert first.data.name == "Team"

    def test_group_dedups_participants_and_includes_creator(self):
        result = ConversationService.create_conversation(
            "user_a",
            ["user_b", "user_b", " ", "user_c", "user_a"],
            is_group=True,
        )

        assert result.data.participant_ids == ["user_a", "user_b", "user_c"]
        assert ConversationMember.objects.filter(conversation=result.data).count() == 3

    def test_group_needs_another_participant(self):
        result = ConversationService.create_conversation("user_a", [], is_group=True)

        assert result.error_code == "INVALID_PARTICIPANTS"


@pytest.mark.django_db
class TestListConversations:
    def test_most_recent_activity_first(self):
        with freeze_time("2026-03-01 10:00:00") as frozen:
            older = GroupConversationFactory(created_by="user_a")
            frozen.tick(timedelta(minutes=1))
            newer = GroupConversationFactory(created_by="user_a")
            frozen.tick(timedelta(minutes=1))
            MessageService.send_message(older.id, "user_a", "bump")

        entries = ConversationService.list_conversations("user_a")

        assert [e.conversation.id for e in entries] == [older.id, newer.id]
        assert entries[0].last_message.content == "bump"
        assert entries[1].last_message is None

    def test_only_callers_conversations(self):
        mine = GroupConversationFactory(created_by="user_a")
        GroupConversationFactory(created_by="user_b")

        entries = ConversationService.list_conversations("user_a")

        assert [e.conversation.id for e in entries] == [mine.id]
        assert entries[0].membership.user_id == "user_a"

    def test_unknown_user_has_no_conversations(self):
        GroupConversationFactory(created_by="user_a")

        assert ConversationService.list_conversations("user_ghost") == []

    def test_unread_counts_come_from_one_query(self, django_assert_max_num_queries):
        with freeze_time("2026-03-01 10:00:00") as frozen:
            unread_two = GroupConversationFactory(created_by="user_a", members=["user_b"])
            caught_up = GroupConversationFactory(created_by="user_a", members=["user_b"])
            unread_one = GroupConversationFactory(created_by="user_a", members=["user_b"])
            frozen.tick(timedelta(seconds=1))
            MessageService.send_message(unread_two.id, "user_a", "one")
            MessageService.send_message(unread_two.id, "user_a", "two")
            MessageService.send_message(caught_up.id, "user_a", "seen")
            MessageService.send_message(unread_one.id, "user_a", "seen")
            frozen.tick(timedelta(seconds=1))
            ReadStateService.mark_as_read(caught_up.id, "user_b")
            ReadStateService.mark_as_read(unread_one.id, "user_b")
            frozen.tick(timedelta(seconds=1))
            MessageService.send_message(unread_one.id, "user_a", "new")

        # Conversation query plus the members prefetch, however many rows
        with django_assert_max_num_queries(2):
            entries = ConversationService.list_conversations("user_b")
            counts = {e.conversation.id: e.unread_count for e in entries}

        assert counts == {unread_two.id: 2, caught_up.id: 0, unread_one.id: 1}


@pytest.mark.django_db
class TestGetConversation:
    def test_returns_members_with_profiles(self, group_conversation, admin_user, member_user):
        detail = ConversationService.get_conversation(group_conversation.id)

        assert detail.conversation == group_conversation
        profiles = {m.membership.user_id: m.user for m in detail.members}
        assert profiles[admin_user.external_id] == admin_user
        assert profiles[member_user.external_id] == member_user

    def test_member_missing_from_directory(self):
        conversation = GroupConversationFactory(created_by="user_ghost")

        detail = ConversationService.get_conversation(conversation.id)

        assert detail.members[0].user is None

    def test_missing(self):
        assert ConversationService.get_conversation(999999) is None


@pytest.mark.django_db
class TestUpdateConversation:
    def test_admin_renames_group(self):
        conversation = GroupConversationFactory(created_by="user_a", members=["user_b"])

        result = ConversationService.update_conversation(
            conversation.id,
            "user_a",
            ConversationUpdate(name="  Renamed  "),
        )

        assert result.success
        conversation.refresh_from_db()
        assert conversation.name == "Renamed"

    def test_member_cannot_update_group(self):
        conversation = GroupConversationFactory(created_by="user_a", members=["user_b"], name="Keep")

        result = ConversationService.update_conversation(conversation.id, "user_b", ConversationUpdate(name="X"))

        assert result.error_code == "NOT_ADMIN"
        conversation.refresh_from_db()
        assert conversation.name == "Keep"

    def test_any_member_updates_direct(self):
        conversation = DirectConversationFactory(users=("user_a", "user_b"))

        result = ConversationService.update_conversation(
            conversation.id,
            "user_b",
            ConversationUpdate(image_url="https://cdn.example.com/x.png"),
        )

        assert result.success
        assert result.data.image_url == "https://cdn.example.com/x.png"

    def test_non_member(self):
        conversation = GroupConversationFactory(created_by="user_a")

        result = ConversationService.update_conversation(conversation.id, "user_z", ConversationUpdate(name="X"))

        assert result.error_code == "NOT_PARTICIPANT"

    def test_missing(self):
        result = ConversationService.update_conversation(999999, "user_a", ConversationUpdate(name="X"))

        assert result.error_code == "CONVERSATION_NOT_FOUND"


@pytest.mark.django_db
class TestToggleFlags:
    def test_archive_toggles_back_and_forth(self):
        conversation = GroupConversationFactory(created_by="user_a")

        assert ConversationService.toggle_archive(conversation.id, "user_a").data.is_archived is True
        assert ConversationService.toggle_archive(conversation.id, "user_a").data.is_archived is False

    def test_pin(self):
        conversation = GroupConversationFactory(created_by="user_a")

        assert ConversationService.toggle_pin(conversation.id, "user_a").data.is_pinned is True

    def test_non_member_cannot_toggle(self):
        conversation = GroupConversationFactory(created_by="user_a")

        result = ConversationService.toggle_archive(conversation.id, "user_z")

        assert result.error_code == "NOT_PARTICIPANT"
        conversation.refresh_from_db()
        assert conversation.is_archived is False


# =============================================================================
# Memberships
# =============================================================================


@pytest.mark.django_db
class TestMembershipScenario:
    """
    Group with A (admin), B and C.

    A adds D; B cannot add E; C leaves; B cannot remove D.
    """

    @pytest.fixture
    def conversation(self):
        return GroupConversationFactory(created_by="user_a", members=["user_b", "user_c"])

    def test_full_walkthrough(self, conversation):
        added = MembershipService.add_participants(conversation.id, ["user_d"], added_by="user_a")
        assert added.data == ["user_d"]
        assert conversation.participant_ids.count("user_d") == 1

        denied = MembershipService.add_participants(conversation.id, ["user_e"], added_by="user_b")
        assert denied.error_code == "NOT_ADMIN"

        left = MembershipService.remove_participant(conversation.id, "user_c", removed_by="user_c")
        assert left.success

        refused = MembershipService.remove_participant(conversation.id, "user_d", removed_by="user_b")
        assert refused.error_code == "NOT_ADMIN"

        assert conversation.participant_ids == ["user_a", "user_b", "user_d"]

    def test_adding_existing_member_is_skipped(self, conversation):
        result = MembershipService.add_participants(conversation.id, ["user_b", "user_d", "user_d"], added_by="user_a")

        assert result.data == ["user_d"]
        assert ConversationMember.objects.filter(conversation=conversation, user_id="user_b").count() == 1

    def test_non_member_cannot_add(self, conversation):
        result = MembershipService.add_participants(conversation.id, ["user_e"], added_by="user_z")

        assert result.error_code == "NOT_PARTICIPANT"

    def test_cannot_add_to_direct(self):
        conversation = DirectConversationFactory(users=("user_a", "user_b"))

        result = MembershipService.add_participants(conversation.id, ["user_c"], added_by="user_a")

        assert result.error_code == "NOT_GROUP"

    def test_admin_removes_member(self, conversation):
        TypingIndicatorFactory(conversation=conversation, user_id="user_b")

        result = MembershipService.remove_participant(conversation.id, "user_b", removed_by="user_a")

        assert result.success
        assert "user_b" not in conversation.participant_ids
        assert not TypingIndicator.objects.filter(conversation=conversation, user_id="user_b").exists()

    def test_remove_unknown_participant(self, conversation):
        result = MembershipService.remove_participant(conversation.id, "user_z", removed_by="user_a")

        assert result.error_code == "PARTICIPANT_NOT_FOUND"

    def test_last_admin_leaving_promotes_earliest_member(self, conversation):
        result = MembershipService.remove_participant(conversation.id, "user_a", removed_by="user_a")

        assert result.success
        assert conversation.get_membership("user_b").role == MemberRole.ADMIN
        assert conversation.get_membership("user_c").role == MemberRole.MEMBER

    def test_no_promotion_while_another_admin_remains(self, conversation):
        ConversationMember.objects.filter(conversation=conversation, user_id="user_c").update(role=MemberRole.ADMIN)

        MembershipService.remove_participant(conversation.id, "user_a", removed_by="user_a")

        assert conversation.get_membership("user_b").role == MemberRole.MEMBER

    def test_cannot_remove_from_direct(self):
        conversation = DirectConversationFactory(users=("user_a", "user_b"))

        result = MembershipService.remove_participant(conversation.id, "user_b", removed_by="user_a")

        assert result.error_code == "NOT_GROUP"


@pytest.mark.django_db
class TestUpdatePreferences:
    def test_sets_only_given_flags(self):
        conversation = GroupConversationFactory(created_by="user_a")

        result = MembershipService.update_preferences(conversation.id, "user_a", is_muted=True)

        assert result.data.is_muted is True
        assert result.data.is_pinned is False

    def test_non_member(self):
        conversation = GroupConversationFactory(created_by="user_a")

        result = MembershipService.update_preferences(conversation.id, "user_z", is_pinned=True)

        assert result.error_code == "NOT_PARTICIPANT"


# =============================================================================
# Read state
# =============================================================================


@pytest.mark.django_db
class TestReadState:
    """
    Why it matters: the unread badge is derived from the read cursor, so
    it has to agree with what the member actually saw.
    """

    def test_everything_unread_without_cursor(self):
        conversation = GroupConversationFactory(created_by="user_a", members=["user_b"])
        MessageService.send_message(conversation.id, "user_a", "one")
        MessageService.send_message(conversation.id, "user_a", "two")

        membership = conversation.get_membership("user_b")

        assert ReadStateService.get_unread_count(membership) == 2

    def test_only_messages_after_cursor_are_unread(self):
        conversation = GroupConversationFactory(created_by="user_a", members=["user_b"])

        with freeze_time("2026-03-01 10:00:00") as frozen:
            MessageService.send_message(conversation.id, "user_a", "one")
            frozen.tick(timedelta(seconds=1))
            ReadStateService.mark_as_read(conversation.id, "user_b")
            frozen.tick(timedelta(seconds=1))
            MessageService.send_message(conversation.id, "user_a", "two")

        membership = conversation.get_membership("user_b")
        assert ReadStateService.get_unread_count(membership) == 1

    def test_mark_as_read_with_message(self):
        conversation = GroupConversationFactory(created_by="user_a", members=["user_b"])
        message = MessageService.send_message(conversation.id, "user_a", "hello").data

        result = ReadStateService.mark_as_read(conversation.id, "user_b", last_message_id=message.id)

        assert result.data.last_read_message == message
        assert result.data.last_read_at is not None
        assert ReadStateService.get_unread_count(result.data) == 0

    def test_mark_as_read_message_from_other_conversation(self):
        conversation = GroupConversationFactory(created_by="user_a")
        elsewhere = MessageFactory()

        result = ReadStateService.mark_as_read(conversation.id, "user_a", last_message_id=elsewhere.id)

        assert result.error_code == "MESSAGE_NOT_FOUND"
        assert conversation.get_membership("user_a").last_read_at is None

    def test_non_member_is_a_no_op(self):
        conversation = GroupConversationFactory(created_by="user_a")

        result = ReadStateService.mark_as_read(conversation.id, "user_z")

        assert result.success
        assert result.data is None


# =============================================================================
# Message Store: sending and history
# =============================================================================


@pytest.mark.django_db
class TestSendMessage:
    def test_send_updates_last_message_cache(self):
        conversation = GroupConversationFactory(created_by="user_a", members=["user_b"])

        result = MessageService.send_message(conversation.id, "user_b", "hello")

        assert result.success
        conversation.refresh_from_db()
        assert conversation.last_message == result.data
        assert conversation.last_message_at == result.data.created_at

    def test_send_clears_typing_indicator(self):
        conversation = GroupConversationFactory(created_by="user_a")
        TypingIndicatorFactory(conversation=conversation, user_id="user_a")

        MessageService.send_message(conversation.id, "user_a", "done typing")

        assert not TypingIndicator.objects.filter(conversation=conversation).exists()

    def test_non_member_rejected_without_side_effects(self):
        conversation = GroupConversationFactory(created_by="user_a")

        result = MessageService.send_message(conversation.id, "user_z", "hi")

        assert result.error_code == "NOT_PARTICIPANT"
        assert not Message.objects.exists()
        conversation.refresh_from_db()
        assert conversation.last_message is None

    def test_missing_conversation(self):
        result = MessageService.send_message(999999, "user_a", "hi")

        assert result.error_code == "CONVERSATION_NOT_FOUND"

    @pytest.mark.parametrize("content", ["", "   ", "\n\t"])
    def test_empty_content(self, content):
        conversation = GroupConversationFactory(created_by="user_a")

        result = MessageService.send_message(conversation.id, "user_a", content)

        assert result.error_code == "EMPTY_CONTENT"

    def test_attachment_only_message(self):
        conversation = GroupConversationFactory(created_by="user_a")
        attachment = {"id": "f1", "name": "cat.png", "url": "https://cdn.example.com/cat.png", "type": "image/png", "size": 42}

        result = MessageService.send_message(
            conversation.id,
            "user_a",
            "",
            message_type="image",
            attachments=[attachment],
        )

        assert result.success
        assert result.data.attachments == [attachment]

    def test_content_length_limit(self):
        conversation = GroupConversationFactory(created_by="user_a")
        limit = MESSAGE_CONFIG.MAX_CONTENT_LENGTH

        assert MessageService.send_message(conversation.id, "user_a", "x" * limit).success
        too_long = MessageService.send_message(conversation.id, "user_a", "x" * (limit + 1))
        assert too_long.error_code == "CONTENT_TOO_LONG"

    def test_too_many_attachments(self):
        conversation = GroupConversationFactory(created_by="user_a")
        attachments = [{"id": str(n)} for n in range(MESSAGE_CONFIG.MAX_ATTACHMENTS + 1)]

        result = MessageService.send_message(conversation.id, "user_a", "files", attachments=attachments)

        assert result.error_code == "TOO_MANY_ATTACHMENTS"

    def test_unknown_message_type(self):
        conversation = GroupConversationFactory(created_by="user_a")

        result = MessageService.send_message(conversation.id, "user_a", "hi", message_type="hologram")

        assert result.error_code == "INVALID_MESSAGE_TYPE"

    def test_reply_must_be_in_same_conversation(self):
        conversation = GroupConversationFactory(created_by="user_a")
        target = MessageService.send_message(conversation.id, "user_a", "question").data
        elsewhere = MessageFactory()

        reply = MessageService.send_message(conversation.id, "user_a", "answer", reply_to_id=target.id)
        stray = MessageService.send_message(conversation.id, "user_a", "answer", reply_to_id=elsewhere.id)

        assert reply.data.reply_to == target
        assert stray.error_code == "INVALID_REPLY"

    def test_forward_requires_access_to_source(self):
        source_conversation = GroupConversationFactory(created_by="user_a", members=["user_b"])
        source = MessageFactory(conversation=source_conversation, sender_id="user_b")
        hidden = MessageFactory()
        target = GroupConversationFactory(created_by="user_a")

        forwarded = MessageService.send_message(target.id, "user_a", "fwd", forwarded_from_id=source.id)
        denied = MessageService.send_message(target.id, "user_a", "fwd", forwarded_from_id=hidden.id)
        missing = MessageService.send_message(target.id, "user_a", "fwd", forwarded_from_id=999999)

        assert forwarded.data.forwarded_from == source
        assert denied.error_code == "NOT_AUTHORIZED"
        assert missing.error_code == "MESSAGE_NOT_FOUND"


@pytest.mark.django_db
class TestGetMessages:
    @pytest.fixture
    def conversation_with_history(self):
        conversation = GroupConversationFactory(created_by="user_a")
        start = timezone.now() - timedelta(hours=1)
        for n in range(5):
            message = MessageFactory(conversation=conversation, content=f"m{n}")
            Message.objects.filter(pk=message.pk).update(created_at=start + timedelta(minutes=n))
        return conversation

    def test_page_is_chronological_with_cursor(self, conversation_with_history):
        page = MessageService.get_messages(conversation_with_history.id, limit=2)

        assert [m.content for m in page.messages] == ["m3", "m4"]
        assert page.has_more is True
        assert page.next_cursor == encode_cursor(page.messages[0].created_at)

    def test_walk_back_through_history(self, conversation_with_history):
        seen = []
        cursor = None
        while True:
            page = MessageService.get_messages(conversation_with_history.id, limit=2, cursor=cursor)
            seen = [m.content for m in page.messages] + seen
            if not page.has_more:
                break
            cursor = page.next_cursor

        assert seen == ["m0", "m1", "m2", "m3", "m4"]
        assert page.next_cursor is None

    def test_exact_fit_has_no_more(self, conversation_with_history):
        page = MessageService.get_messages(conversation_with_history.id, limit=5)

        assert len(page.messages) == 5
        assert page.has_more is False
        assert page.next_cursor is None

    def test_zero_limit_uses_default(self, conversation_with_history):
        page = MessageService.get_messages(conversation_with_history.id, limit=0)

        assert len(page.messages) == 5

    def test_unreadable_cursor_yields_empty_page(self, conversation_with_history):
        page = MessageService.get_messages(conversation_with_history.id, cursor="not-a-date")

        assert page.messages == []
        assert page.has_more is False

    def test_deleted_messages_stay_in_history(self, conversation_with_history):
        Message.objects.filter(conversation=conversation_with_history, content="m2").first().soft_delete()

        page = MessageService.get_messages(conversation_with_history.id)

        assert len(page.messages) == 5
        assert page.messages[2].content == MESSAGE_CONFIG.DELETED_PLACEHOLDER

    def test_users_resolved_for_page(self, group_conversation, admin_user):
        MessageService.send_message(group_conversation.id, admin_user.external_id, "hi")

        page = MessageService.get_messages(group_conversation.id)

        assert page.users == {admin_user.external_id: admin_user}


class TestCursorCodec:
    def test_round_trip_keeps_microseconds(self):
        value = timezone.now().replace(microsecond=123456)

        assert decode_cursor(encode_cursor(value)) == value

    def test_encoded_as_utc(self):
        assert encode_cursor(datetime(2026, 3, 1, 10, 0, tzinfo=dt_timezone.utc)) == "2026-03-01T10:00:00Z"

    def test_naive_value_is_utc(self):
        assert decode_cursor("2026-03-01T10:00:00") == datetime(2026, 3, 1, 10, 0, tzinfo=dt_timezone.utc)

    @pytest.mark.parametrize("cursor", ["", "yesterday", "2026-13-45T99:00:00Z"])
    def test_invalid(self, cursor):
        assert decode_cursor(cursor) is None


# =============================================================================
# Message Store: deletion
# =============================================================================


@pytest.mark.django_db
class TestDeleteMessage:
    @pytest.fixture
    def conversation(self):
        return GroupConversationFactory(created_by="user_d", members=["user_a", "user_b"])

    def test_sender_deletes(self, conversation):
        message = MessageFactory(conversation=conversation, sender_id="user_a")

        result = MessageService.delete_message(message.id, "user_a")

        assert result.success
        message.refresh_from_db()
        assert message.is_deleted
        assert message.content == MESSAGE_CONFIG.DELETED_PLACEHOLDER

    def test_admin_deletes_others_message(self, conversation):
        message = MessageFactory(conversation=conversation, sender_id="user_a")

        result = MessageService.delete_message(message.id, "user_d")

        assert result.success
        assert result.data.deleted_at is not None

    def test_plain_member_cannot_delete_others_message(self, conversation):
        message = MessageFactory(conversation=conversation, sender_id="user_a", content="keep")

        result = MessageService.delete_message(message.id, "user_b")

        assert result.error_code == "NOT_AUTHORIZED"
        message.refresh_from_db()
        assert message.content == "keep"

    def test_repeat_delete_succeeds_without_changes(self, conversation):
        message = MessageFactory(conversation=conversation, sender_id="user_a")
        MessageService.delete_message(message.id, "user_a")
        message.refresh_from_db()
        deleted_at = message.deleted_at

        result = MessageService.delete_message(message.id, "user_a")

        assert result.success
        message.refresh_from_db()
        assert message.deleted_at == deleted_at

    def test_missing(self):
        assert MessageService.delete_message(999999, "user_a").error_code == "MESSAGE_NOT_FOUND"
