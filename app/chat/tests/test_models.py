"""
Tests for chat models.

Covers storage-level constraints, derived participants and soft delete.
"""

import pytest
from django.db import IntegrityError, transaction

from chat.constants import MESSAGE_CONFIG
from chat.models import (
    Conversation,
    ConversationMember,
    DirectConversationPair,
    MemberRole,
    MessageReaction,
    TypingIndicator,
)
from chat.tests.factories import (
    DirectConversationFactory,
    GroupConversationFactory,
    MessageFactory,
    MessageReactionFactory,
    TypingIndicatorFactory,
)


@pytest.mark.django_db
class TestConversation:
    def test_participant_ids_follow_memberships(self):
        conversation = GroupConversationFactory(created_by="user_a", members=["user_b", "user_c"])

        assert conversation.participant_ids == ["user_a", "user_b", "user_c"]

        ConversationMember.objects.filter(conversation=conversation, user_id="user_b").delete()

        assert conversation.participant_ids == ["user_a", "user_c"]

    def test_creator_is_admin(self):
        conversation = GroupConversationFactory(created_by="user_a", members=["user_b"])

        assert conversation.get_membership("user_a").role == MemberRole.ADMIN
        assert conversation.get_membership("user_b").role == MemberRole.MEMBER
        assert conversation.get_membership("user_z") is None

    def test_str(self):
        group = GroupConversationFactory(name="Book Club")
        direct = DirectConversationFactory()

        assert str(group) == f"Conversation {group.pk} (Book Club)"
        assert str(direct) == f"Conversation {direct.pk} (direct)"


@pytest.mark.django_db
class TestDirectConversationPair:
    """
    Why it matters: the pair table is what keeps two racing creates from
    producing two 1:1 conversations for the same people.
    """

    def test_sorted_pair(self):
        assert DirectConversationPair.sorted_pair("user_b", "user_a") == ("user_a", "user_b")
        assert DirectConversationPair.sorted_pair("user_a", "user_b") == ("user_a", "user_b")

    def test_factory_stores_sorted_pair(self):
        conversation = DirectConversationFactory(users=("user_z", "user_a"))

        pair = conversation.direct_pair
        assert (pair.user_low, pair.user_high) == ("user_a", "user_z")
        assert conversation.created_by == "user_z"

    def test_same_pair_rejected(self):
        DirectConversationFactory(users=("user_a", "user_b"))
        other = Conversation.objects.create(created_by="user_b")

        with pytest.raises(IntegrityError), transaction.atomic():
            DirectConversationPair.objects.create(conversation=other, user_low="user_a", user_high="user_b")

    def test_unsorted_pair_rejected(self):
        conversation = Conversation.objects.create(created_by="user_a")

        with pytest.raises(IntegrityError), transaction.atomic():
            DirectConversationPair.objects.create(
                conversation=conversation,
                user_low="user_b",
                user_high="user_a",
            )


@pytest.mark.django_db
class TestConversationMember:
    def test_one_membership_per_user(self):
        conversation = GroupConversationFactory(created_by="user_a")

        with pytest.raises(IntegrityError), transaction.atomic():
            ConversationMember.objects.create(conversation=conversation, user_id="user_a")

    def test_is_admin(self):
        conversation = GroupConversationFactory(created_by="user_a", members=["user_b"])

        assert conversation.get_membership("user_a").is_admin
        assert not conversation.get_membership("user_b").is_admin


@pytest.mark.django_db
class TestMessageSoftDelete:
    def test_soft_delete_replaces_content(self):
        message = MessageFactory(
            content="secret",
            attachments=[{"id": "f1", "name": "a.png", "url": "https://cdn.example.com/a.png", "type": "image/png", "size": 10}],
        )

        changed = message.soft_delete()

        message.refresh_from_db()
        assert changed is True
        assert message.is_deleted is True
        assert message.deleted_at is not None
        assert message.content == MESSAGE_CONFIG.DELETED_PLACEHOLDER
        assert message.attachments == []

    def test_soft_delete_is_idempotent(self):
        message = MessageFactory()
        message.soft_delete()
        first_deleted_at = message.deleted_at

        changed = message.soft_delete()

        message.refresh_from_db()
        assert changed is False
        assert message.deleted_at == first_deleted_at

    def test_replies_survive_deletion_of_target(self):
        original = MessageFactory()
        reply = MessageFactory(conversation=original.conversation, reply_to=original)

        original.soft_delete()

        reply.refresh_from_db()
        assert reply.reply_to_id == original.id

    def test_str_truncates_long_content(self):
        message = MessageFactory(sender_id="user_a", content="x" * 80)

        assert str(message) == f"user_a: {'x' * 50}..."


@pytest.mark.django_db
class TestReactionAndTypingConstraints:
    def test_one_reaction_per_user_and_message(self):
        reaction = MessageReactionFactory(user_id="user_a")

        with pytest.raises(IntegrityError), transaction.atomic():
            MessageReaction.objects.create(message=reaction.message, user_id="user_a", emoji="🎉")

    def test_one_typing_indicator_per_user_and_conversation(self):
        indicator = TypingIndicatorFactory(user_id="user_a")

        with pytest.raises(IntegrityError), transaction.atomic():
            TypingIndicator.objects.create(conversation=indicator.conversation, user_id="user_a")
