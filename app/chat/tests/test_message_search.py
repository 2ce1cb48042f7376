"""
Tests for MessageService.search_messages.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from chat.models import Message
from chat.services import MessageService
from chat.tests.factories import GroupConversationFactory, MessageFactory


@pytest.fixture
def conversation(db):
    conversation = GroupConversationFactory(created_by="user_a")
    start = timezone.now() - timedelta(hours=1)
    for n, content in enumerate(["Lunch at noon?", "lunch sounds good", "Meeting moved", "LUNCH is cancelled"]):
        message = MessageFactory(conversation=conversation, content=content)
        Message.objects.filter(pk=message.pk).update(created_at=start + timedelta(minutes=n))
    return conversation


@pytest.mark.django_db
class TestSearchMessages:
    def test_case_insensitive_newest_first(self, conversation):
        results = MessageService.search_messages(conversation.id, "lunch")

        assert [m.content for m in results] == ["LUNCH is cancelled", "lunch sounds good", "Lunch at noon?"]

    def test_substring_match(self, conversation):
        results = MessageService.search_messages(conversation.id, "eet")

        assert [m.content for m in results] == ["Meeting moved"]

    def test_deleted_messages_never_match(self, conversation):
        Message.objects.get(content="Meeting moved").soft_delete()

        assert MessageService.search_messages(conversation.id, "meeting") == []
        assert MessageService.search_messages(conversation.id, "deleted") == []

    def test_scoped_to_conversation(self, conversation):
        MessageFactory(content="lunch elsewhere")

        results = MessageService.search_messages(conversation.id, "elsewhere")

        assert results == []

    def test_limit(self, conversation):
        results = MessageService.search_messages(conversation.id, "lunch", limit=2)

        assert len(results) == 2

    @pytest.mark.parametrize("term", ["", "   ", None])
    def test_blank_term_returns_nothing(self, conversation, term):
        assert MessageService.search_messages(conversation.id, term) == []
