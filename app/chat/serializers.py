"""
Serializers for the chat API.

Serializer Hierarchy:
    Read:
        MemberSerializer: Membership with the member's profile
        MessageSerializer: Message with sender, reply preview and reactions
        ConversationSerializer: Conversation fields and derived participants
        ConversationListItemSerializer: One entry of the conversation list
        ConversationDetailSerializer: Conversation with member profiles
        MessagePageSerializer: One page of history

    Write:
        ConversationCreateSerializer, ConversationUpdateSerializer
        ParticipantsAddSerializer, MembershipPreferencesSerializer
        MessageCreateSerializer, MessageEditSerializer
        ReactionCreateSerializer, TypingSerializer, MarkReadSerializer

    Query:
        MessageListQuerySerializer, MessageSearchQuerySerializer

Design Decisions:
    - Read and write serializers are separate
    - Users are resolved in bulk by the service layer and passed in
      through ``context["users"]``; serializers never query for them
    - Business rules stay in services; write serializers check shape only
"""

from __future__ import annotations

from rest_framework import serializers

from chat.constants import MESSAGE_CONFIG, REACTION_CONFIG
from chat.models import Conversation, ConversationMember, Message, MessageType
from users.serializers import UserSerializer


def _user_data(context: dict, user_id: str | None) -> dict | None:
    if not user_id:
        return None
    user = context.get("users", {}).get(user_id)
    return UserSerializer(user).data if user is not None else None


# =============================================================================
# Read serializers
# =============================================================================


class AttachmentSerializer(serializers.Serializer):
    """One file attached to a message, as returned by the upload service."""

    id = serializers.CharField(max_length=255)
    name = serializers.CharField(max_length=255)
    url = serializers.URLField(max_length=1000)
    type = serializers.CharField(max_length=100)
    size = serializers.IntegerField(min_value=0)
    width = serializers.IntegerField(min_value=0, required=False)
    height = serializers.IntegerField(min_value=0, required=False)
    duration = serializers.FloatField(min_value=0, required=False)


class ReactionSerializer(serializers.Serializer):
    user_id = serializers.CharField()
    emoji = serializers.CharField()
    created_at = serializers.DateTimeField()


class ReplyPreviewSerializer(serializers.ModelSerializer):
    """The message being replied to, without its own reply chain."""

    sender = serializers.SerializerMethodField()
    is_deleted = serializers.BooleanField(read_only=True)

    class Meta:
        model = Message
        fields = ["id", "sender_id", "sender", "content", "message_type", "is_deleted", "created_at"]
        read_only_fields = fields

    def get_sender(self, obj: Message) -> dict | None:
        return _user_data(self.context, obj.sender_id)


class MessageSerializer(serializers.ModelSerializer):
    """
    A message enriched for display.

    ``sender`` is null when the sender is unknown to the directory;
    ``reply_to`` is null when the target no longer resolves.
    """

    conversation_id = serializers.IntegerField(read_only=True)
    sender = serializers.SerializerMethodField()
    reply_to = serializers.SerializerMethodField()
    forwarded_from_id = serializers.IntegerField(read_only=True)
    reactions = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = [
            "id",
            "conversation_id",
            "sender_id",
            "sender",
            "content",
            "message_type",
            "status",
            "reply_to",
            "forwarded_from_id",
            "attachments",
            "reactions",
            "is_deleted",
            "edited_at",
            "deleted_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_sender(self, obj: Message) -> dict | None:
        return _user_data(self.context, obj.sender_id)

    def get_reply_to(self, obj: Message) -> dict | None:
        if obj.reply_to_id is None or obj.reply_to is None:
            return None
        return ReplyPreviewSerializer(obj.reply_to, context=self.context).data

    def get_reactions(self, obj: Message) -> list[dict]:
        return ReactionSerializer(obj.reactions.all(), many=True).data


class MemberSerializer(serializers.ModelSerializer):
    user = serializers.SerializerMethodField()
    last_read_message_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = ConversationMember
        fields = [
            "user_id",
            "user",
            "role",
            "joined_at",
            "last_read_message_id",
            "last_read_at",
            "is_muted",
            "is_pinned",
        ]
        read_only_fields = fields

    def get_user(self, obj: ConversationMember) -> dict | None:
        return _user_data(self.context, obj.user_id)


class ConversationSerializer(serializers.ModelSerializer):
    participants = serializers.ListField(
        source="participant_ids",
        child=serializers.CharField(),
        read_only=True,
    )
    last_message_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Conversation
        fields = [
            "id",
            "name",
            "is_group",
            "participants",
            "created_by",
            "image_url",
            "last_message_id",
            "last_message_at",
            "is_archived",
            "is_pinned",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ConversationListItemSerializer(serializers.Serializer):
    """Serializes a ConversationSummary."""

    conversation = ConversationSerializer()
    last_message = MessageSerializer(allow_null=True)
    unread_count = serializers.IntegerField()
    membership = MemberSerializer()

    def to_representation(self, instance):
        data = ConversationSerializer(instance.conversation).data
        data["last_message"] = (
            MessageSerializer(instance.last_message, context=self.context).data
            if instance.last_message is not None
            else None
        )
        data["unread_count"] = instance.unread_count
        data["membership"] = MemberSerializer(instance.membership, context=self.context).data
        return data


class ConversationDetailSerializer(serializers.Serializer):
    """Serializes a ConversationDetail."""

    conversation = ConversationSerializer()
    members = MemberSerializer(many=True)

    def to_representation(self, instance):
        users = {m.membership.user_id: m.user for m in instance.members if m.user is not None}
        context = {**self.context, "users": users}

        data = ConversationSerializer(instance.conversation).data
        data["members"] = MemberSerializer(
            [m.membership for m in instance.members],
            many=True,
            context=context,
        ).data
        return data


class MessagePageSerializer(serializers.Serializer):
    """Serializes a MessagePage."""

    messages = MessageSerializer(many=True)
    has_more = serializers.BooleanField()
    next_cursor = serializers.CharField(allow_null=True)

    def to_representation(self, instance):
        context = {**self.context, "users": instance.users}
        return {
            "messages": MessageSerializer(instance.messages, many=True, context=context).data,
            "has_more": instance.has_more,
            "next_cursor": instance.next_cursor,
        }


# =============================================================================
# Write serializers
# =============================================================================


class ConversationCreateSerializer(serializers.Serializer):
    """
    Create a direct or group conversation.

    The caller is always added; for a direct conversation ``participants``
    may hold just the other identity.
    """

    participants = serializers.ListField(
        child=serializers.CharField(max_length=255),
        allow_empty=False,
        max_length=256,
    )
    is_group = serializers.BooleanField(default=False)
    name = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    image_url = serializers.URLField(max_length=500, required=False, allow_blank=True, default="")


class ConversationUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    image_url = serializers.URLField(max_length=500, required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide at least one of: name, image_url")
        return attrs


class ParticipantsAddSerializer(serializers.Serializer):
    participants = serializers.ListField(
        child=serializers.CharField(max_length=255),
        allow_empty=False,
        max_length=256,
    )


class MembershipPreferencesSerializer(serializers.Serializer):
    is_muted = serializers.BooleanField(required=False)
    is_pinned = serializers.BooleanField(required=False)


class MarkReadSerializer(serializers.Serializer):
    last_message_id = serializers.IntegerField(required=False, allow_null=True)


class MessageCreateSerializer(serializers.Serializer):
    content = serializers.CharField(
        max_length=MESSAGE_CONFIG.MAX_CONTENT_LENGTH,
        required=False,
        allow_blank=True,
        trim_whitespace=False,
        default="",
    )
    message_type = serializers.ChoiceField(choices=MessageType.choices, default=MessageType.TEXT)
    reply_to_id = serializers.IntegerField(required=False, allow_null=True)
    forwarded_from_id = serializers.IntegerField(required=False, allow_null=True)
    attachments = AttachmentSerializer(many=True, required=False)


class MessageEditSerializer(serializers.Serializer):
    content = serializers.CharField(
        max_length=MESSAGE_CONFIG.MAX_CONTENT_LENGTH,
        allow_blank=True,
        trim_whitespace=False,
    )


class ReactionCreateSerializer(serializers.Serializer):
    emoji = serializers.CharField(max_length=REACTION_CONFIG.MAX_EMOJI_LENGTH)


class TypingSerializer(serializers.Serializer):
    is_typing = serializers.BooleanField()


# =============================================================================
# Query serializers
# =============================================================================


class MessageListQuerySerializer(serializers.Serializer):
    limit = serializers.IntegerField(required=False, min_value=1)
    cursor = serializers.CharField(required=False, allow_blank=True)


class MessageSearchQuerySerializer(serializers.Serializer):
    q = serializers.CharField(required=False, allow_blank=True, default="")
    limit = serializers.IntegerField(required=False, min_value=1)
