"""
Chat system models.

This module defines the data models for:
- Direct (1:1) conversations between exactly two identities
- Group conversations with admin/member roles
- Messages with replies, forwards, attachments and soft delete
- Reactions and typing indicators

Models:
    Conversation: Container for messages between members
    DirectConversationPair: Storage-level uniqueness of 1:1 conversations
    ConversationMember: One identity's membership, role and read cursor
    Message: Individual message within a conversation
    MessageReaction: One emoji per (message, user)
    TypingIndicator: Last typing pulse per (conversation, user)

Design Decisions:
    - Users are referenced by identity-provider id strings, never by FK
    - Membership rows are the only record of who is in a conversation;
      the participant list is derived from them on read
    - Messages are never hard-deleted: soft delete swaps the content for a
      placeholder so ordering and reply links survive
"""

from __future__ import annotations

from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from chat.constants import MESSAGE_CONFIG
from core.model_mixins import SoftDeleteMixin
from core.models import BaseModel


class MemberRole(models.TextChoices):
    """
    Role within a conversation.

    ADMIN: Add/remove participants, rename the group, delete any message
    MEMBER: Send messages, delete own messages, leave
    """

    ADMIN = "admin", "Admin"
    MEMBER = "member", "Member"


class MessageType(models.TextChoices):
    TEXT = "text", "Text"
    IMAGE = "image", "Image"
    FILE = "file", "File"
    VOICE = "voice", "Voice"
    VIDEO = "video", "Video"
    LOCATION = "location", "Location"
    SYSTEM = "system", "System"


class MessageStatus(models.TextChoices):
    SENDING = "sending", "Sending"
    SENT = "sent", "Sent"
    DELIVERED = "delivered", "Delivered"
    READ = "read", "Read"
    FAILED = "failed", "Failed"


class Conversation(BaseModel):
    """
    A direct (1:1) or group conversation.

    Fields:
        name: Group name (empty for direct conversations)
        is_group: Group vs direct conversation
        created_by: Identity of the creator
        image_url: Optional group image
        last_message / last_message_at: Cache of the newest message,
            updated in the same transaction as every send
        is_archived / is_pinned: Conversation-wide flags

    Participants:
        ``participant_ids`` is computed from ConversationMember rows, so
        it can never disagree with the memberships.
    """

    name = models.CharField(max_length=200, blank=True, default="")
    is_group = models.BooleanField(default=False)
    created_by = models.CharField(max_length=255)
    image_url = models.URLField(max_length=500, blank=True, default="")

    last_message = models.ForeignKey(
        "Message",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    last_message_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Creation time of the newest message (or of the conversation)",
    )

    is_archived = models.BooleanField(default=False)
    is_pinned = models.BooleanField(default=False)

    class Meta:
        db_table = "chat_conversation"
        ordering = ["-last_message_at", "-id"]

    def __str__(self) -> str:
        label = self.name if self.is_group else "direct"
        return f"Conversation {self.pk} ({label})"

    @property
    def participant_ids(self) -> list[str]:
        """Member identities in join order."""
        return [m.user_id for m in self.members.all()]

    def get_membership(self, user_id: str) -> ConversationMember | None:
        return self.members.filter(user_id=user_id).first()


class DirectConversationPair(models.Model):
    """
    One row per direct conversation, keyed by the sorted identity pair.

    The unique constraint is what guarantees at most one direct
    conversation per pair, even when two creates race.

    Fields:
        conversation: The direct conversation (OneToOne, serves as PK)
        user_low: Lexicographically smaller identity
        user_high: Lexicographically larger identity
    """

    conversation = models.OneToOneField(
        Conversation,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="direct_pair",
    )
    user_low = models.CharField(max_length=255)
    user_high = models.CharField(max_length=255)

    class Meta:
        db_table = "chat_direct_conversation_pair"
        constraints = [
            models.UniqueConstraint(
                fields=["user_low", "user_high"],
                name="unique_direct_conversation_pair",
            ),
            models.CheckConstraint(
                condition=Q(user_low__lt=F("user_high")),
                name="direct_pair_user_low_lt_user_high",
            ),
        ]

    def __str__(self) -> str:
        return f"DirectPair({self.user_low}, {self.user_high})"

    @staticmethod
    def sorted_pair(first: str, second: str) -> tuple[str, str]:
        return (first, second) if first < second else (second, first)


class ConversationMember(BaseModel):
    """
    Membership of one identity in one conversation.

    Fields:
        role: admin or member
        joined_at: When the identity was added
        last_read_message / last_read_at: Read cursor; messages created
            after last_read_at are unread
        is_muted / is_pinned: Per-member preferences
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="members",
    )
    user_id = models.CharField(max_length=255, db_index=True)
    role = models.CharField(
        max_length=10,
        choices=MemberRole.choices,
        default=MemberRole.MEMBER,
    )
    joined_at = models.DateTimeField(default=timezone.now)

    last_read_message = models.ForeignKey(
        "Message",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    last_read_at = models.DateTimeField(null=True, blank=True)

    is_muted = models.BooleanField(default=False)
    is_pinned = models.BooleanField(default=False)

    class Meta:
        db_table = "chat_conversation_member"
        ordering = ["joined_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "user_id"],
                name="unique_conversation_member",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} in {self.conversation_id} ({self.role})"

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN


class Message(SoftDeleteMixin, BaseModel):
    """
    A message in a conversation. ``created_at`` is the ordering key.

    Fields:
        sender_id: Identity of the author
        content: Text body (replaced by the placeholder on delete)
        message_type / status: See MessageType / MessageStatus
        reply_to: Message being replied to (nulled if it disappears)
        forwarded_from: Original message when forwarded
        attachments: Ordered list of
            {id, name, url, type, size, width?, height?, duration?}
        edited_at: Last edit time
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="messages",
    )
    sender_id = models.CharField(max_length=255, db_index=True)
    content = models.TextField(blank=True, default="")
    message_type = models.CharField(
        max_length=10,
        choices=MessageType.choices,
        default=MessageType.TEXT,
    )
    status = models.CharField(
        max_length=10,
        choices=MessageStatus.choices,
        default=MessageStatus.SENT,
    )
    reply_to = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="replies",
    )
    forwarded_from = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="forwards",
    )
    attachments = models.JSONField(default=list, blank=True)
    edited_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "chat_message"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["conversation", "created_at"],
                name="chat_msg_conv_created_idx",
            ),
        ]

    def __str__(self) -> str:
        preview = self.content[:50] + "..." if len(self.content) > 50 else self.content
        return f"{self.sender_id}: {preview}"

    def on_soft_delete(self) -> list[str]:
        self.content = MESSAGE_CONFIG.DELETED_PLACEHOLDER
        self.attachments = []
        return ["content", "attachments"]


class MessageReaction(BaseModel):
    """One emoji per (message, user); reacting again replaces the emoji."""

    message = models.ForeignKey(
        Message,
        on_delete=models.CASCADE,
        related_name="reactions",
    )
    user_id = models.CharField(max_length=255)
    emoji = models.CharField(max_length=32)

    class Meta:
        db_table = "chat_message_reaction"
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["message", "user_id"],
                name="unique_reaction_per_user",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} reacted {self.emoji} to {self.message_id}"


class TypingIndicator(models.Model):
    """
    Last typing pulse of a user in a conversation.

    Live only while ``timestamp`` lies inside the typing window; stale
    rows are ignored on read and purged periodically.
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="typing_indicators",
    )
    user_id = models.CharField(max_length=255)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = "chat_typing_indicator"
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "user_id"],
                name="unique_typing_indicator",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} typing in {self.conversation_id}"
