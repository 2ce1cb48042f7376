"""
Django admin configuration for chat models.

Provides admin interfaces for:
- Conversation management with inline memberships
- Message moderation
- Reactions
"""

from django.contrib import admin

from chat.models import (
    Conversation,
    ConversationMember,
    DirectConversationPair,
    Message,
    MessageReaction,
)


class ConversationMemberInline(admin.TabularInline):
    """Inline display of memberships in conversation admin."""

    model = ConversationMember
    extra = 0
    readonly_fields = ["joined_at", "last_read_at"]
    raw_id_fields = ["last_read_message"]


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    """Admin interface for Conversation model."""

    list_display = [
        "id",
        "name",
        "is_group",
        "created_by",
        "is_archived",
        "last_message_at",
        "created_at",
    ]
    list_filter = ["is_group", "is_archived", "created_at"]
    search_fields = ["name", "created_by", "id"]
    readonly_fields = ["created_at", "updated_at", "last_message_at"]
    raw_id_fields = ["last_message"]
    inlines = [ConversationMemberInline]
    ordering = ["-created_at"]


@admin.register(DirectConversationPair)
class DirectConversationPairAdmin(admin.ModelAdmin):
    list_display = ["conversation", "user_low", "user_high"]
    search_fields = ["user_low", "user_high"]
    raw_id_fields = ["conversation"]


@admin.register(ConversationMember)
class ConversationMemberAdmin(admin.ModelAdmin):
    list_display = ["id", "conversation", "user_id", "role", "joined_at", "last_read_at"]
    list_filter = ["role", "joined_at"]
    search_fields = ["user_id", "conversation__name"]
    readonly_fields = ["created_at", "updated_at", "joined_at"]
    raw_id_fields = ["conversation", "last_read_message"]
    ordering = ["-joined_at"]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = [
        "id",
        "conversation",
        "sender_id",
        "message_type",
        "content_preview",
        "is_deleted",
        "created_at",
    ]
    list_filter = ["message_type", "is_deleted", "created_at"]
    search_fields = ["content", "sender_id"]
    readonly_fields = ["created_at", "updated_at", "edited_at", "deleted_at"]
    raw_id_fields = ["conversation", "reply_to", "forwarded_from"]
    ordering = ["-created_at"]

    @admin.display(description="Content Preview")
    def content_preview(self, obj: Message) -> str:
        """Return truncated content for list display."""
        max_length = 50
        if len(obj.content) > max_length:
            return obj.content[:max_length] + "..."
        return obj.content


@admin.register(MessageReaction)
class MessageReactionAdmin(admin.ModelAdmin):
    list_display = ["id", "message", "user_id", "emoji", "created_at"]
    search_fields = ["user_id", "emoji"]
    raw_id_fields = ["message"]
