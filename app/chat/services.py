"""
Chat services.

This module holds the business logic of the chat system:
- ConversationService: list, create (1:1 find-or-create), get, update,
  archive/pin toggles
- MembershipService: add/remove participants, per-member preferences
- ReadStateService: read cursors and unread counts
- MessageService: history pagination, send, edit, delete, search
- ReactionService: one emoji per (message, user)
- TypingService: typing pulses with a short liveness window

Every operation that writes checks its preconditions and performs the
write inside one transaction, so a rejected request leaves nothing
behind. Expected failures come back as ServiceResult.failure with one of
the error codes listed in chat.constants.ERROR_KINDS.

Related files:
    - models.py: Conversation, ConversationMember, Message, ...
    - authorization.py: Membership lookups
    - realtime.py: Post-commit fan-out to WebSocket clients
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import TYPE_CHECKING, Any

from django.db import IntegrityError
from django.db.models import Count, F, Q
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from chat import realtime
from chat.authorization import ChatAuthorizationService
from chat.constants import MESSAGE_CONFIG, REACTION_CONFIG, TYPING_CONFIG
from chat.models import (
    Conversation,
    ConversationMember,
    DirectConversationPair,
    MemberRole,
    Message,
    MessageReaction,
    MessageType,
    TypingIndicator,
)
from core.services import BaseService, ServiceResult
from users.services import UserService

if TYPE_CHECKING:
    from collections.abc import Iterable

    from users.models import User


# =============================================================================
# Result and request structures
# =============================================================================


@dataclass
class ConversationSummary:
    """One entry of a user's conversation list."""

    conversation: Conversation
    last_message: Message | None
    unread_count: int
    membership: ConversationMember


@dataclass
class MemberProfile:
    membership: ConversationMember
    user: User | None


@dataclass
class ConversationDetail:
    conversation: Conversation
    members: list[MemberProfile]


@dataclass
class MessagePage:
    """
    One page of history, oldest first.

    ``users`` maps sender identities to profiles for the page.
    """

    messages: list[Message]
    has_more: bool
    next_cursor: str | None
    users: dict[str, User]


@dataclass
class ConversationUpdate:
    """Mutable conversation fields. ``None`` means "leave unchanged"."""

    name: str | None = None
    image_url: str | None = None

    def changed_fields(self) -> dict[str, str]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


def _unique_ids(ids: Iterable[str]) -> list[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    return list(dict.fromkeys(i.strip() for i in ids if i and i.strip()))


def encode_cursor(created_at: datetime) -> str:
    return created_at.astimezone(dt_timezone.utc).isoformat().replace("+00:00", "Z")


def decode_cursor(cursor: str) -> datetime | None:
    try:
        value = parse_datetime(cursor.strip())
    except ValueError:
        return None
    if value is None:
        return None
    if timezone.is_naive(value):
        value = timezone.make_aware(value, dt_timezone.utc)
    return value


# =============================================================================
# Conversation Registry
# =============================================================================


class ConversationService(BaseService):
    """
    Conversation lifecycle.

    Usage:
        result = ConversationService.create_conversation(
            created_by="user_a",
            participants=["user_a", "user_b"],
            is_group=False,
        )
        conversation = result.data

        for entry in ConversationService.list_conversations("user_a"):
            print(entry.conversation.id, entry.unread_count)
    """

    @classmethod
    def list_conversations(cls, user_id: str) -> list[ConversationSummary]:
        """
        All conversations of ``user_id``, most recent activity first.

        Each entry carries the cached last message, the caller's
        membership and the unread count derived from its read cursor.
        """
        memberships = (
            ConversationMember.objects.filter(user_id=user_id)
            .select_related("conversation", "conversation__last_message")
            .prefetch_related("conversation__members")
            .annotate(
                unread=Count(
                    "conversation__messages",
                    filter=Q(conversation__messages__created_at__gt=F("last_read_at"))
                    | Q(last_read_at__isnull=True),
                )
            )
            .order_by(
                F("conversation__last_message_at").desc(nulls_last=True),
                "-conversation_id",
            )
        )
        return [
            ConversationSummary(
                conversation=membership.conversation,
                last_message=membership.conversation.last_message,
                unread_count=membership.unread,
                membership=membership,
            )
            for membership in memberships
        ]

    @classmethod
    def get_conversation(cls, conversation_id: int) -> ConversationDetail | None:
        """Conversation with its members and their profiles, or None."""
        conversation = (
            Conversation.objects.filter(id=conversation_id)
            .select_related("last_message")
            .prefetch_related("members")
            .first()
        )
        if conversation is None:
            return None

        memberships = list(conversation.members.all())
        users = UserService.get_many_by_external_id(m.user_id for m in memberships)
        return ConversationDetail(
            conversation=conversation,
            members=[MemberProfile(membership=m, user=users.get(m.user_id)) for m in memberships],
        )

    @classmethod
    def create_conversation(
        cls,
        created_by: str,
        participants: Iterable[str],
        is_group: bool = False,
        name: str = "",
        image_url: str = "",
    ) -> ServiceResult[Conversation]:
        """
        Create a conversation, or return the existing 1:1 conversation.

        The creator is always a participant and becomes admin; everyone
        else joins as member. A direct conversation is found-or-created by
        its sorted identity pair; the pair's unique constraint resolves
        concurrent creates to a single conversation.

        Error codes:
            INVALID_PARTICIPANTS: Direct needs exactly two distinct
                identities, a group at least two
        """
        member_ids = _unique_ids([created_by, *participants])

        if not is_group:
            if len(member_ids) != 2:
                return ServiceResult.failure(
                    "A direct conversation needs exactly two distinct participants",
                    error_code="INVALID_PARTICIPANTS",
                )
            user_low, user_high = DirectConversationPair.sorted_pair(*member_ids)
            existing = cls._find_direct(user_low, user_high)
            if existing is not None:
                return ServiceResult.success(existing)
        elif len(member_ids) < 2:
            return ServiceResult.failure(
                "A group needs at least one other participant",
                error_code="INVALID_PARTICIPANTS",
            )

        try:
            with cls.atomic():
                conversation = Conversation.objects.create(
                    name=(name or "").strip() if is_group else "",
                    is_group=is_group,
                    created_by=created_by,
                    image_url=image_url or "",
                    last_message_at=timezone.now(),
                )
                if not is_group:
                    DirectConversationPair.objects.create(
                        conversation=conversation,
                        user_low=user_low,
                        user_high=user_high,
                    )
                ConversationMember.objects.bulk_create(
                    ConversationMember(
                        conversation=conversation,
                        user_id=member_id,
                        role=MemberRole.ADMIN if member_id == created_by else MemberRole.MEMBER,
                    )
                    for member_id in member_ids
                )
        except IntegrityError:
            if is_group:
                raise
            existing = cls._find_direct(user_low, user_high)
            if existing is None:
                raise
            cls.get_logger().info(
                f"Concurrent create for direct pair ({user_low}, {user_high}) "
                f"resolved to conversation {existing.id}"
            )
            return ServiceResult.success(existing)

        realtime.publish_to_users(
            member_ids,
            "conversation.created",
            {"conversation_id": conversation.id},
        )
        cls.get_logger().info(
            f"User {created_by} created {'group' if is_group else 'direct'} "
            f"conversation {conversation.id} with {len(member_ids)} members"
        )
        return ServiceResult.success(conversation)

    @classmethod
    def _find_direct(cls, user_low: str, user_high: str) -> Conversation | None:
        pair = (
            DirectConversationPair.objects.filter(user_low=user_low, user_high=user_high)
            .select_related("conversation")
            .first()
        )
        return pair.conversation if pair else None

    @classmethod
    def update_conversation(
        cls,
        conversation_id: int,
        updated_by: str,
        update: ConversationUpdate,
    ) -> ServiceResult[Conversation]:
        """
        Rename or re-image a conversation.

        Any member may update a direct conversation; a group requires the
        admin role.

        Error codes:
            CONVERSATION_NOT_FOUND, NOT_PARTICIPANT, NOT_ADMIN
        """
        with cls.atomic():
            conversation = Conversation.objects.select_for_update().filter(id=conversation_id).first()
            if conversation is None:
                return ServiceResult.failure("Conversation not found", error_code="CONVERSATION_NOT_FOUND")

            membership = ChatAuthorizationService.get_membership(updated_by, conversation_id)
            if membership is None:
                return ServiceResult.failure(
                    "You are not a participant in this conversation",
                    error_code="NOT_PARTICIPANT",
                )
            if conversation.is_group and not membership.is_admin:
                return ServiceResult.failure(
                    "Only admins can update this conversation",
                    error_code="NOT_ADMIN",
                )

            changes = update.changed_fields()
            if changes:
                for name, value in changes.items():
                    setattr(conversation, name, value.strip() if name == "name" else value)
                conversation.save(update_fields=[*changes, "updated_at"])

        if changes:
            realtime.publish_to_conversation(
                conversation.id,
                "conversation.updated",
                {"changed": sorted(changes)},
            )
            cls.get_logger().info(
                f"User {updated_by} updated conversation {conversation.id}: {sorted(changes)}"
            )
        return ServiceResult.success(conversation)

    @classmethod
    def toggle_archive(cls, conversation_id: int, user_id: str) -> ServiceResult[Conversation]:
        """Flip the conversation-wide archived flag (members only)."""
        return cls._toggle_flag(conversation_id, user_id, "is_archived")

    @classmethod
    def toggle_pin(cls, conversation_id: int, user_id: str) -> ServiceResult[Conversation]:
        """Flip the conversation-wide pinned flag (members only)."""
        return cls._toggle_flag(conversation_id, user_id, "is_pinned")

    @classmethod
    def _toggle_flag(cls, conversation_id: int, user_id: str, flag: str) -> ServiceResult[Conversation]:
        with cls.atomic():
            conversation = Conversation.objects.select_for_update().filter(id=conversation_id).first()
            if conversation is None:
                return ServiceResult.failure("Conversation not found", error_code="CONVERSATION_NOT_FOUND")
            if not ChatAuthorizationService.is_member(user_id, conversation_id):
                return ServiceResult.failure(
                    "You are not a participant in this conversation",
                    error_code="NOT_PARTICIPANT",
                )

            setattr(conversation, flag, not getattr(conversation, flag))
            conversation.save(update_fields=[flag, "updated_at"])

        realtime.publish_to_conversation(
            conversation.id,
            "conversation.updated",
            {"changed": [flag]},
        )
        return ServiceResult.success(conversation)


# =============================================================================
# Memberships
# =============================================================================


class MembershipService(BaseService):
    """
    Group membership changes.

    Membership rows are the single record of who is in a conversation, so
    adding or removing a participant is one insert or delete.
    """

    @classmethod
    def add_participants(
        cls,
        conversation_id: int,
        participants: Iterable[str],
        added_by: str,
    ) -> ServiceResult[list[str]]:
        """
        Add identities to a group as members.

        Identities already present are skipped silently.

        Returns:
            ServiceResult with the identities actually added

        Error codes:
            CONVERSATION_NOT_FOUND, NOT_GROUP, NOT_PARTICIPANT, NOT_ADMIN
        """
        requested = _unique_ids(participants)

        with cls.atomic():
            conversation = Conversation.objects.select_for_update().filter(id=conversation_id).first()
            if conversation is None:
                return ServiceResult.failure("Conversation not found", error_code="CONVERSATION_NOT_FOUND")
            if not conversation.is_group:
                return ServiceResult.failure(
                    "Participants can only be added to group conversations",
                    error_code="NOT_GROUP",
                )

            caller = ChatAuthorizationService.get_membership(added_by, conversation_id)
            if caller is None:
                return ServiceResult.failure(
                    "You are not a participant in this conversation",
                    error_code="NOT_PARTICIPANT",
                )
            if not caller.is_admin:
                return ServiceResult.failure(
                    "Only admins can add participants",
                    error_code="NOT_ADMIN",
                )

            existing = set(conversation.members.values_list("user_id", flat=True))
            added = [user_id for user_id in requested if user_id not in existing]
            ConversationMember.objects.bulk_create(
                ConversationMember(conversation=conversation, user_id=user_id, role=MemberRole.MEMBER)
                for user_id in added
            )
            if added:
                conversation.save(update_fields=["updated_at"])

        if added:
            realtime.publish_to_conversation(conversation.id, "members.updated", {"added": added})
            realtime.publish_to_users(added, "conversation.created", {"conversation_id": conversation.id})
            cls.get_logger().info(
                f"User {added_by} added {len(added)} participants to conversation {conversation.id}"
            )
        return ServiceResult.success(added)

    @classmethod
    def remove_participant(
        cls,
        conversation_id: int,
        participant_id: str,
        removed_by: str,
    ) -> ServiceResult[None]:
        """
        Remove a participant from a group.

        Anyone may remove themselves; removing someone else requires the
        admin role. If the last admin leaves while members remain, the
        longest-standing member is promoted to admin.

        Error codes:
            CONVERSATION_NOT_FOUND, NOT_GROUP, NOT_PARTICIPANT, NOT_ADMIN,
            PARTICIPANT_NOT_FOUND
        """
        with cls.atomic():
            conversation = Conversation.objects.select_for_update().filter(id=conversation_id).first()
            if conversation is None:
                return ServiceResult.failure("Conversation not found", error_code="CONVERSATION_NOT_FOUND")
            if not conversation.is_group:
                return ServiceResult.failure(
                    "Participants can only be removed from group conversations",
                    error_code="NOT_GROUP",
                )

            if participant_id != removed_by:
                caller = ChatAuthorizationService.get_membership(removed_by, conversation_id)
                if caller is None:
                    return ServiceResult.failure(
                        "You are not a participant in this conversation",
                        error_code="NOT_PARTICIPANT",
                    )
                if not caller.is_admin:
                    return ServiceResult.failure(
                        "Only admins can remove other participants",
                        error_code="NOT_ADMIN",
                    )

            target = ChatAuthorizationService.get_membership(participant_id, conversation_id)
            if target is None:
                return ServiceResult.failure(
                    "User is not a participant in this conversation",
                    error_code="PARTICIPANT_NOT_FOUND",
                )

            target.delete()
            TypingIndicator.objects.filter(conversation=conversation, user_id=participant_id).delete()

            promoted = None
            if target.is_admin and not conversation.members.filter(role=MemberRole.ADMIN).exists():
                promoted = conversation.members.order_by("joined_at", "id").first()
                if promoted is not None:
                    promoted.role = MemberRole.ADMIN
                    promoted.save(update_fields=["role", "updated_at"])

            conversation.save(update_fields=["updated_at"])

        payload: dict[str, Any] = {"removed": [participant_id]}
        if promoted is not None:
            payload["promoted"] = promoted.user_id
            cls.get_logger().info(
                f"Promoted {promoted.user_id} to admin of conversation {conversation.id} "
                f"after the last admin left"
            )
        realtime.publish_to_conversation(conversation.id, "members.updated", payload)
        realtime.publish_to_users([participant_id], "conversation.removed", {"conversation_id": conversation.id})

        action = "left" if participant_id == removed_by else f"was removed by {removed_by} from"
        cls.get_logger().info(f"User {participant_id} {action} conversation {conversation.id}")
        return ServiceResult.success(None)

    @classmethod
    def update_preferences(
        cls,
        conversation_id: int,
        user_id: str,
        is_muted: bool | None = None,
        is_pinned: bool | None = None,
    ) -> ServiceResult[ConversationMember]:
        """Set the caller's own mute/pin flags."""
        with cls.atomic():
            membership = ChatAuthorizationService.get_membership(user_id, conversation_id, for_update=True)
            if membership is None:
                return ServiceResult.failure(
                    "You are not a participant in this conversation",
                    error_code="NOT_PARTICIPANT",
                )

            changed = []
            if is_muted is not None:
                membership.is_muted = is_muted
                changed.append("is_muted")
            if is_pinned is not None:
                membership.is_pinned = is_pinned
                changed.append("is_pinned")
            if changed:
                membership.save(update_fields=[*changed, "updated_at"])

        return ServiceResult.success(membership)


# =============================================================================
# Read state
# =============================================================================


class ReadStateService(BaseService):
    """
    Per-member read cursors.

    A member's unread count is the number of messages in the conversation
    created after ``last_read_at``; with no cursor every message is unread.
    """

    @classmethod
    def get_unread_count(cls, membership: ConversationMember) -> int:
        messages = Message.objects.filter(conversation_id=membership.conversation_id)
        if membership.last_read_at is not None:
            messages = messages.filter(created_at__gt=membership.last_read_at)
        return messages.count()

    @classmethod
    def mark_as_read(
        cls,
        conversation_id: int,
        user_id: str,
        last_message_id: int | None = None,
    ) -> ServiceResult[ConversationMember | None]:
        """
        Move the caller's read cursor to now.

        Callers without a membership get a successful no-op.

        Error codes:
            MESSAGE_NOT_FOUND: last_message_id is not in this conversation
        """
        with cls.atomic():
            membership = ChatAuthorizationService.get_membership(user_id, conversation_id, for_update=True)
            if membership is None:
                return ServiceResult.success(None)

            update_fields = ["last_read_at", "updated_at"]
            if last_message_id is not None:
                message = Message.objects.filter(id=last_message_id, conversation_id=conversation_id).first()
                if message is None:
                    return ServiceResult.failure(
                        "Message not found in this conversation",
                        error_code="MESSAGE_NOT_FOUND",
                    )
                membership.last_read_message = message
                update_fields.append("last_read_message")

            membership.last_read_at = timezone.now()
            membership.save(update_fields=update_fields)

        realtime.publish_to_users([user_id], "conversation.read", {"conversation_id": conversation_id})
        return ServiceResult.success(membership)


# =============================================================================
# Message Store
# =============================================================================


class MessageService(BaseService):
    """
    Message history and lifecycle.

    Usage:
        result = MessageService.send_message(conversation_id, "user_a", "hello")
        page = MessageService.get_messages(conversation_id, limit=50)
        older = MessageService.get_messages(conversation_id, cursor=page.next_cursor)
    """

    @classmethod
    def get_messages(
        cls,
        conversation_id: int,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> MessagePage:
        """
        One page of history ending before ``cursor``.

        Rows are read newest-first and returned oldest-first. The cursor is
        the encoded creation time of the oldest message of the previous
        page; the next page holds strictly older messages. An unreadable
        cursor yields an empty page.
        """
        limit = max(1, min(limit or MESSAGE_CONFIG.PAGE_SIZE_DEFAULT, MESSAGE_CONFIG.PAGE_SIZE_MAX))

        queryset = Message.objects.filter(conversation_id=conversation_id)
        if cursor:
            before = decode_cursor(cursor)
            if before is None:
                return MessagePage(messages=[], has_more=False, next_cursor=None, users={})
            queryset = queryset.filter(created_at__lt=before)

        rows = list(
            queryset.select_related("reply_to")
            .prefetch_related("reactions")
            .order_by("-created_at", "-id")[: limit + 1]
        )
        has_more = len(rows) > limit
        rows = rows[:limit]
        next_cursor = encode_cursor(rows[-1].created_at) if rows and has_more else None
        rows.reverse()

        users = UserService.get_many_by_external_id(
            {m.sender_id for m in rows} | {m.reply_to.sender_id for m in rows if m.reply_to}
        )
        return MessagePage(messages=rows, has_more=has_more, next_cursor=next_cursor, users=users)

    @classmethod
    def send_message(
        cls,
        conversation_id: int,
        sender_id: str,
        content: str,
        message_type: str = MessageType.TEXT,
        reply_to_id: int | None = None,
        attachments: list[dict[str, Any]] | None = None,
        forwarded_from_id: int | None = None,
    ) -> ServiceResult[Message]:
        """
        Append a message to a conversation.

        The conversation's last-message cache and the sender's typing
        indicator are updated in the same transaction as the insert.

        Error codes:
            CONVERSATION_NOT_FOUND, NOT_PARTICIPANT,
            EMPTY_CONTENT, CONTENT_TOO_LONG, TOO_MANY_ATTACHMENTS,
            INVALID_MESSAGE_TYPE, INVALID_REPLY, MESSAGE_NOT_FOUND (forward
            source), NOT_AUTHORIZED (forward source not visible to sender)
        """
        content = content or ""
        attachments = list(attachments or [])

        with cls.atomic():
            conversation = Conversation.objects.select_for_update().filter(id=conversation_id).first()
            if conversation is None:
                return ServiceResult.failure("Conversation not found", error_code="CONVERSATION_NOT_FOUND")
            if not ChatAuthorizationService.is_member(sender_id, conversation_id):
                return ServiceResult.failure(
                    "You are not a participant in this conversation",
                    error_code="NOT_PARTICIPANT",
                )

            invalid = cls._validate_content(content, attachments)
            if invalid is not None:
                return invalid
            if message_type not in MessageType.values:
                return ServiceResult.failure(
                    f"Unknown message type '{message_type}'",
                    error_code="INVALID_MESSAGE_TYPE",
                )

            reply_to = None
            if reply_to_id is not None:
                reply_to = Message.objects.filter(id=reply_to_id, conversation_id=conversation_id).first()
                if reply_to is None:
                    return ServiceResult.failure(
                        "Reply target not found in this conversation",
                        error_code="INVALID_REPLY",
                    )

            forwarded_from = None
            if forwarded_from_id is not None:
                forwarded_from = Message.objects.filter(id=forwarded_from_id).first()
                if forwarded_from is None:
                    return ServiceResult.failure("Message not found", error_code="MESSAGE_NOT_FOUND")
                if not ChatAuthorizationService.is_member(sender_id, forwarded_from.conversation_id):
                    return ServiceResult.failure(
                        "You cannot forward a message from a conversation you are not in",
                        error_code="NOT_AUTHORIZED",
                    )

            message = Message.objects.create(
                conversation=conversation,
                sender_id=sender_id,
                content=content,
                message_type=message_type,
                reply_to=reply_to,
                forwarded_from=forwarded_from,
                attachments=attachments,
            )

            conversation.last_message = message
            conversation.last_message_at = message.created_at
            conversation.save(update_fields=["last_message", "last_message_at", "updated_at"])

            TypingIndicator.objects.filter(conversation=conversation, user_id=sender_id).delete()

        cls._publish_message(message, "message.created")
        cls.get_logger().debug(
            f"User {sender_id} sent message {message.id} to conversation {conversation.id}"
        )
        return ServiceResult.success(message)

    @classmethod
    def _validate_content(
        cls,
        content: str,
        attachments: list[dict[str, Any]] | None = None,
    ) -> ServiceResult | None:
        if not content.strip() and not attachments:
            return ServiceResult.failure("Message content cannot be empty", error_code="EMPTY_CONTENT")
        if len(content) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
            return ServiceResult.failure(
                f"Message cannot exceed {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                error_code="CONTENT_TOO_LONG",
            )
        if attachments and len(attachments) > MESSAGE_CONFIG.MAX_ATTACHMENTS:
            return ServiceResult.failure(
                f"A message can carry at most {MESSAGE_CONFIG.MAX_ATTACHMENTS} attachments",
                error_code="TOO_MANY_ATTACHMENTS",
            )
        return None

    @classmethod
    def edit_message(cls, message_id: int, user_id: str, content: str) -> ServiceResult[Message]:
        """
        Replace a message's content.

        Only the sender may edit, only within the edit window, and never a
        deleted message. Concurrent edits: last writer wins.

        Error codes:
            MESSAGE_NOT_FOUND, NOT_AUTHOR, MESSAGE_DELETED,
            EDIT_WINDOW_EXPIRED, EMPTY_CONTENT, CONTENT_TOO_LONG
        """
        content = content or ""

        with cls.atomic():
            message = Message.objects.select_for_update().filter(id=message_id).first()
            if message is None:
                return ServiceResult.failure("Message not found", error_code="MESSAGE_NOT_FOUND")
            if message.sender_id != user_id:
                return ServiceResult.failure(
                    "You can only edit your own messages",
                    error_code="NOT_AUTHOR",
                )
            if message.is_deleted:
                return ServiceResult.failure(
                    "Deleted messages cannot be edited",
                    error_code="MESSAGE_DELETED",
                )

            now = timezone.now()
            if now - message.created_at > timedelta(seconds=MESSAGE_CONFIG.EDIT_WINDOW_SECONDS):
                return ServiceResult.failure(
                    "Messages can only be edited within 48 hours of sending",
                    error_code="EDIT_WINDOW_EXPIRED",
                )

            invalid = cls._validate_content(content, message.attachments)
            if invalid is not None:
                return invalid

            message.content = content
            message.edited_at = now
            message.save(update_fields=["content", "edited_at", "updated_at"])

        cls._publish_message(message, "message.updated")
        cls.get_logger().info(f"User {user_id} edited message {message.id}")
        return ServiceResult.success(message)

    @classmethod
    def delete_message(cls, message_id: int, user_id: str) -> ServiceResult[Message]:
        """
        Soft delete a message.

        Allowed for the sender and for any admin of the conversation.
        Deleting an already-deleted message succeeds without changes.

        Error codes:
            MESSAGE_NOT_FOUND, NOT_AUTHORIZED
        """
        with cls.atomic():
            message = Message.objects.select_for_update().filter(id=message_id).first()
            if message is None:
                return ServiceResult.failure("Message not found", error_code="MESSAGE_NOT_FOUND")
            if message.sender_id != user_id and not ChatAuthorizationService.is_admin(
                user_id, message.conversation_id
            ):
                return ServiceResult.failure(
                    "You can only delete your own messages",
                    error_code="NOT_AUTHORIZED",
                )

            changed = message.soft_delete()

        if changed:
            cls._publish_message(message, "message.deleted")
            cls.get_logger().info(f"User {user_id} deleted message {message.id}")
        return ServiceResult.success(message)

    @classmethod
    def search_messages(
        cls,
        conversation_id: int,
        search_term: str,
        limit: int | None = None,
    ) -> list[Message]:
        """
        Case-insensitive substring search, newest first.

        Deleted messages never match. A blank term returns nothing.
        """
        term = (search_term or "").strip()
        if not term:
            return []

        limit = max(1, min(limit or MESSAGE_CONFIG.SEARCH_LIMIT_DEFAULT, MESSAGE_CONFIG.SEARCH_LIMIT_MAX))
        return list(
            Message.objects.filter(
                conversation_id=conversation_id,
                is_deleted=False,
                content__icontains=term,
            )
            .select_related("reply_to")
            .prefetch_related("reactions")
            .order_by("-created_at", "-id")[:limit]
        )

    @classmethod
    def _publish_message(cls, message: Message, event: str) -> None:
        from chat.serializers import MessageSerializer

        users = UserService.get_many_by_external_id([message.sender_id])
        data = MessageSerializer(message, context={"users": users}).data
        realtime.publish_to_conversation(message.conversation_id, event, {"message": dict(data)})


# =============================================================================
# Reactions
# =============================================================================


class ReactionService(BaseService):
    """
    Emoji reactions. A user holds at most one reaction per message; reacting
    again replaces the emoji.
    """

    @classmethod
    def add_reaction(cls, message_id: int, user_id: str, emoji: str) -> ServiceResult[MessageReaction]:
        """
        Set the caller's reaction on a message.

        Error codes:
            INVALID_EMOJI, MESSAGE_NOT_FOUND, NOT_PARTICIPANT, MESSAGE_DELETED
        """
        emoji = (emoji or "").strip()
        if not emoji or len(emoji) > REACTION_CONFIG.MAX_EMOJI_LENGTH:
            return ServiceResult.failure("Invalid emoji", error_code="INVALID_EMOJI")

        with cls.atomic():
            message = Message.objects.filter(id=message_id).first()
            if message is None:
                return ServiceResult.failure("Message not found", error_code="MESSAGE_NOT_FOUND")
            if not ChatAuthorizationService.is_member(user_id, message.conversation_id):
                return ServiceResult.failure(
                    "You are not a participant in this conversation",
                    error_code="NOT_PARTICIPANT",
                )
            if message.is_deleted:
                return ServiceResult.failure(
                    "Cannot react to a deleted message",
                    error_code="MESSAGE_DELETED",
                )

            reaction, _ = MessageReaction.objects.update_or_create(
                message=message,
                user_id=user_id,
                defaults={"emoji": emoji},
            )

        cls._publish_reactions(message)
        return ServiceResult.success(reaction)

    @classmethod
    def remove_reaction(cls, message_id: int, user_id: str) -> ServiceResult[bool]:
        """
        Remove the caller's reaction, if any.

        Returns:
            ServiceResult with True if a reaction was removed
        """
        deleted, _ = MessageReaction.objects.filter(message_id=message_id, user_id=user_id).delete()
        if deleted:
            message = Message.objects.filter(id=message_id).first()
            if message is not None:
                cls._publish_reactions(message)
        return ServiceResult.success(bool(deleted))

    @classmethod
    def get_message_reactions(cls, message_ids: Iterable[int]) -> dict[int, list[MessageReaction]]:
        grouped: dict[int, list[MessageReaction]] = {}
        for reaction in MessageReaction.objects.filter(message_id__in=list(message_ids)).order_by("created_at", "id"):
            grouped.setdefault(reaction.message_id, []).append(reaction)
        return grouped

    @classmethod
    def _publish_reactions(cls, message: Message) -> None:
        reactions = cls.get_message_reactions([message.id]).get(message.id, [])
        realtime.publish_to_conversation(
            message.conversation_id,
            "reaction.updated",
            {
                "message_id": message.id,
                "reactions": [
                    {"user_id": r.user_id, "emoji": r.emoji, "created_at": r.created_at.isoformat()}
                    for r in reactions
                ],
            },
        )


# =============================================================================
# Typing
# =============================================================================


class TypingService(BaseService):
    """
    Typing pulses.

    Clients call set_typing(True) repeatedly while composing. An indicator
    counts as live only while its timestamp is inside the typing window,
    so a client that disappears simply ages out.
    """

    @classmethod
    def set_typing(cls, conversation_id: int, user_id: str, is_typing: bool) -> ServiceResult[bool]:
        if not ChatAuthorizationService.is_member(user_id, conversation_id):
            return ServiceResult.failure(
                "You are not a participant in this conversation",
                error_code="NOT_PARTICIPANT",
            )

        with cls.atomic():
            if is_typing:
                TypingIndicator.objects.update_or_create(
                    conversation_id=conversation_id,
                    user_id=user_id,
                    defaults={"timestamp": timezone.now()},
                )
            else:
                TypingIndicator.objects.filter(conversation_id=conversation_id, user_id=user_id).delete()

        realtime.publish_to_conversation(
            conversation_id,
            "typing.updated",
            {"user_id": user_id, "is_typing": is_typing},
        )
        return ServiceResult.success(is_typing)

    @classmethod
    def get_typing_users(cls, conversation_id: int) -> list[User]:
        """Profiles of users with a live indicator, earliest pulse first."""
        cutoff = timezone.now() - timedelta(milliseconds=TYPING_CONFIG.LIVE_WINDOW_MS)
        user_ids = list(
            TypingIndicator.objects.filter(conversation_id=conversation_id, timestamp__gt=cutoff)
            .order_by("timestamp", "id")
            .values_list("user_id", flat=True)
        )
        users = UserService.get_many_by_external_id(user_ids)
        return [users[user_id] for user_id in user_ids if user_id in users]

    @classmethod
    def purge_stale_indicators(cls, older_than_seconds: int = TYPING_CONFIG.PURGE_AFTER_SECONDS) -> int:
        cutoff = timezone.now() - timedelta(seconds=older_than_seconds)
        deleted, _ = TypingIndicator.objects.filter(timestamp__lt=cutoff).delete()
        return deleted
