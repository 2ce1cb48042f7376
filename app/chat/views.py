"""
Views for the chat API.

URL Structure (prefixed with /api/v1/chat/):
    /conversations/                                  GET, POST
    /conversations/{id}/                             GET, PATCH
    /conversations/{id}/participants/                POST
    /conversations/{id}/participants/{user_id}/      DELETE
    /conversations/{id}/read/                        POST
    /conversations/{id}/archive/                     POST
    /conversations/{id}/pin/                         POST
    /conversations/{id}/membership/                  PATCH
    /conversations/{id}/messages/                    GET, POST
    /conversations/{id}/messages/search/             GET
    /conversations/{id}/typing/                      GET, POST
    /messages/{id}/                                  PATCH, DELETE
    /messages/{id}/reactions/                        POST, DELETE

Design Decisions:
    - Views parse input, call a service and serialize the result
    - Service failures map to 404/403/400 by error kind
    - The caller identity is ``request.user.external_id``
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from chat.constants import ERROR_KINDS
from chat.permissions import IsConversationMember
from chat.serializers import (
    ConversationCreateSerializer,
    ConversationDetailSerializer,
    ConversationListItemSerializer,
    ConversationSerializer,
    ConversationUpdateSerializer,
    MarkReadSerializer,
    MemberSerializer,
    MembershipPreferencesSerializer,
    MessageCreateSerializer,
    MessageEditSerializer,
    MessageListQuerySerializer,
    MessagePageSerializer,
    MessageSearchQuerySerializer,
    MessageSerializer,
    ParticipantsAddSerializer,
    ReactionCreateSerializer,
    ReactionSerializer,
    TypingSerializer,
)
from chat.services import (
    ConversationService,
    ConversationUpdate,
    MembershipService,
    MessageService,
    ReactionService,
    ReadStateService,
    TypingService,
)
from core.services import ServiceResult
from users.serializers import UserSerializer
from users.services import UserService

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "authorization": status.HTTP_403_FORBIDDEN,
    "policy": status.HTTP_400_BAD_REQUEST,
}


def failure_response(result: ServiceResult) -> Response:
    """Turn a failed ServiceResult into an error response."""
    kind = ERROR_KINDS.kind_of(result.error_code)
    body = result.to_response()
    body["error_kind"] = kind
    return Response(body, status=STATUS_BY_KIND[kind])


def _message_response(request, message, status_code=status.HTTP_200_OK) -> Response:
    senders = [message.sender_id]
    if message.reply_to is not None:
        senders.append(message.reply_to.sender_id)
    users = UserService.get_many_by_external_id(senders)
    data = MessageSerializer(message, context={"request": request, "users": users}).data
    return Response(data, status=status_code)


# =============================================================================
# Conversations
# =============================================================================


@extend_schema_view(
    list=extend_schema(
        operation_id="list_conversations",
        summary="List conversations",
        description="All conversations of the caller, most recent activity first, with unread counts.",
        responses={200: ConversationListItemSerializer(many=True)},
        tags=["Chat - Conversations"],
    ),
    create=extend_schema(
        operation_id="create_conversation",
        summary="Create conversation",
        description="Create a group, or find-or-create the direct conversation with one other user.",
        request=ConversationCreateSerializer,
        responses={
            201: OpenApiResponse(response=ConversationSerializer, description="New or existing direct conversation"),
            400: OpenApiResponse(description="Invalid participants"),
        },
        tags=["Chat - Conversations"],
    ),
    retrieve=extend_schema(
        operation_id="get_conversation",
        summary="Get conversation",
        responses={
            200: ConversationDetailSerializer,
            404: OpenApiResponse(description="Conversation not found"),
        },
        tags=["Chat - Conversations"],
    ),
    partial_update=extend_schema(
        operation_id="update_conversation",
        summary="Update conversation",
        request=ConversationUpdateSerializer,
        responses={
            200: ConversationSerializer,
            403: OpenApiResponse(description="Not a participant, or not an admin of the group"),
            404: OpenApiResponse(description="Conversation not found"),
        },
        tags=["Chat - Conversations"],
    ),
)
class ConversationViewSet(viewsets.ViewSet):
    """
    Conversations of the authenticated user.

    list:
        Conversations with the cached last message and unread count.

    create:
        Group: always creates. Direct: returns the existing conversation
        for the pair, or creates one.

    retrieve:
        Conversation with member profiles. Non-members get 404.

    partial_update:
        Rename or re-image. Groups require the admin role.
    """

    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"

    def get_permissions(self):
        read_actions = {"messages", "search_messages", "typing"}
        if self.action in read_actions and self.request.method == "GET":
            return [IsAuthenticated(), IsConversationMember()]
        return [IsAuthenticated()]

    @property
    def caller_id(self) -> str:
        return self.request.user.external_id

    def list(self, request):
        summaries = ConversationService.list_conversations(self.caller_id)
        users = UserService.get_many_by_external_id(
            s.last_message.sender_id for s in summaries if s.last_message is not None
        )
        serializer = ConversationListItemSerializer(
            summaries,
            many=True,
            context={"request": request, "users": users},
        )
        return Response(serializer.data)

    def create(self, request):
        serializer = ConversationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = ConversationService.create_conversation(
            created_by=self.caller_id,
            participants=data["participants"],
            is_group=data["is_group"],
            name=data.get("name", ""),
            image_url=data.get("image_url", ""),
        )
        if not result:
            logger.warning(f"Rejected conversation create by {self.caller_id}: {result.error_code}")
            return failure_response(result)

        return Response(ConversationSerializer(result.data).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        detail = ConversationService.get_conversation(int(pk))
        if detail is None or not any(m.membership.user_id == self.caller_id for m in detail.members):
            return failure_response(
                ServiceResult.failure("Conversation not found", error_code="CONVERSATION_NOT_FOUND")
            )
        return Response(ConversationDetailSerializer(detail, context={"request": request}).data)

    def partial_update(self, request, pk=None):
        serializer = ConversationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ConversationService.update_conversation(
            conversation_id=int(pk),
            updated_by=self.caller_id,
            update=ConversationUpdate(**serializer.validated_data),
        )
        if not result:
            return failure_response(result)
        return Response(ConversationSerializer(result.data).data)

    # -------------------------------------------------------------------------
    # Membership
    # -------------------------------------------------------------------------

    @extend_schema(
        operation_id="add_participants",
        summary="Add participants",
        description="Admins add identities to a group. Identities already present are skipped.",
        request=ParticipantsAddSerializer,
        responses={
            200: OpenApiResponse(description="Identities actually added"),
            400: OpenApiResponse(description="Not a group conversation"),
            403: OpenApiResponse(description="Not a participant, or not an admin"),
            404: OpenApiResponse(description="Conversation not found"),
        },
        tags=["Chat - Participants"],
    )
    @action(detail=True, methods=["post"])
    def participants(self, request, pk=None):
        serializer = ParticipantsAddSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MembershipService.add_participants(
            conversation_id=int(pk),
            participants=serializer.validated_data["participants"],
            added_by=self.caller_id,
        )
        if not result:
            return failure_response(result)
        return Response({"success": True, "added": result.data})

    @extend_schema(
        operation_id="remove_participant",
        summary="Remove participant",
        description="Leave a group, or (admins) remove another participant.",
        responses={
            204: OpenApiResponse(description="Participant removed"),
            400: OpenApiResponse(description="Not a group conversation"),
            403: OpenApiResponse(description="Not allowed to remove this participant"),
            404: OpenApiResponse(description="Conversation or participant not found"),
        },
        tags=["Chat - Participants"],
    )
    @action(detail=True, methods=["delete"], url_path=r"participants/(?P<user_id>[^/]+)")
    def remove_participant(self, request, pk=None, user_id=None):
        result = MembershipService.remove_participant(
            conversation_id=int(pk),
            participant_id=user_id,
            removed_by=self.caller_id,
        )
        if not result:
            return failure_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        operation_id="update_membership_preferences",
        summary="Update my mute/pin preferences",
        request=MembershipPreferencesSerializer,
        responses={200: MemberSerializer, 403: OpenApiResponse(description="Not a participant")},
        tags=["Chat - Participants"],
    )
    @action(detail=True, methods=["patch"])
    def membership(self, request, pk=None):
        serializer = MembershipPreferencesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MembershipService.update_preferences(int(pk), self.caller_id, **serializer.validated_data)
        if not result:
            return failure_response(result)
        return Response(MemberSerializer(result.data, context={"users": {}}).data)

    @extend_schema(
        operation_id="mark_conversation_read",
        summary="Mark conversation as read",
        description="Moves the caller's read cursor to now. A no-op for non-members.",
        request=MarkReadSerializer,
        responses={200: OpenApiResponse(description="Read state updated")},
        tags=["Chat - Conversations"],
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        serializer = MarkReadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ReadStateService.mark_as_read(
            conversation_id=int(pk),
            user_id=self.caller_id,
            last_message_id=serializer.validated_data.get("last_message_id"),
        )
        if not result:
            return failure_response(result)

        membership = result.data
        return Response({
            "success": True,
            "last_read_at": membership.last_read_at if membership else None,
        })

    @extend_schema(
        operation_id="toggle_conversation_archive",
        summary="Toggle archived",
        request=None,
        responses={200: ConversationSerializer},
        tags=["Chat - Conversations"],
    )
    @action(detail=True, methods=["post"])
    def archive(self, request, pk=None):
        result = ConversationService.toggle_archive(int(pk), self.caller_id)
        if not result:
            return failure_response(result)
        return Response(ConversationSerializer(result.data).data)

    @extend_schema(
        operation_id="toggle_conversation_pin",
        summary="Toggle pinned",
        request=None,
        responses={200: ConversationSerializer},
        tags=["Chat - Conversations"],
    )
    @action(detail=True, methods=["post"])
    def pin(self, request, pk=None):
        result = ConversationService.toggle_pin(int(pk), self.caller_id)
        if not result:
            return failure_response(result)
        return Response(ConversationSerializer(result.data).data)

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    @extend_schema(
        methods=["GET"],
        operation_id="get_messages",
        summary="Get message history",
        description=(
            "Cursor-paginated history in chronological order. Pass the "
            "returned next_cursor to fetch older messages."
        ),
        parameters=[
            OpenApiParameter(name="limit", type=int, required=False, description="Page size (max 100)"),
            OpenApiParameter(name="cursor", type=str, required=False, description="next_cursor of the previous page"),
        ],
        responses={200: MessagePageSerializer},
        tags=["Chat - Messages"],
    )
    @extend_schema(
        methods=["POST"],
        operation_id="send_message",
        summary="Send message",
        request=MessageCreateSerializer,
        responses={
            201: MessageSerializer,
            400: OpenApiResponse(description="Invalid content, reply target or attachments"),
            403: OpenApiResponse(description="Not a participant"),
            404: OpenApiResponse(description="Conversation not found"),
        },
        tags=["Chat - Messages"],
    )
    @action(detail=True, methods=["get", "post"])
    def messages(self, request, pk=None):
        if request.method == "POST":
            return self._send_message(request, int(pk))

        query = MessageListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        page = MessageService.get_messages(
            conversation_id=int(pk),
            limit=query.validated_data.get("limit"),
            cursor=query.validated_data.get("cursor") or None,
        )
        return Response(MessagePageSerializer(page, context={"request": request}).data)

    def _send_message(self, request, conversation_id: int) -> Response:
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = MessageService.send_message(
            conversation_id=conversation_id,
            sender_id=self.caller_id,
            content=data["content"],
            message_type=data["message_type"],
            reply_to_id=data.get("reply_to_id"),
            attachments=data.get("attachments"),
            forwarded_from_id=data.get("forwarded_from_id"),
        )
        if not result:
            return failure_response(result)
        return _message_response(request, result.data, status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="search_messages",
        summary="Search messages",
        description="Case-insensitive substring search, newest first. Deleted messages never match.",
        parameters=[
            OpenApiParameter(name="q", type=str, required=True, description="Search term"),
            OpenApiParameter(name="limit", type=int, required=False, description="Max results (default 20)"),
        ],
        responses={200: MessageSerializer(many=True)},
        tags=["Chat - Messages"],
    )
    @action(detail=True, methods=["get"], url_path="messages/search")
    def search_messages(self, request, pk=None):
        query = MessageSearchQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        messages = MessageService.search_messages(
            conversation_id=int(pk),
            search_term=query.validated_data["q"],
            limit=query.validated_data.get("limit"),
        )
        users = UserService.get_many_by_external_id(m.sender_id for m in messages)
        serializer = MessageSerializer(messages, many=True, context={"request": request, "users": users})
        return Response({"results": serializer.data, "count": len(messages)})

    @extend_schema(
        methods=["GET"],
        operation_id="get_typing_users",
        summary="Who is typing",
        responses={200: UserSerializer(many=True)},
        tags=["Chat - Typing"],
    )
    @extend_schema(
        methods=["POST"],
        operation_id="set_typing",
        summary="Start or stop typing",
        request=TypingSerializer,
        responses={200: OpenApiResponse(description="Typing state recorded")},
        tags=["Chat - Typing"],
    )
    @action(detail=True, methods=["get", "post"])
    def typing(self, request, pk=None):
        if request.method == "GET":
            users = TypingService.get_typing_users(int(pk))
            return Response(UserSerializer(users, many=True).data)

        serializer = TypingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = TypingService.set_typing(int(pk), self.caller_id, serializer.validated_data["is_typing"])
        if not result:
            return failure_response(result)
        return Response({"success": True, "is_typing": result.data})


# =============================================================================
# Individual messages
# =============================================================================


@extend_schema_view(
    partial_update=extend_schema(
        operation_id="edit_message",
        summary="Edit message",
        description="Only the sender may edit, within 48 hours of sending.",
        request=MessageEditSerializer,
        responses={
            200: MessageSerializer,
            400: OpenApiResponse(description="Edit window expired, deleted message or empty content"),
            403: OpenApiResponse(description="Not the sender"),
            404: OpenApiResponse(description="Message not found"),
        },
        tags=["Chat - Messages"],
    ),
    destroy=extend_schema(
        operation_id="delete_message",
        summary="Delete message",
        description="Soft delete by the sender or a conversation admin. Repeat deletes succeed.",
        responses={
            204: OpenApiResponse(description="Message deleted"),
            403: OpenApiResponse(description="Not the sender or an admin"),
            404: OpenApiResponse(description="Message not found"),
        },
        tags=["Chat - Messages"],
    ),
)
class MessageViewSet(viewsets.ViewSet):
    """Edit, delete and react to a single message."""

    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"

    @property
    def caller_id(self) -> str:
        return self.request.user.external_id

    def partial_update(self, request, pk=None):
        serializer = MessageEditSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MessageService.edit_message(int(pk), self.caller_id, serializer.validated_data["content"])
        if not result:
            return failure_response(result)
        return _message_response(request, result.data)

    def destroy(self, request, pk=None):
        result = MessageService.delete_message(int(pk), self.caller_id)
        if not result:
            return failure_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        methods=["POST"],
        operation_id="add_reaction",
        summary="React to message",
        description="Sets the caller's reaction, replacing any previous emoji.",
        request=ReactionCreateSerializer,
        responses={
            200: ReactionSerializer,
            400: OpenApiResponse(description="Invalid emoji or deleted message"),
            403: OpenApiResponse(description="Not a participant"),
            404: OpenApiResponse(description="Message not found"),
        },
        tags=["Chat - Reactions"],
    )
    @extend_schema(
        methods=["DELETE"],
        operation_id="remove_reaction",
        summary="Remove my reaction",
        request=None,
        responses={204: OpenApiResponse(description="Reaction removed (or none existed)")},
        tags=["Chat - Reactions"],
    )
    @action(detail=True, methods=["post", "delete"])
    def reactions(self, request, pk=None):
        if request.method == "DELETE":
            ReactionService.remove_reaction(int(pk), self.caller_id)
            return Response(status=status.HTTP_204_NO_CONTENT)

        serializer = ReactionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ReactionService.add_reaction(int(pk), self.caller_id, serializer.validated_data["emoji"])
        if not result:
            return failure_response(result)
        return Response(ReactionSerializer(result.data).data)
