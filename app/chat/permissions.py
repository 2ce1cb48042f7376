"""
Permission classes for the chat API.

- IsConversationMember: caller holds a membership in the conversation
  named by the URL

Role checks (admin-only updates, sender-or-admin deletes) are business
rules and live in the services, which report them as NOT_ADMIN /
NOT_AUTHORIZED failures. This module only gates read access.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from chat.authorization import ChatAuthorizationService

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsConversationMember(permissions.BasePermission):
    """
    Allows access only to members of the conversation in the URL.

    The conversation id is taken from ``conversation_pk`` or, on the
    conversation viewset itself, from ``pk``.
    """

    message = "You are not a participant in this conversation."

    def has_permission(self, request: Request, view: APIView) -> bool:
        if not request.user or not request.user.is_authenticated:
            return False

        conversation_id = view.kwargs.get("conversation_pk") or view.kwargs.get("pk")
        if conversation_id is None:
            return True
        return ChatAuthorizationService.is_member(request.user.external_id, int(conversation_id))
