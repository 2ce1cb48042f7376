"""
Membership lookups used for chat authorization.

Distinct from the DRF permission classes in permissions.py, which wrap
these checks for HTTP requests. Services, permissions and the WebSocket
consumer all go through ChatAuthorizationService so that "who is in this
conversation" is answered one way everywhere.

Usage:
    membership = ChatAuthorizationService.get_membership(user_id, conversation_id)
    if membership is None:
        return ServiceResult.failure(..., error_code="NOT_PARTICIPANT")
"""

from __future__ import annotations

from chat.models import ConversationMember, MemberRole


class ChatAuthorizationService:
    """Stateless membership and role checks keyed by identity string."""

    @classmethod
    def get_membership(
        cls,
        user_id: str,
        conversation_id: int,
        for_update: bool = False,
    ) -> ConversationMember | None:
        """
        Return the caller's membership, or None.

        ``for_update`` locks the row; only valid inside a transaction.
        """
        if not user_id or not conversation_id:
            return None
        queryset = ConversationMember.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        return queryset.filter(conversation_id=conversation_id, user_id=user_id).first()

    @classmethod
    def is_member(cls, user_id: str, conversation_id: int) -> bool:
        if not user_id or not conversation_id:
            return False
        return ConversationMember.objects.filter(
            conversation_id=conversation_id,
            user_id=user_id,
        ).exists()

    @classmethod
    def is_admin(cls, user_id: str, conversation_id: int) -> bool:
        return ConversationMember.objects.filter(
            conversation_id=conversation_id,
            user_id=user_id,
            role=MemberRole.ADMIN,
        ).exists()
