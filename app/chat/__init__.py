"""
Chat app: conversations, messages, reactions, typing and read state.

Related apps:
    - users: Identity directory referenced by every chat record
    - core: BaseModel, SoftDeleteMixin, ServiceResult

WebSocket Support:
    Uses Django Channels for real-time delivery.
    See consumers.py for the WebSocket handler and realtime.py for
    the publishing side.

Usage:
    from chat.services import ConversationService, MessageService

    result = ConversationService.create_conversation(
        created_by="user_a",
        participants=["user_b"],
    )
    MessageService.send_message(result.data.id, "user_a", "Hello!")
"""
