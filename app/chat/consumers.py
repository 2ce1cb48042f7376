"""
WebSocket consumer for real-time chat updates.

One socket per client session at ``ws/chat/``. The socket always joins the
user's own group (conversation list changes) and joins conversation
groups on request.

Authentication:
    JWTAuthMiddleware resolves the access token (``?token=`` or the
    ``jwt`` subprotocol) and attaches the user to ``scope["user"]``.

Message Types (from client):
    {"type": "subscribe", "conversation_id": 12}
    {"type": "unsubscribe", "conversation_id": 12}
    {"type": "typing", "conversation_id": 12, "is_typing": true}

Message Types (to client):
    {"type": "subscribed" | "unsubscribed", "conversation_id": 12}
    {"type": "event", "event": "message.created", "payload": {...}}
    {"type": "error", "error_code": "...", "message": "..."}

Close codes:
    4001: Not authenticated
    4003: Subscribed to a conversation the user is not a member of

A ``conversation.removed`` event on the user's group also drops the
socket from that conversation's group.
"""

from __future__ import annotations

import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from chat import realtime
from chat.authorization import ChatAuthorizationService
from chat.services import TypingService

logger = logging.getLogger(__name__)

CLOSE_UNAUTHENTICATED = 4001
CLOSE_FORBIDDEN = 4003


class ChatConsumer(AsyncJsonWebsocketConsumer):
    """
    Delivers chat events to one connected client.

    Attributes:
        user_id: Identity of the connected user
        conversation_ids: Conversations this socket is subscribed to
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id: str | None = None
        self.conversation_ids: set[int] = set()

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            logger.warning("Rejected unauthenticated chat socket")
            await self.close(code=CLOSE_UNAUTHENTICATED)
            return

        self.user_id = user.external_id
        await self.channel_layer.group_add(realtime.user_group(self.user_id), self.channel_name)

        subprotocol = "jwt" if "jwt" in self.scope.get("subprotocols", []) else None
        await self.accept(subprotocol=subprotocol)
        logger.info(f"User {self.user_id} connected to chat socket")

    async def disconnect(self, close_code):
        if self.user_id is None:
            return
        await self.channel_layer.group_discard(realtime.user_group(self.user_id), self.channel_name)
        for conversation_id in self.conversation_ids:
            await self.channel_layer.group_discard(
                realtime.conversation_group(conversation_id),
                self.channel_name,
            )
        self.conversation_ids.clear()
        logger.info(f"User {self.user_id} disconnected from chat socket ({close_code})")

    async def receive_json(self, content, **kwargs):
        message_type = content.get("type")
        conversation_id = self._conversation_id(content)

        if message_type not in ("subscribe", "unsubscribe", "typing"):
            await self._send_error("UNKNOWN_TYPE", f"Unknown message type: {message_type}")
            return
        if conversation_id is None:
            await self._send_error("INVALID_CONVERSATION", "conversation_id must be an integer")
            return

        if message_type == "subscribe":
            await self._subscribe(conversation_id)
        elif message_type == "unsubscribe":
            await self._unsubscribe(conversation_id)
        else:
            await self._typing(conversation_id, bool(content.get("is_typing", False)))

    async def _subscribe(self, conversation_id: int):
        is_member = await database_sync_to_async(ChatAuthorizationService.is_member)(
            self.user_id, conversation_id
        )
        if not is_member:
            logger.warning(
                f"User {self.user_id} tried to subscribe to conversation {conversation_id} "
                f"without being a participant"
            )
            await self.close(code=CLOSE_FORBIDDEN)
            return

        await self.channel_layer.group_add(realtime.conversation_group(conversation_id), self.channel_name)
        self.conversation_ids.add(conversation_id)
        await self.send_json({"type": "subscribed", "conversation_id": conversation_id})

    async def _unsubscribe(self, conversation_id: int):
        await self.channel_layer.group_discard(realtime.conversation_group(conversation_id), self.channel_name)
        self.conversation_ids.discard(conversation_id)
        await self.send_json({"type": "unsubscribed", "conversation_id": conversation_id})

    async def _typing(self, conversation_id: int, is_typing: bool):
        result = await database_sync_to_async(TypingService.set_typing)(
            conversation_id, self.user_id, is_typing
        )
        if not result:
            await self._send_error(result.error_code, result.error)

    async def chat_event(self, event):
        """Forward a published chat event to the client."""
        payload = event["payload"]
        if event["event"] == "typing.updated" and payload.get("user_id") == self.user_id:
            return
        if event["event"] == "conversation.removed":
            # Stop conversation traffic before the client hears about it
            conversation_id = payload["conversation_id"]
            await self.channel_layer.group_discard(
                realtime.conversation_group(conversation_id),
                self.channel_name,
            )
            self.conversation_ids.discard(conversation_id)
        await self.send_json({"type": "event", "event": event["event"], "payload": payload})

    async def _send_error(self, error_code: str | None, message: str | None):
        await self.send_json({"type": "error", "error_code": error_code, "message": message})

    @staticmethod
    def _conversation_id(content: dict) -> int | None:
        try:
            return int(content.get("conversation_id"))
        except (TypeError, ValueError):
            return None
