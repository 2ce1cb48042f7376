"""
Real-time fan-out of chat changes over the Channels layer.

Services call the publish helpers after a successful write. Delivery is
deferred with ``BaseService.on_commit`` so rolled-back work is never
announced.

Groups:
    conversation_<id>   - everyone viewing a conversation
    user_<identity>     - every socket of one user (conversation list)

Every event reaches consumers as
``{"type": "chat.event", "event": <name>, "payload": {...}}`` and is
forwarded to the client by ChatConsumer.chat_event.

Related files:
    - consumers.py: ChatConsumer (group membership and delivery)
    - services.py: Callers
"""

from __future__ import annotations

import logging
import re
from typing import Any

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from core.services import BaseService

logger = logging.getLogger(__name__)

# Channels group names: ASCII alphanumerics, hyphens, underscores, periods
_GROUP_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")
_GROUP_NAME_MAX = 99


def conversation_group(conversation_id: int) -> str:
    return f"conversation_{conversation_id}"


def user_group(user_id: str) -> str:
    return f"user_{_GROUP_UNSAFE.sub('_', user_id)}"[:_GROUP_NAME_MAX]


def _send(group: str, message: dict[str, Any]) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(group, message)
    except Exception:
        # Runs after commit: log and move on
        logger.exception(f"Failed to publish {message['event']} to {group}")


def publish(group: str, event: str, payload: dict[str, Any]) -> None:
    """Send ``event`` to ``group`` once the current transaction commits."""
    message = {"type": "chat.event", "event": event, "payload": payload}
    BaseService.on_commit(lambda: _send(group, message))


def publish_to_conversation(conversation_id: int, event: str, payload: dict[str, Any]) -> None:
    publish(conversation_group(conversation_id), event, {"conversation_id": conversation_id, **payload})


def publish_to_users(user_ids, event: str, payload: dict[str, Any]) -> None:
    for user_id in dict.fromkeys(user_ids):
        publish(user_group(user_id), event, payload)
