"""
WebSocket authentication middleware.

Authenticates WebSocket connections with the same JWT access tokens the
REST API accepts.

Related files:
    - routing.py: WebSocket URL patterns
    - consumers.py: WebSocket handlers
    - config/asgi.py: ASGI configuration

Token Passing Methods:
    1. Query string: ws://host/ws/chat/?token=<jwt_token>
    2. Subprotocol: Sec-WebSocket-Protocol: jwt, <jwt_token>

Usage in config/asgi.py:
    from chat.middleware import JWTAuthMiddleware

    application = ProtocolTypeRouter({
        "websocket": JWTAuthMiddleware(
            URLRouter(websocket_urlpatterns)
        ),
    })
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError

logger = logging.getLogger(__name__)


class JWTAuthMiddleware(BaseMiddleware):
    """
    Attach the token's user to ``scope["user"]``.

    Token sources (in order of precedence):
        1. Query string: ?token=<jwt_token>
        2. Subprotocol: Sec-WebSocket-Protocol: jwt, <jwt_token>

    Missing, invalid or expired tokens and inactive users all yield
    AnonymousUser; the consumer decides how to reject them.
    """

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        token = self._get_token_from_query(scope) or self._get_token_from_subprotocol(scope)
        scope["user"] = await self._get_user_from_token(token) if token else AnonymousUser()
        return await super().__call__(scope, receive, send)

    @staticmethod
    def _get_token_from_query(scope) -> str | None:
        query_string = scope.get("query_string", b"").decode()
        token_list = parse_qs(query_string).get("token", [])
        return token_list[0] if token_list else None

    @staticmethod
    def _get_token_from_subprotocol(scope) -> str | None:
        subprotocols = scope.get("subprotocols", [])
        if len(subprotocols) >= 2 and subprotocols[0] == "jwt":
            return subprotocols[1]
        return None

    @database_sync_to_async
    def _get_user_from_token(self, token: str):
        authentication = JWTAuthentication()
        try:
            validated = authentication.get_validated_token(token)
            return authentication.get_user(validated)
        except (InvalidToken, TokenError, AuthenticationFailed) as e:
            logger.warning(f"Rejected WebSocket token: {e}")
            return AnonymousUser()
