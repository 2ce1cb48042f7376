"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/chat/ - One socket per client; conversations are joined with
               "subscribe" messages (see consumers.py)

Authentication:
    JWT access token as ``?token=<jwt>`` or the ``jwt`` subprotocol,
    resolved by JWTAuthMiddleware.
"""

from django.urls import path

from chat import consumers

websocket_urlpatterns = [
    path("ws/chat/", consumers.ChatConsumer.as_asgi()),
]
