"""
URL configuration for the chat API.

All URLs are prefixed with /api/v1/chat/ in the main URL configuration.
See views.py for the full endpoint table.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from chat.views import ConversationViewSet, MessageViewSet

router = DefaultRouter()
router.register(r"conversations", ConversationViewSet, basename="conversation")
router.register(r"messages", MessageViewSet, basename="message")

app_name = "chat"

urlpatterns = [
    path("", include(router.urls)),
]
