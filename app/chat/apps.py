"""
Chat application configuration.

This app provides:
- Direct (1:1) and group conversations with admin/member roles
- Message history, edits and soft deletes
- Reactions, typing indicators and read cursors
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"
