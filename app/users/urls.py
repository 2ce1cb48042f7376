"""
URL configuration for the user directory.

URL structure:
    /api/v1/users/me/                  - Current profile (GET/PATCH)
    /api/v1/users/me/presence/         - Online status pulse (POST)
    /api/v1/users/search/              - Search (GET)
    /api/v1/users/online/              - Online users (GET)
    /api/v1/users/webhooks/identity/   - Identity-provider webhook (POST)
    /api/v1/users/<external_id>/       - Lookup by identity (GET)
"""

from django.urls import path

from users.views import (
    CurrentUserView,
    OnlineUsersView,
    PresenceView,
    UserDetailView,
    UserSearchView,
)
from users.webhooks import IdentityWebhookView

app_name = "users"

urlpatterns = [
    path("me/", CurrentUserView.as_view(), name="me"),
    path("me/presence/", PresenceView.as_view(), name="presence"),
    path("search/", UserSearchView.as_view(), name="search"),
    path("online/", OnlineUsersView.as_view(), name="online"),
    path("webhooks/identity/", IdentityWebhookView.as_view(), name="identity-webhook"),
    path("<str:external_id>/", UserDetailView.as_view(), name="detail"),
]
