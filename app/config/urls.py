"""
URL configuration for the chat backend.

URL Structure:
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (load balancers, Docker)
    /api/schema/                   - OpenAPI schema
    /api/docs/                     - Swagger UI
    /api/redoc/                    - ReDoc
    /api/v1/users/                 - User directory (see users/urls.py)
    /api/v1/chat/                  - Chat endpoints (see chat/views.py)

WebSocket routes live in chat/routing.py and are mounted in config/asgi.py.
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView, SpectacularSwaggerView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("users/", include("users.urls")),
    path("chat/", include("chat.urls")),
]

urlpatterns = [
    # Documentation
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("api/docs/", SpectacularSwaggerView.as_view(url_name="schema"), name="swagger-ui"),
    path("api/redoc/", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

admin.site.site_header = "Chat Admin"
admin.site.site_title = "Chat Admin Portal"
admin.site.index_title = "Conversations and users"
