"""
Django admin configuration for the user directory.
"""

from django.contrib import admin

from users.models import User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    """Admin interface for User model."""

    list_display = [
        "external_id",
        "email",
        "username",
        "status",
        "is_online",
        "last_seen",
        "is_staff",
    ]
    list_filter = ["status", "is_online", "is_staff", "is_active"]
    search_fields = ["external_id", "email", "username", "first_name", "last_name"]
    readonly_fields = ["external_id", "date_joined", "updated_at", "last_seen", "last_login"]
    exclude = ["password"]
    ordering = ["-date_joined"]
