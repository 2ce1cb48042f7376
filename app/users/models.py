"""
User directory models.

- User: profile record for one identity-provider user

Related files:
    - managers.py: UserManager
    - services.py: UserService (sync, presence, search)
    - webhooks.py: identity-provider lifecycle events

Other apps never hold a foreign key to User: conversations, memberships,
messages, reactions and typing indicators store ``external_id`` strings
and resolve profiles on read.
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from users.managers import UserManager


class UserStatus(models.TextChoices):
    """Presence status shown next to a user."""

    ONLINE = "online", "Online"
    AWAY = "away", "Away"
    BUSY = "busy", "Busy"
    OFFLINE = "offline", "Offline"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Local mirror of an identity-provider user.

    Fields:
        external_id: Stable user id issued by the identity provider
        email: Unique email address
        first_name, last_name, username, image_url, bio: Display fields
        is_online, last_seen, status: Presence
        is_active, is_staff: Django account flags
        date_joined, updated_at: Timestamps
    """

    external_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stable user id issued by the identity provider",
    )
    email = models.EmailField(
        unique=True,
        max_length=254,
        help_text="User's email address",
    )

    first_name = models.CharField(max_length=150, blank=True, default="")
    last_name = models.CharField(max_length=150, blank=True, default="")
    username = models.CharField(max_length=150, blank=True, default="", db_index=True)
    image_url = models.URLField(max_length=500, blank=True, default="")
    bio = models.TextField(blank=True, default="")

    is_online = models.BooleanField(default=False)
    last_seen = models.DateTimeField(null=True, blank=True)
    status = models.CharField(
        max_length=10,
        choices=UserStatus.choices,
        default=UserStatus.OFFLINE,
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )
    date_joined = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = "external_id"
    EMAIL_FIELD = "email"
    REQUIRED_FIELDS = ["email"]

    objects = UserManager()

    class Meta:
        db_table = "users_user"
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]
        indexes = [
            models.Index(fields=["is_online", "last_seen"], name="users_user_presence_idx"),
        ]

    def __str__(self):
        return self.email

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def get_full_name(self):
        return self.full_name or self.email

    def get_short_name(self):
        return self.first_name or self.username or self.email.split("@")[0]
