"""
User directory services.

This module provides the UserService class for:
- Syncing users from identity-provider lifecycle events
- Presence (online/offline pulses, online-user listing)
- Profile updates
- User search and identity lookups

Related files:
    - models.py: User
    - webhooks.py: Identity-provider webhook endpoint
    - tasks.py: Presence expiry
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import timedelta
from typing import TYPE_CHECKING

from django.db import IntegrityError
from django.db.models import Q
from django.utils import timezone

from core.services import BaseService, ServiceResult
from users.constants import PRESENCE_CONFIG, SEARCH_CONFIG
from users.models import User, UserStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from django.db.models import QuerySet


@dataclass
class ProfileUpdate:
    """
    Mutable profile fields. ``None`` means "leave unchanged".
    """

    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None
    bio: str | None = None
    status: str | None = None
    image_url: str | None = None

    def changed_fields(self) -> dict[str, str]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


class UserService(BaseService):
    """
    Business logic for the user directory.

    Usage:
        from users.services import UserService

        result = UserService.sync_from_identity_provider(
            external_id="user_2abc",
            email="ada@example.com",
            first_name="Ada",
        )
        user = result.data

        UserService.update_online_status("user_2abc", is_online=False)
        matches = UserService.search_users("ada")
    """

    @classmethod
    def get_by_external_id(cls, external_id: str) -> User | None:
        return User.objects.filter(external_id=external_id).first()

    @classmethod
    def get_many_by_external_id(cls, external_ids: Iterable[str]) -> dict[str, User]:
        """Resolve identities to users. Unknown identities are absent from the map."""
        ids = set(external_ids)
        if not ids:
            return {}
        return {u.external_id: u for u in User.objects.filter(external_id__in=ids)}

    @classmethod
    def sync_from_identity_provider(
        cls,
        external_id: str,
        email: str,
        first_name: str = "",
        last_name: str = "",
        username: str = "",
        image_url: str = "",
    ) -> ServiceResult[User]:
        """
        Create or update the user for an identity.

        New users start online with ``last_seen`` set to now; existing
        users only get their email and display fields refreshed.
        """
        if not external_id or not email:
            return ServiceResult.failure(
                "external_id and email are required",
                error_code="INVALID_IDENTITY",
            )

        display = {
            "email": User.objects.normalize_email(email),
            "first_name": first_name or "",
            "last_name": last_name or "",
            "username": username or "",
            "image_url": image_url or "",
        }

        try:
            with cls.atomic():
                user = User.objects.select_for_update().filter(external_id=external_id).first()
                if user is None:
                    user = User.objects.create_user(
                        external_id=external_id,
                        is_online=True,
                        status=UserStatus.ONLINE,
                        last_seen=timezone.now(),
                        **display,
                    )
                    created = True
                else:
                    for name, value in display.items():
                        setattr(user, name, value)
                    user.save(update_fields=[*display, "updated_at"])
                    created = False
        except IntegrityError:
            cls.get_logger().warning(
                f"Email {email} already belongs to another identity, "
                f"cannot sync {external_id}"
            )
            return ServiceResult.failure(
                "Email already belongs to another user",
                error_code="EMAIL_CONFLICT",
            )

        cls.get_logger().info(
            f"{'Created' if created else 'Updated'} user {external_id} from identity provider"
        )
        return ServiceResult.success(user)

    @classmethod
    def delete_by_external_id(cls, external_id: str) -> ServiceResult[None]:
        deleted, _ = User.objects.filter(external_id=external_id).delete()
        if not deleted:
            return ServiceResult.failure("User not found", error_code="USER_NOT_FOUND")

        cls.get_logger().info(f"Deleted user {external_id} after identity-provider deletion")
        return ServiceResult.success(None)

    @classmethod
    def update_online_status(cls, external_id: str, is_online: bool) -> ServiceResult[User]:
        user = cls.get_by_external_id(external_id)
        if user is None:
            return ServiceResult.failure("User not found", error_code="USER_NOT_FOUND")

        user.is_online = is_online
        user.last_seen = timezone.now()
        user.status = UserStatus.ONLINE if is_online else UserStatus.OFFLINE
        user.save(update_fields=["is_online", "last_seen", "status", "updated_at"])
        return ServiceResult.success(user)

    @classmethod
    def update_profile(cls, external_id: str, update: ProfileUpdate) -> ServiceResult[User]:
        user = cls.get_by_external_id(external_id)
        if user is None:
            return ServiceResult.failure("User not found", error_code="USER_NOT_FOUND")

        changes = update.changed_fields()
        if "status" in changes and changes["status"] not in UserStatus.values:
            return ServiceResult.failure(
                f"Unknown status '{changes['status']}'",
                error_code="INVALID_STATUS",
            )

        if changes:
            for name, value in changes.items():
                setattr(user, name, value)
            user.save(update_fields=[*changes, "updated_at"])
            cls.get_logger().info(f"Profile updated for user {external_id}: {sorted(changes)}")

        return ServiceResult.success(user)

    @classmethod
    def search_users(cls, term: str, limit: int = SEARCH_CONFIG.DEFAULT_LIMIT) -> list[User]:
        """
        Case-insensitive substring search over names, username and email.

        A blank term returns no users.
        """
        term = (term or "").strip()
        if not term:
            return []

        limit = max(1, min(limit, SEARCH_CONFIG.MAX_LIMIT))
        query = (
            Q(first_name__icontains=term)
            | Q(last_name__icontains=term)
            | Q(username__icontains=term)
            | Q(email__icontains=term)
        )
        return list(User.objects.filter(query).order_by("first_name", "last_name", "id")[:limit])

    @classmethod
    def get_online_users(cls) -> QuerySet[User]:
        """Users flagged online whose last pulse falls inside the presence window."""
        cutoff = timezone.now() - timedelta(seconds=PRESENCE_CONFIG.ONLINE_WINDOW_SECONDS)
        return User.objects.filter(is_online=True, last_seen__gte=cutoff).order_by("-last_seen")

    @classmethod
    def mark_stale_users_offline(cls) -> int:
        """Flip users whose last pulse is older than the presence window to offline."""
        cutoff = timezone.now() - timedelta(seconds=PRESENCE_CONFIG.ONLINE_WINDOW_SECONDS)
        stale = User.objects.filter(is_online=True).filter(
            Q(last_seen__lt=cutoff) | Q(last_seen__isnull=True)
        )
        return stale.update(
            is_online=False,
            status=UserStatus.OFFLINE,
            updated_at=timezone.now(),
        )
