"""
Serializers for the user directory.

Related files:
    - models.py: User
    - views.py: Profile, presence and search endpoints
    - webhooks.py: Identity-provider event payloads
"""

from rest_framework import serializers

from users.constants import SEARCH_CONFIG
from users.models import User, UserStatus


class UserSerializer(serializers.ModelSerializer):
    """
    Public profile of a user.

    ``id`` is the identity-provider user id, the same string stored in
    conversations, memberships and messages.
    """

    id = serializers.CharField(source="external_id", read_only=True)
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "first_name",
            "last_name",
            "full_name",
            "username",
            "image_url",
            "bio",
            "is_online",
            "last_seen",
            "status",
        ]
        read_only_fields = fields


class ProfileUpdateSerializer(serializers.Serializer):
    """Partial profile update. Omitted fields are left unchanged."""

    first_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    username = serializers.CharField(max_length=150, required=False, allow_blank=True)
    bio = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=UserStatus.choices, required=False)
    image_url = serializers.URLField(max_length=500, required=False, allow_blank=True)


class PresenceSerializer(serializers.Serializer):
    is_online = serializers.BooleanField()


class UserSearchQuerySerializer(serializers.Serializer):
    q = serializers.CharField(required=False, allow_blank=True, default="")
    limit = serializers.IntegerField(
        required=False,
        min_value=1,
        max_value=SEARCH_CONFIG.MAX_LIMIT,
        default=SEARCH_CONFIG.DEFAULT_LIMIT,
    )


class IdentityEmailSerializer(serializers.Serializer):
    id = serializers.CharField(required=False)
    email_address = serializers.EmailField()


class IdentityUserDataSerializer(serializers.Serializer):
    """
    ``data`` object of a ``user.created`` / ``user.updated`` event.

    The primary email is the entry of ``email_addresses`` whose id matches
    ``primary_email_address_id``, falling back to the first entry.
    """

    id = serializers.CharField()
    email_addresses = IdentityEmailSerializer(many=True, allow_empty=False)
    primary_email_address_id = serializers.CharField(required=False, allow_null=True)
    first_name = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    last_name = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    username = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    image_url = serializers.CharField(required=False, allow_null=True, allow_blank=True)

    def get_primary_email(self) -> str:
        data = self.validated_data
        emails = data["email_addresses"]
        primary_id = data.get("primary_email_address_id")
        for entry in emails:
            if primary_id and entry.get("id") == primary_id:
                return entry["email_address"]
        return emails[0]["email_address"]
