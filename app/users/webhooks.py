"""
Identity-provider webhook endpoint.

The identity provider announces user lifecycle changes here:

    POST /api/v1/users/webhooks/identity/

Handled event types:
    - user.created / user.updated: create or refresh the local User
    - user.deleted: remove the local User

Security:
    Deliveries are signed Svix-style. The ``svix-signature`` header holds
    one or more ``v1,<base64 HMAC-SHA256>`` entries computed over
    ``"{svix-id}.{svix-timestamp}.{raw body}"`` with the base64-decoded
    ``IDENTITY_WEBHOOK_SECRET`` (``whsec_`` prefix stripped). Deliveries
    with a stale timestamp or no matching signature get 401.

Configuration:
    IDENTITY_WEBHOOK_SECRET in settings.py
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time

from django.conf import settings
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from users.constants import WEBHOOK_CONFIG
from users.serializers import IdentityUserDataSerializer
from users.services import UserService

logger = logging.getLogger(__name__)


def _decode_secret(secret: str) -> bytes:
    if secret.startswith(WEBHOOK_CONFIG.SECRET_PREFIX):
        secret = secret[len(WEBHOOK_CONFIG.SECRET_PREFIX):]
    try:
        return base64.b64decode(secret)
    except (binascii.Error, ValueError):
        return secret.encode()


def sign_payload(secret: str, message_id: str, timestamp: str, body: bytes) -> str:
    """Compute the ``v1`` signature for a delivery."""
    signed = f"{message_id}.{timestamp}.".encode() + body
    digest = hmac.new(_decode_secret(secret), signed, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_signature(
    secret: str,
    message_id: str,
    timestamp: str,
    signature_header: str,
    body: bytes,
) -> bool:
    """
    Check a delivery's signature and timestamp.

    Returns:
        True if any ``v1`` signature in the header matches
    """
    if not (secret and message_id and timestamp and signature_header):
        return False

    try:
        sent_at = int(timestamp)
    except ValueError:
        return False
    if abs(time.time() - sent_at) > WEBHOOK_CONFIG.TOLERANCE_SECONDS:
        return False

    expected = sign_payload(secret, message_id, timestamp, body)
    for entry in signature_header.split():
        version, _, candidate = entry.partition(",")
        if version == "v1" and hmac.compare_digest(candidate, expected):
            return True
    return False


class IdentityWebhookView(APIView):
    """
    Receive identity-provider user lifecycle events.

    Returns:
        200: Event applied or ignored (unknown type)
        400: Malformed payload
        401: Missing or invalid signature
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(
        summary="Identity-provider webhook",
        description="Signed user lifecycle events (user.created, user.updated, user.deleted).",
        request=None,
        responses={
            200: OpenApiResponse(description="Event accepted"),
            400: OpenApiResponse(description="Malformed payload"),
            401: OpenApiResponse(description="Invalid signature"),
        },
        tags=["Users"],
    )
    def post(self, request):
        body = request.body
        if not verify_signature(
            settings.IDENTITY_WEBHOOK_SECRET,
            request.headers.get("svix-id", ""),
            request.headers.get("svix-timestamp", ""),
            request.headers.get("svix-signature", ""),
            body,
        ):
            logger.warning("Identity webhook rejected: invalid signature")
            return Response(
                {"success": False, "error": "Invalid signature"},
                status=status.HTTP_401_UNAUTHORIZED,
            )

        try:
            event = json.loads(body)
        except ValueError:
            return Response(
                {"success": False, "error": "Invalid JSON"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        event_type = event.get("type")
        data = event.get("data") or {}
        logger.info(f"Identity webhook received: {event_type}")

        if event_type in ("user.created", "user.updated"):
            serializer = IdentityUserDataSerializer(data=data)
            if not serializer.is_valid():
                logger.warning(f"Identity webhook {event_type} payload invalid: {serializer.errors}")
                return Response(
                    {"success": False, "error": "Invalid user payload", "errors": serializer.errors},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            fields = serializer.validated_data
            result = UserService.sync_from_identity_provider(
                external_id=fields["id"],
                email=serializer.get_primary_email(),
                first_name=fields.get("first_name") or "",
                last_name=fields.get("last_name") or "",
                username=fields.get("username") or "",
                image_url=fields.get("image_url") or "",
            )
        elif event_type == "user.deleted":
            external_id = data.get("id")
            if not external_id:
                return Response(
                    {"success": False, "error": "Missing user id"},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            result = UserService.delete_by_external_id(external_id)
        else:
            logger.info(f"Identity webhook ignored unhandled event type: {event_type}")
            return Response({"success": True, "ignored": True})

        if not result:
            # Acknowledge deletes of unknown users so the provider stops retrying
            if result.error_code == "USER_NOT_FOUND":
                return Response(result.to_response())
            return Response(result.to_response(), status=status.HTTP_400_BAD_REQUEST)
        return Response({"success": True})
