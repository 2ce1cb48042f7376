"""
User directory views.

Endpoints:
    GET/PATCH /api/v1/users/me/            - Current user's profile
    POST      /api/v1/users/me/presence/   - Online/offline pulse
    GET       /api/v1/users/search/        - Search users
    GET       /api/v1/users/online/        - Currently online users
    GET       /api/v1/users/<external_id>/ - Lookup by identity

Related files:
    - serializers.py: Request/response serialization
    - services.py: UserService
    - webhooks.py: Identity-provider webhook
"""

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from users.serializers import (
    PresenceSerializer,
    ProfileUpdateSerializer,
    UserSearchQuerySerializer,
    UserSerializer,
)
from users.services import ProfileUpdate, UserService


class CurrentUserView(APIView):
    """Read or update the authenticated user's profile."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get my profile",
        responses={200: UserSerializer},
        tags=["Users"],
    )
    def get(self, request):
        return Response(UserSerializer(request.user).data)

    @extend_schema(
        summary="Update my profile",
        request=ProfileUpdateSerializer,
        responses={200: UserSerializer, 400: OpenApiResponse(description="Invalid data")},
        tags=["Users"],
    )
    def patch(self, request):
        serializer = ProfileUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = UserService.update_profile(
            request.user.external_id,
            ProfileUpdate(**serializer.validated_data),
        )
        if not result:
            return Response(result.to_response(), status=status.HTTP_400_BAD_REQUEST)
        return Response(UserSerializer(result.data).data)


class PresenceView(APIView):
    """Record an online/offline pulse for the authenticated user."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Update online status",
        request=PresenceSerializer,
        responses={200: UserSerializer},
        tags=["Users"],
    )
    def post(self, request):
        serializer = PresenceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = UserService.update_online_status(
            request.user.external_id,
            serializer.validated_data["is_online"],
        )
        if not result:
            return Response(result.to_response(), status=status.HTTP_404_NOT_FOUND)
        return Response(UserSerializer(result.data).data)


class UserSearchView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Search users",
        parameters=[
            OpenApiParameter("q", str, description="Substring of name, username or email"),
            OpenApiParameter("limit", int, description="Maximum results (default 10)"),
        ],
        responses={200: UserSerializer(many=True)},
        tags=["Users"],
    )
    def get(self, request):
        query = UserSearchQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        users = UserService.search_users(
            query.validated_data["q"],
            limit=query.validated_data["limit"],
        )
        return Response(UserSerializer(users, many=True).data)


class OnlineUsersView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List online users",
        responses={200: UserSerializer(many=True)},
        tags=["Users"],
    )
    def get(self, request):
        return Response(UserSerializer(UserService.get_online_users(), many=True).data)


class UserDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get a user by identity",
        responses={200: UserSerializer, 404: OpenApiResponse(description="Unknown user")},
        tags=["Users"],
    )
    def get(self, request, external_id):
        user = UserService.get_by_external_id(external_id)
        if user is None:
            return Response(
                {"success": False, "error": "User not found", "error_code": "USER_NOT_FOUND"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(UserSerializer(user).data)
