"""
Test configuration and fixtures for chat tests.

This module provides:
- Users with different conversation roles (all present in the directory)
- Direct and group conversations built from those users
- API client helpers authenticated with real access tokens

Usage:
    def test_example(group_conversation, admin_client):
        response = admin_client.get(f"/api/v1/chat/conversations/{group_conversation.id}/")
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from chat.tests.factories import DirectConversationFactory, GroupConversationFactory
from users.tests.factories import UserFactory


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def admin_user(db):
    """Creator and admin of the test conversations."""
    return UserFactory(external_id="user_admin", first_name="Ada")


@pytest.fixture
def member_user(db):
    """Plain member of the test conversations."""
    return UserFactory(external_id="user_member", first_name="Grace")


@pytest.fixture
def other_user(db):
    """Second plain member of the group conversation."""
    return UserFactory(external_id="user_other", first_name="Alan")


@pytest.fixture
def non_participant_user(db):
    """A user who is not in any test conversation."""
    return UserFactory(external_id="user_outsider", first_name="Eve")


# =============================================================================
# Conversation Fixtures
# =============================================================================


@pytest.fixture
def group_conversation(db, admin_user, member_user, other_user):
    """Group with admin_user as admin and member_user, other_user as members."""
    return GroupConversationFactory(
        name="Test Group",
        created_by=admin_user.external_id,
        members=[member_user.external_id, other_user.external_id],
    )


@pytest.fixture
def direct_conversation(db, admin_user, member_user):
    """Direct conversation created by admin_user with member_user."""
    return DirectConversationFactory(users=(admin_user.external_id, member_user.external_id))


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def authenticated_client_factory(db):
    """
    Factory to create authenticated clients for any user.

    Usage:
        def test_example(authenticated_client_factory, some_user):
            client = authenticated_client_factory(some_user)
            response = client.get("/api/v1/chat/conversations/")
    """

    def _make_client(user):
        client = APIClient()
        refresh = RefreshToken.for_user(user)
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
        return client

    return _make_client


@pytest.fixture
def admin_client(authenticated_client_factory, admin_user):
    return authenticated_client_factory(admin_user)


@pytest.fixture
def member_client(authenticated_client_factory, member_user):
    return authenticated_client_factory(member_user)


@pytest.fixture
def non_participant_client(authenticated_client_factory, non_participant_user):
    return authenticated_client_factory(non_participant_user)
