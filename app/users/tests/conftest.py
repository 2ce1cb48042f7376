"""
Test configuration and fixtures for user directory tests.

Usage:
    def test_example(user, authenticated_client):
        response = authenticated_client.get("/api/v1/users/me/")
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from users.tests.factories import UserFactory


@pytest.fixture
def user(db):
    """A user who is online right now."""
    return UserFactory(first_name="Ada", last_name="Lovelace", username="ada")


@pytest.fixture
def other_user(db):
    return UserFactory(first_name="Grace", last_name="Hopper", username="grace")


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def authenticated_client(user):
    """API client authenticated as ``user`` with a real access token."""
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client
