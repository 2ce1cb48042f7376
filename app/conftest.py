"""
Root pytest configuration for the Django project.

pytest-django (configured in pyproject.toml) sets up Django; this module
swaps in test-friendly backends and marks tests by type. App-specific
fixtures are defined in each app's tests/conftest.py.
"""

import pytest


def pytest_configure():
    """Adjust settings before any test touches caches or channel layers."""
    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Use fast password hasher for tests (PBKDF2 is too slow with 870K iterations)
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # No Redis in tests
    settings.CACHES = {
        "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"},
    }
    settings.CHANNEL_LAYERS = {
        "default": {"BACKEND": "channels.layers.InMemoryChannelLayer"},
    }
    settings.SECURE_SSL_REDIRECT = False
    settings.IDENTITY_WEBHOOK_SECRET = "whsec_dGVzdC13ZWJob29rLXNlY3JldA=="


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full user journey workflows)
    - test_views.py, test_services.py, test_tasks.py, etc. → integration
    - test_models.py, test_serializers.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_permissions.py",
        "test_webhooks.py",
        "test_consumers.py",
        "test_realtime.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)
