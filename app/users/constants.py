"""
Constants for the user directory.
"""

from typing import Final


class PRESENCE_CONFIG:
    """Presence tracking configuration."""

    # A user counts as online only if their last pulse is this recent
    ONLINE_WINDOW_SECONDS: Final[int] = 5 * 60


class SEARCH_CONFIG:
    """User search configuration."""

    DEFAULT_LIMIT: Final[int] = 10
    MAX_LIMIT: Final[int] = 50


class WEBHOOK_CONFIG:
    """Identity-provider webhook configuration."""

    # Reject signed deliveries whose timestamp drifts further than this
    TOLERANCE_SECONDS: Final[int] = 5 * 60
    SECRET_PREFIX: Final[str] = "whsec_"
