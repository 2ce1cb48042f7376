"""
Constants and configuration for the chat module.

This module centralizes configuration values for:
- Message operations (edit window, content limits, pagination, search)
- Reactions (emoji limits)
- Typing indicators (liveness window)
- Error codes and the error kind each belongs to

Import example:
    from chat.constants import MESSAGE_CONFIG, TYPING_CONFIG
"""

from typing import Final


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    MAX_CONTENT_LENGTH: Final[int] = 10000  # Characters
    MAX_ATTACHMENTS: Final[int] = 10

    # Editing is allowed while now - created_at <= this window
    EDIT_WINDOW_SECONDS: Final[int] = 48 * 60 * 60

    # Content substituted for a soft-deleted message
    DELETED_PLACEHOLDER: Final[str] = "This message was deleted"

    PAGE_SIZE_DEFAULT: Final[int] = 50
    PAGE_SIZE_MAX: Final[int] = 100

    SEARCH_LIMIT_DEFAULT: Final[int] = 20
    SEARCH_LIMIT_MAX: Final[int] = 100


# =============================================================================
# Reaction Configuration
# =============================================================================


class REACTION_CONFIG:
    """Configuration for message reactions."""

    # Compound emojis (ZWJ sequences, skin tones, flags) span many code points
    MAX_EMOJI_LENGTH: Final[int] = 32


# =============================================================================
# Typing Configuration
# =============================================================================


class TYPING_CONFIG:
    """Configuration for typing indicators."""

    # An indicator is live while its timestamp is newer than now - window
    LIVE_WINDOW_MS: Final[int] = 5000

    # Rows older than this are physically removed by the purge task
    PURGE_AFTER_SECONDS: Final[int] = 60 * 60


# =============================================================================
# Error Codes
# =============================================================================


class ERROR_KINDS:
    """
    Error codes returned in ServiceResult.error_code, grouped by kind.

    Codes not listed under NOT_FOUND or AUTHORIZATION are policy errors.
    """

    NOT_FOUND: Final[frozenset] = frozenset({
        "CONVERSATION_NOT_FOUND",
        "MESSAGE_NOT_FOUND",
        "PARTICIPANT_NOT_FOUND",
        "USER_NOT_FOUND",
    })
    AUTHORIZATION: Final[frozenset] = frozenset({
        "NOT_PARTICIPANT",
        "NOT_ADMIN",
        "NOT_AUTHOR",
        "NOT_AUTHORIZED",
    })

    @classmethod
    def kind_of(cls, error_code: str | None) -> str:
        if error_code in cls.NOT_FOUND:
            return "not_found"
        if error_code in cls.AUTHORIZATION:
            return "authorization"
        return "policy"
