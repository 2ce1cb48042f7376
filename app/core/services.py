"""
Service layer building blocks shared by the domain apps.

- ServiceResult: returned by every service operation
- BaseService: logger and transaction helpers for service classes

Expected failures (a caller who is not a member, an expired edit window,
a missing message) come back as ``ServiceResult.failure`` with a
machine-readable ``error_code``. Unexpected failures (database outages,
programming errors) are raised and left to Django/DRF.

Usage:
    from core.services import BaseService, ServiceResult

    class ArchiveService(BaseService):
        @classmethod
        def archive(cls, conversation_id: int) -> ServiceResult[Conversation]:
            with cls.atomic():
                conversation = Conversation.objects.select_for_update().filter(
                    id=conversation_id
                ).first()
                if conversation is None:
                    return ServiceResult.failure(
                        "Conversation not found",
                        error_code="CONVERSATION_NOT_FOUND",
                    )
                ...
            return ServiceResult.success(conversation)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service operation.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Human-readable error message if failed
        error_code: Machine-readable error code for client handling

    Example:
        result = MessageService.edit_message(message_id, user_id, content)
        if not result:
            print(f"Error: {result.error} ({result.error_code})")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result carrying ``data``."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
        )

    def to_response(self) -> dict[str, Any]:
        """
        Convert to the API response shape.

        Failures always carry ``success: False`` and an ``error`` message;
        the code is added when present.
        """
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        return response

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for stateless service classes.

    Services expose classmethods only, return ServiceResult for expected
    failures and raise for unexpected ones.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named ``<module>.<ServiceClass>`` for easy filtering."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Run the enclosed block in a database transaction.

        Precondition checks and the writes they guard belong in the same
        block so that a rejected request leaves no partial state behind.
        """
        with transaction.atomic():
            yield

    @classmethod
    def on_commit(cls, func: Callable[[], Any]) -> None:
        """Defer ``func`` until the surrounding transaction commits."""
        transaction.on_commit(func)
