"""Exception types for record store errors.

Every error raised by the store carries the offending identifiers in a
``context`` dict so that a failing test points straight at the record or
argument that caused it.
"""

from __future__ import annotations

from typing import Any


class StoreException(Exception):
    """Base class for record store errors.

    Attributes:
        message: Human-readable description of the failure.
        context: Dict of identifiers involved (collection, gid, job id...).
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable description of the failure.
            context: Optional dict of additional context.
        """
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with context.

        Returns:
            Formatted error message string.
        """
        parts = [self.message]

        if self.context:
            parts.append("Context:")
            for key, value in self.context.items():
                parts.append(f"  {key}: {value}")

        return "\n".join(parts)


class InvalidArgumentError(StoreException, ValueError):
    """Raised when a caller passes an argument the store cannot accept.

    Covers unknown collection names, unsupported hash algorithms and
    store configuration that fails validation.
    """


class PageNotFoundError(StoreException, LookupError):
    """Raised when refetch or reparse targets a page that is not stored.

    Attributes:
        job_id: The job id that was looked up.
        gid: The page gid that was looked up.
    """

    def __init__(self, job_id: Any, gid: Any) -> None:
        """Initialize the exception.

        Args:
            job_id: The job id that was looked up.
            gid: The page gid that was looked up.
        """
        self.job_id = job_id
        self.gid = gid
        super().__init__(
            f'Page not found with job_id "{job_id}" gid "{gid}"',
            {"job_id": job_id, "gid": gid},
        )
