"""
Structured results for fallible operations.

Network and storage calls in bundlesync return a Result instead of raising so
that one failing resource never aborts its siblings. Exceptions are kept for
programmer errors and the CLI boundary (see Result.unwrap).
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from bundlesync.exceptions import BundleSyncError

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """Outcome of an operation that may fail."""

    success: bool
    """Whether the operation succeeded"""

    data: Optional[T] = None
    """Payload of the operation (may also be set on failure for partial data)"""

    error_message: str = ""
    """Human-readable failure reason (empty on success)"""

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "Result[T]":
        return cls(success=True, data=data)

    @classmethod
    def err(cls, error_message: str, data: Optional[T] = None) -> "Result[T]":
        return cls(success=False, data=data, error_message=error_message)

    def unwrap(self) -> T:
        """
        Return the payload of a successful result.

        Raises:
            BundleSyncError: If the result is a failure.
        """
        if not self.success:
            raise BundleSyncError(self.error_message or "operation failed")
        return self.data  # type: ignore[return-value]
