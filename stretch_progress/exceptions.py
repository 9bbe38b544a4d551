"""
Standardized exception hierarchy for the progression engine
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class ProgressEngineError(Exception):
    """
    Base exception for all progression engine errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise ProgressEngineError(
            message="Failed to save user progress",
            user_id="local",
            operation="claim_challenge",
            context={"challenge_id": "daily_stretch_20240101_1234"}
        )
    """

    log_level = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "Something went wrong. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # Avoid conflict with logging's 'message' field
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(
                self.log_level,
                f"{self.__class__.__name__}: {self.message}",
                extra=log_data,
                exc_info=self.cause,
            )
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for result payloads"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Storage Errors
# ==========================================

class StoreError(ProgressEngineError):
    """
    Base class for persistent store errors
    """
    pass


class StoreUnavailableError(StoreError):
    """Store read or write failed or timed out"""

    def __init__(self, message: str = "Progress store unavailable", **kwargs):
        super().__init__(
            message=message,
            user_message="We couldn't reach your saved progress. Please try again in a moment.",
            **kwargs
        )


class VersionConflictError(StoreError):
    """
    Stored record changed between read and write

    Raised by a version-checked save. Callers retry the whole
    read-modify-write from the latest stored record.
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str = "Progress was modified concurrently",
        expected_version: Optional[int] = None,
        stored_version: Optional[int] = None,
        **kwargs
    ):
        self.expected_version = expected_version
        self.stored_version = stored_version
        super().__init__(
            message=message,
            user_message="Your progress was updated elsewhere. Please try again.",
            context={"expected_version": expected_version, "stored_version": stored_version},
            **kwargs
        )


# ==========================================
# Operation Errors
# ==========================================

class InvalidOperationError(ProgressEngineError):
    """
    Requested operation is not allowed in the current state

    Examples:
    - Claiming a challenge that does not exist or is already claimed
    - Applying a flex save with no credits left
    """

    log_level = logging.WARNING

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            user_message=message,
            **kwargs
        )


class CatalogError(ProgressEngineError):
    """Static catalog entry is malformed (unknown challenge type, missing reward)"""

    log_level = logging.WARNING

    def __init__(self, message: str, entry_id: Optional[str] = None, **kwargs):
        self.entry_id = entry_id
        super().__init__(
            message=message,
            context={"entry_id": entry_id},
            **kwargs
        )
