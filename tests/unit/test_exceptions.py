"""Unit tests for the exception hierarchy (stretch_progress/exceptions.py)"""
import logging

from stretch_progress.exceptions import (
    CatalogError,
    InvalidOperationError,
    ProgressEngineError,
    StoreError,
    StoreUnavailableError,
    VersionConflictError,
)


def test_base_error_context():
    """Test base error carries tracing fields"""
    error = ProgressEngineError(
        message="Failed to save user progress",
        user_id="local",
        operation="claim_challenge",
        context={"challenge_id": "daily_stretch_2024-01-03_42"},
    )

    assert error.message == "Failed to save user progress"
    assert error.user_id == "local"
    assert error.request_id
    assert error.user_message == "Something went wrong. Please try again."
    assert error.timestamp.tzinfo is not None


def test_to_dict():
    """Test serialization for result payloads"""
    payload = InvalidOperationError("Challenge not found").to_dict()

    assert payload["error"] == "InvalidOperationError"
    assert payload["message"] == "Challenge not found"
    assert payload["user_message"] == "Challenge not found"
    assert set(payload) == {"error", "message", "user_message", "request_id", "timestamp"}


def test_store_error_hierarchy():
    """Test store errors share a base class"""
    assert issubclass(StoreUnavailableError, StoreError)
    assert issubclass(VersionConflictError, StoreError)
    assert not issubclass(InvalidOperationError, StoreError)


def test_store_unavailable_defaults():
    """Test default message and user-facing text"""
    cause = OSError("disk full")
    error = StoreUnavailableError(cause=cause)

    assert error.message == "Progress store unavailable"
    assert error.cause is cause
    assert "try again" in error.user_message


def test_version_conflict_context():
    """Test versions are exposed on the error"""
    error = VersionConflictError(expected_version=3, stored_version=4)

    assert error.expected_version == 3
    assert error.stored_version == 4
    assert error.context == {"expected_version": 3, "stored_version": 4}


def test_catalog_error_entry_id():
    """Test malformed catalog entries are identified"""
    error = CatalogError("Unknown challenge type 'x'", entry_id="weird_1")
    assert error.context == {"entry_id": "weird_1"}


def test_auto_logging_levels(caplog):
    """Test errors log themselves at their class level"""
    with caplog.at_level(logging.WARNING, logger="stretch_progress.exceptions"):
        InvalidOperationError("No flex saves available")
        StoreUnavailableError()

    levels = {r.getMessage(): r.levelno for r in caplog.records}
    assert levels["InvalidOperationError: No flex saves available"] == logging.WARNING
    assert levels["StoreUnavailableError: Progress store unavailable"] == logging.ERROR
