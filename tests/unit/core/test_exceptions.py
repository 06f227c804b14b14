"""Tests for newtube.core.exceptions module."""

import pytest

from newtube.core.exceptions import (
    AcquisitionFailedError,
    CatalogWriteError,
    ConfigValidationError,
    DatabaseError,
    FetchError,
    LedgerWriteError,
    LockTimeoutError,
    MediaNotFoundError,
    NewTubeError,
    StructuralFetchError,
    TransientFetchError,
)


@pytest.mark.unit
def test_base_error_context():
    """Test base exception keeps message and context."""
    error = NewTubeError("boom", context={"video_id": "abc"})

    assert str(error) == "boom"
    assert error.context == {"video_id": "abc"}
    assert error.to_dict() == {
        "error_type": "NewTubeError",
        "message": "boom",
        "context": {"video_id": "abc"},
    }


@pytest.mark.unit
def test_with_context_chains():
    """Test with_context adds keys and returns self."""
    error = NewTubeError("boom")
    assert error.with_context(attempt=2) is error
    assert error.context == {"attempt": 2}


@pytest.mark.unit
def test_catalog_write_error():
    """Test CatalogWriteError is a database error with the video id."""
    error = CatalogWriteError("failed", video_id="abc")

    assert isinstance(error, DatabaseError)
    assert error.video_id == "abc"
    assert error.context == {"video_id": "abc", "operation": "catalog_write"}


@pytest.mark.unit
def test_ledger_write_error():
    error = LedgerWriteError("disk full", item_id="abc")
    assert error.item_id == "abc"
    assert error.context["item_id"] == "abc"


@pytest.mark.unit
def test_fetch_error_retryability():
    """Transient failures are retryable, structural ones are not."""
    transient = TransientFetchError("timeout", item_id="abc", operation="fetch_metadata")
    structural = StructuralFetchError("private video", item_id="abc")

    assert isinstance(transient, FetchError)
    assert transient.retryable is True
    assert structural.retryable is False
    assert transient.context == {"item_id": "abc", "operation": "fetch_metadata"}


@pytest.mark.unit
def test_acquisition_failed_error_attempts():
    error = AcquisitionFailedError("gave up", video_id="abc", attempts=3)
    assert error.attempts == 3
    assert error.context == {"attempts": 3, "video_id": "abc"}


@pytest.mark.unit
def test_lock_timeout_error_message():
    error = LockTimeoutError("sweep")
    assert error.key == "sweep"
    assert "sweep" in str(error)


@pytest.mark.unit
def test_media_not_found_error():
    error = MediaNotFoundError("abc", context={"location": "videos/abc"})
    assert error.video_id == "abc"
    assert error.context == {"location": "videos/abc", "video_id": "abc"}


@pytest.mark.unit
def test_config_validation_error_message():
    """Test field/reason form builds a descriptive message."""
    error = ConfigValidationError(field="database_url", reason="bad driver", value="mysql://")

    assert "database_url" in str(error)
    assert error.context["value"] == "mysql://"
    assert ConfigValidationError().args[0] == "Configuration validation failed"
