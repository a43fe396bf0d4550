"""
Tests for the error taxonomy.
"""
import asyncio

import pytest

from job_hierarchy import (
    ConfigError,
    ErrorCode,
    ErrorContext,
    HierarchyError,
    IllegalTransitionError,
    InvalidJobIdError,
    InvalidStatusError,
    JobShutdown,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    ValidationError,
    is_retryable,
)
from job_hierarchy.jobs.types import JobStatus


class TestErrorCodes:
    """Test error code enumeration."""

    def test_error_codes_are_strings(self):
        """Test that error codes are strings."""
        for code in ErrorCode:
            assert code.value.startswith("ERR_")

    def test_codes_are_unique(self):
        """Test that no two codes share a value."""
        values = [code.value for code in ErrorCode]
        assert len(values) == len(set(values))


class TestHierarchyError:
    """Test the base exception."""

    def test_str_includes_code_and_job(self):
        """Test string form."""
        error = HierarchyError("boom", context=ErrorContext(job_id="jid-1"))

        assert str(error) == "[ERR_9000] boom (job_id=jid-1)"

    def test_to_dict(self):
        """Test serialization for logs."""
        cause = RuntimeError("root cause")
        error = StoreError(
            "write failed",
            context=ErrorContext(operation="set", key="hierarchy:job:x"),
            cause=cause,
        )

        d = error.to_dict()

        assert d["error_type"] == "StoreError"
        assert d["code"] == "ERR_3000"
        assert d["retryable"] is False
        assert d["context"]["operation"] == "set"
        assert d["context"]["key"] == "hierarchy:job:x"
        assert d["cause"] == "root cause"

    def test_overrides(self):
        """Test per-instance code and retryable overrides."""
        error = HierarchyError("x", code=ErrorCode.STORE_TIMEOUT, retryable=True)

        assert error.code is ErrorCode.STORE_TIMEOUT
        assert error.retryable


class TestValidationErrors:
    """Test caller errors."""

    def test_hierarchy(self):
        """Test the class hierarchy."""
        for cls in (InvalidJobIdError, InvalidStatusError, IllegalTransitionError):
            assert issubclass(cls, ValidationError)
            assert issubclass(cls, HierarchyError)

    def test_invalid_job_id_message(self):
        """Test the offending id is reported."""
        error = InvalidJobIdError(job_id="a b")

        assert error.job_id == "a b"
        assert "'a b'" in error.message
        assert error.code is ErrorCode.INVALID_JOB_ID

    def test_invalid_status_message(self):
        """Test the offending status is reported."""
        error = InvalidStatusError(status="done")

        assert "'done'" in error.message
        assert not error.retryable

    def test_illegal_transition_message(self):
        """Test both statuses are named."""
        error = IllegalTransitionError(
            from_status=JobStatus.COMPLETE,
            to_status=JobStatus.RUNNING,
        )

        assert error.message == "Illegal status transition: complete -> running"
        assert error.from_status is JobStatus.COMPLETE


class TestStoreErrors:
    """Test infrastructure errors."""

    def test_connection_and_timeout_are_retryable(self):
        """Test retryable flags."""
        assert StoreConnectionError("down").retryable
        assert StoreTimeoutError(timeout=1.5).retryable
        assert StoreTimeoutError(timeout=1.5).timeout == 1.5
        assert not StoreError("other").retryable


class TestIsRetryable:
    """Test the is_retryable helper."""

    @pytest.mark.parametrize(
        "error,expected",
        [
            (StoreConnectionError("down"), True),
            (StoreTimeoutError(), True),
            (StoreError("bad"), False),
            (ConfigError("bad"), False),
            (InvalidStatusError(status="x"), False),
            (asyncio.TimeoutError(), True),
            (ConnectionResetError(), True),
            (ValueError(), False),
            (JobShutdown(), False),
        ],
    )
    def test_is_retryable(self, error, expected):
        """Test classification of library and builtin errors."""
        assert is_retryable(error) is expected
