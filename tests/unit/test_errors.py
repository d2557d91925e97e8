"""
Unit tests for the error hierarchy.
"""

import pytest

from dbaas.snapship.errors import (
    ConfigurationError,
    LocalResourceError,
    SnapshipError,
    SnapshotError,
    TransportError,
)


class TestErrors:
    """Tests for snapship error types."""

    @pytest.mark.parametrize(
        "error, code",
        [
            (SnapshipError("boom"), "SNAPSHIP_ERROR"),
            (ConfigurationError("bad", field_name="port"), "CONFIGURATION_ERROR"),
            (SnapshotError("locked", path="/tmp/x"), "SNAPSHOT_ERROR"),
            (TransportError("refused"), "TRANSPORT_ERROR"),
            (LocalResourceError("gone", path="/tmp/x"), "LOCAL_RESOURCE_ERROR"),
        ],
    )
    def test_codes(self, error, code):
        assert isinstance(error, SnapshipError)
        assert error.code == code

    def test_snapshot_error_message(self):
        error = SnapshotError("database disk image is malformed", path="/data/app.db")
        assert str(error) == "Snapshot failed: database disk image is malformed"
        assert error.details == {"reason": "database disk image is malformed", "path": "/data/app.db"}

    def test_transport_error_details(self):
        error = TransportError(
            "Upload failed after 3 attempts",
            url="ftp://h:21/d/f.sqlite",
            attempts=3,
            last_error="TimeoutError: timed out",
        )
        assert error.details["attempts"] == 3
        assert error.details["last_error"] == "TimeoutError: timed out"

    def test_errors_carry_no_retry_policy(self):
        """Retry decisions belong to the transport client, not the error types."""
        error = TransportError("refused", url="ftp://h/f", attempts=1)
        assert set(vars(error)) == {"message", "code", "details", "url", "attempts", "last_error"}
