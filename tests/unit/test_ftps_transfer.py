"""
Unit tests for the FTPS transfer primitive.

Tests cover:
- TLS context policy (verify on/off, CA file errors)
- Protocol sequence: AUTH TLS, login, PROT P, directory creation, STOR
- Failure mapping to TransferStatus
"""

import ftplib
import io
import logging
import ssl
from unittest.mock import MagicMock

import pytest

from dbaas.snapship.config import EndpointConfig, TransferConfig
from dbaas.snapship.errors import ConfigurationError
from dbaas.snapship.transfer import ftps
from dbaas.snapship.transfer.base import ProgressAborted, TransferRequest
from dbaas.snapship.transfer.ftps import FtpsTransfer, build_ssl_context, describe_error


def make_ftp_mock():
    """Mock FTP_TLS instance with realistic replies."""
    ftp = MagicMock()
    ftp.connect.return_value = "220 Service ready"
    ftp.auth.return_value = "234 AUTH TLS OK."
    ftp.login.return_value = "230 Login successful."
    ftp.prot_p.return_value = "200 PROT now Private."
    ftp.cwd.return_value = "250 OK"
    ftp.quit.return_value = "221 Goodbye."

    def storbinary(cmd, fp, blocksize=8192, callback=None):
        while True:
            block = fp.read(blocksize)
            if not block:
                break
            if callback:
                callback(block)
        return "226 Transfer complete."

    ftp.storbinary.side_effect = storbinary
    return ftp


@pytest.fixture
def ftp(monkeypatch):
    """Patch ftplib.FTP_TLS as seen by the ftps module."""
    instance = make_ftp_mock()
    cls = MagicMock(return_value=instance)
    monkeypatch.setattr(ftps.ftplib, "FTP_TLS", cls)
    instance.cls = cls
    return instance


@pytest.fixture
def endpoint():
    return EndpointConfig(host="ftp.example.com", port=2121, username="user", password="secret")


def make_request(remote_dir="backups/daily", total=10):
    return TransferRequest(
        url=f"ftp://ftp.example.com:2121/{remote_dir}/db.sqlite",
        remote_dir=remote_dir,
        filename="db.sqlite",
        total_bytes=total,
    )


class TestSslContext:
    """Tests for build_ssl_context."""

    def test_verification_on_by_default(self):
        context = build_ssl_context(TransferConfig())
        assert context.verify_mode == ssl.CERT_REQUIRED
        assert context.check_hostname is True

    def test_verification_off_still_builds_tls_context(self):
        context = build_ssl_context(TransferConfig(verify_tls=False))
        assert isinstance(context, ssl.SSLContext)
        assert context.verify_mode == ssl.CERT_NONE
        assert context.check_hostname is False

    def test_unreadable_ca_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            build_ssl_context(TransferConfig(ca_file=str(tmp_path / "missing.pem")))
        assert exc_info.value.field_name == "ca_file"


class TestFtpsTransfer:
    """Tests for FtpsTransfer.perform."""

    def test_upload_sequence(self, ftp, endpoint):
        transfer = FtpsTransfer(endpoint, TransferConfig(timeout_seconds=12, block_size=4))
        responses = []
        progress = []

        status = transfer.perform(
            make_request(), io.BytesIO(b"0123456789"), responses.append, lambda s, t: progress.append((s, t))
        )

        assert status.ok
        assert status.detail == "226 Transfer complete."
        ftp.cls.assert_called_once_with(context=transfer.context, timeout=12)
        ftp.connect.assert_called_once_with("ftp.example.com", 2121)
        ftp.auth.assert_called_once()
        ftp.login.assert_called_once_with("user", "secret")
        ftp.prot_p.assert_called_once()
        assert [c.args[0] for c in ftp.cwd.call_args_list] == ["backups", "daily"]
        assert ftp.storbinary.call_args.args[0] == "STOR db.sqlite"
        assert progress == [(4, 10), (8, 10), (10, 10)]
        assert "220 Service ready" in responses
        assert "226 Transfer complete." in responses
        ftp.close.assert_called_once()

    def test_encryption_negotiated_before_login(self, ftp, endpoint):
        FtpsTransfer(endpoint, TransferConfig()).perform(make_request(), io.BytesIO(b"x"), lambda _: None)

        names = [c[0] for c in ftp.method_calls if c[0] in ("auth", "login", "prot_p", "storbinary")]
        assert names == ["auth", "login", "prot_p", "storbinary"]

    def test_missing_remote_directories_are_created(self, ftp, endpoint):
        ftp.cwd.side_effect = [ftplib.error_perm("550 No such directory"), "250 OK", "250 OK"]

        status = FtpsTransfer(endpoint, TransferConfig()).perform(
            make_request(), io.BytesIO(b"x"), lambda _: None
        )

        assert status.ok
        ftp.mkd.assert_called_once_with("backups")

    def test_login_directory_when_remote_dir_empty(self, ftp, endpoint):
        FtpsTransfer(endpoint, TransferConfig()).perform(
            make_request(remote_dir=""), io.BytesIO(b"x"), lambda _: None
        )
        ftp.cwd.assert_not_called()

    @pytest.mark.parametrize(
        "error",
        [
            ConnectionRefusedError(111, "Connection refused"),
            TimeoutError("timed out"),
            ftplib.error_perm("530 Login incorrect."),
            ssl.SSLError("certificate verify failed"),
            EOFError(),
        ],
    )
    def test_failures_become_status(self, ftp, endpoint, error):
        ftp.connect.side_effect = error

        status = FtpsTransfer(endpoint, TransferConfig()).perform(
            make_request(), io.BytesIO(b"x"), lambda _: None
        )

        assert not status.ok
        assert status.detail.startswith(type(error).__name__)
        ftp.close.assert_called_once()

    def test_progress_abort_fails_attempt(self, ftp, endpoint):
        def abort(sent, total):
            raise ProgressAborted("display gone")

        status = FtpsTransfer(endpoint, TransferConfig()).perform(
            make_request(), io.BytesIO(b"x"), lambda _: None, abort
        )

        assert not status.ok
        assert "display gone" in status.detail

    def test_quit_failure_after_store_is_success(self, ftp, endpoint):
        ftp.quit.side_effect = EOFError()

        status = FtpsTransfer(endpoint, TransferConfig()).perform(
            make_request(), io.BytesIO(b"x"), lambda _: None
        )

        assert status.ok

    def test_verbose_enables_debug_output(self, ftp, endpoint):
        FtpsTransfer(endpoint, TransferConfig(verbose=True)).perform(
            make_request(), io.BytesIO(b"x"), lambda _: None
        )
        ftp.set_debuglevel.assert_called_once_with(2)

    def test_disabled_verification_is_logged(self, endpoint, caplog):
        with caplog.at_level(logging.WARNING):
            FtpsTransfer(endpoint, TransferConfig(verify_tls=False))

        assert any("TLS verification disabled" in r.getMessage() for r in caplog.records)


def test_describe_error_without_message():
    assert describe_error(EOFError()) == "EOFError"
    assert describe_error(TimeoutError("timed out")) == "TimeoutError: timed out"
