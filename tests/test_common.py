"""
Tests for the common module: exceptions, decorators, logging.
"""

import json
import logging
import time

import httpx
import pytest


class TestExceptions:
    """Tests for exception hierarchy."""

    def test_pi_apps_error_basic(self):
        from common.exceptions import PiAppsError

        error = PiAppsError("Something failed")
        assert str(error) == "[PiAppsError] Something failed"
        assert error.recoverable is True

    def test_pi_apps_error_with_details(self):
        from common.exceptions import PiAppsError

        error = PiAppsError(
            "Operation failed",
            code="OP_FAILED",
            details={"field": "value"},
            recoverable=False,
        )

        assert error.code == "OP_FAILED"
        assert error.details == {"field": "value"}
        assert error.recoverable is False
        assert "details:" in str(error)

    def test_pi_apps_error_to_dict(self):
        from common.exceptions import PiAppsError

        error = PiAppsError("Test", code="TEST", details={"key": 1})
        d = error.to_dict()

        assert d["error"] == "TEST"
        assert d["message"] == "Test"
        assert d["details"]["key"] == 1

    def test_app_not_found_error(self):
        from common.exceptions import AppNotFoundError, AppError

        error = AppNotFoundError("Zoom")
        assert isinstance(error, AppError)
        assert "Zoom" in str(error)
        assert error.code == "APP_NOT_FOUND"

    def test_app_action_error_carries_diagnosis(self):
        from common.exceptions import AppActionError

        error = AppActionError(
            "Zoom", "install", 1,
            log_path="/tmp/install-fail-Zoom.log",
            error_type="internet",
            captions=["Check your Internet connection"],
        )
        assert error.message == "Failed to install Zoom (exit code 1)"
        assert error.log_path.endswith("install-fail-Zoom.log")
        assert error.error_type == "internet"
        assert error.captions == ["Check your Internet connection"]

    def test_batch_action_error_lists_apps(self):
        from common.exceptions import BatchActionError

        error = BatchActionError("install", ["A", "B"])
        assert error.failed_apps == ["A", "B"]
        assert "A, B" in error.message

    def test_invalid_app_structure_lists_missing(self):
        from common.exceptions import InvalidAppStructureError, AppImportError

        error = InvalidAppStructureError("/tmp/app", ["description"])
        assert isinstance(error, AppImportError)
        assert error.missing == ["description"]
        assert error.code == "INVALID_APP_STRUCTURE"


class TestDecorators:
    """Tests for the store decorators."""

    def test_handle_errors_returns_default(self, tmp_path):
        from common.decorators import handle_errors

        @handle_errors(OSError, default="")
        def read_website(path):
            return path.read_text()

        assert read_website(tmp_path / "website") == ""

    def test_handle_errors_passes_through(self, tmp_path):
        from common.decorators import handle_errors

        @handle_errors(OSError, default="")
        def read_website(path):
            return path.read_text()

        (tmp_path / "website").write_text("https://zoom.us")
        assert read_website(tmp_path / "website") == "https://zoom.us"

    def test_handle_errors_reraise(self):
        from common.decorators import handle_errors

        @handle_errors(ValueError, reraise=True)
        def failing_func():
            raise ValueError("test")

        with pytest.raises(ValueError):
            failing_func()

    def test_retry_transport_errors_with_backoff(self, monkeypatch):
        from common.decorators import retry

        waits = []
        monkeypatch.setattr("time.sleep", waits.append)
        attempt_count = 0

        @retry(attempts=3, delay=1.0)
        def fetch():
            nonlocal attempt_count
            attempt_count += 1
            if attempt_count < 3:
                raise httpx.ConnectError("not yet")
            return "success"

        assert fetch() == "success"
        assert attempt_count == 3
        assert waits == [1.0, 2.0]

    def test_retry_gives_up(self, monkeypatch):
        from common.decorators import retry

        monkeypatch.setattr("time.sleep", lambda seconds: None)

        @retry(attempts=2)
        def always_fails():
            raise httpx.ReadTimeout("too slow")

        with pytest.raises(httpx.ReadTimeout):
            always_fails()

    def test_retry_ignores_other_exceptions(self):
        from common.decorators import retry

        calls = 0

        @retry(attempts=3)
        def wrong_kind():
            nonlocal calls
            calls += 1
            raise ValueError("not retried")

        with pytest.raises(ValueError):
            wrong_kind()
        assert calls == 1

    def test_timed_logs_arguments(self, caplog):
        from common.decorators import timed

        @timed
        def install(app):
            time.sleep(0.01)
            return "done"

        with caplog.at_level(logging.DEBUG, logger="common.decorators"):
            result = install("Zoom")

        assert result == "done"
        assert "install(Zoom) took" in caplog.text


class TestLogging:
    """Tests for logging configuration."""

    def test_setup_logging_creates_handlers(self):
        from common.logging_config import setup_logging

        setup_logging(level=logging.DEBUG)

        root = logging.getLogger()
        assert len(root.handlers) >= 1

    def test_setup_logging_writes_json_file(self, tmp_path):
        from common.logging_config import setup_logging

        setup_logging(level=logging.INFO, log_dir=tmp_path, json_logs=True)
        logging.getLogger("piapps.test").info("hello")
        for handler in logging.getLogger().handlers:
            handler.flush()

        line = (tmp_path / "pi-apps.log").read_text().strip().splitlines()[-1]
        record = json.loads(line)
        assert record["message"] == "hello"

    def test_get_logger_prefix(self):
        from common.logging_config import get_logger

        logger = get_logger("test_module")
        assert logger.name == "piapps.test_module"

    def test_log_context_adds_fields(self):
        from common.logging_config import LogContext

        with LogContext(app="Zoom", action="install"):
            record = logging.getLogRecordFactory()(
                "x", logging.INFO, __file__, 1, "msg", (), None
            )
        assert record.extra_data == {"app": "Zoom", "action": "install"}
