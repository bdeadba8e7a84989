"""
Unit tests for studiocrm/logging_config.py.

configure_logging: idempotency, dir creation, level, handler type.
log_call: entry/exit logging, WARNING for rejected input, ERROR for failures,
return value pass-through, re-raise.
"""

import logging
import logging.handlers
import os
from unittest.mock import MagicMock, patch

import pytest

from studiocrm.engine.lifecycle import InvalidTransitionError
from studiocrm.logging_config import configure_logging, log_call
from studiocrm.models import ContractStatus


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _clear_studiocrm_logger():
    """Close and remove all handlers from the studiocrm logger."""
    logger = logging.getLogger("studiocrm")
    for h in logger.handlers[:]:
        h.close()
        logger.removeHandler(h)
    logger.setLevel(logging.NOTSET)


def _log_paths(log_dir):
    return (
        patch("studiocrm.logging_config._LOG_DIR", log_dir),
        patch("studiocrm.logging_config._LOG_FILE", log_dir / "studiocrm.log"),
    )


@pytest.fixture
def mock_logger():
    logger = MagicMock()
    with patch("studiocrm.logging_config.logging") as mock_logging:
        mock_logging.getLogger.return_value = logger
        yield logger


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------

class TestConfigureLogging:

    def setup_method(self):
        _clear_studiocrm_logger()

    def teardown_method(self):
        _clear_studiocrm_logger()

    def test_returns_studiocrm_logger(self, tmp_path):
        dir_patch, file_patch = _log_paths(tmp_path)
        with dir_patch, file_patch:
            result = configure_logging()
        assert isinstance(result, logging.Logger)
        assert result.name == "studiocrm"

    def test_creates_nested_log_dir(self, tmp_path):
        log_dir = tmp_path / "var" / "logs"
        dir_patch, file_patch = _log_paths(log_dir)
        with dir_patch, file_patch:
            configure_logging()
        assert log_dir.exists()

    def test_adds_rotating_file_handler(self, tmp_path):
        dir_patch, file_patch = _log_paths(tmp_path)
        with dir_patch, file_patch:
            configure_logging()
        handlers = logging.getLogger("studiocrm").handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.handlers.RotatingFileHandler)
        assert handlers[0].maxBytes == 5 * 1024 * 1024
        assert handlers[0].backupCount == 3

    def test_idempotent_does_not_add_duplicate_handlers(self, tmp_path):
        dir_patch, file_patch = _log_paths(tmp_path)
        with dir_patch, file_patch:
            configure_logging()
            configure_logging()
        assert len(logging.getLogger("studiocrm").handlers) == 1

    def test_service_loggers_write_to_the_file(self, tmp_path):
        dir_patch, file_patch = _log_paths(tmp_path)
        with dir_patch, file_patch:
            configure_logging()
        logging.getLogger("studiocrm.engine.contracts").info("Contract ID 7: signed → in_progress")
        for h in logging.getLogger("studiocrm").handlers:
            h.flush()
        text = (tmp_path / "studiocrm.log").read_text(encoding="utf-8")
        assert "| INFO     | Contract ID 7: signed → in_progress" in text

    def test_default_level_is_info(self, tmp_path):
        env = {k: v for k, v in os.environ.items() if k != "LOG_LEVEL"}
        dir_patch, file_patch = _log_paths(tmp_path)
        with patch.dict(os.environ, env, clear=True), dir_patch, file_patch:
            configure_logging()
        assert logging.getLogger("studiocrm").level == logging.INFO

    @pytest.mark.parametrize("name,level", [("DEBUG", logging.DEBUG), ("warning", logging.WARNING)])
    def test_respects_log_level(self, tmp_path, name, level):
        dir_patch, file_patch = _log_paths(tmp_path)
        with patch.dict(os.environ, {"LOG_LEVEL": name}), dir_patch, file_patch:
            configure_logging()
        assert logging.getLogger("studiocrm").level == level

    def test_invalid_log_level_falls_back_to_info(self, tmp_path):
        dir_patch, file_patch = _log_paths(tmp_path)
        with patch.dict(os.environ, {"LOG_LEVEL": "BOGUS"}), dir_patch, file_patch:
            configure_logging()
        assert logging.getLogger("studiocrm").level == logging.INFO


# ---------------------------------------------------------------------------
# log_call decorator
# ---------------------------------------------------------------------------

class TestLogCall:

    def test_passes_return_value_through(self):
        @log_call
        def window(days):
            return days * 2

        assert window(30) == 60

    def test_preserves_function_name(self):
        @log_call
        def contracts_status():
            pass

        assert contracts_status.__name__ == "contracts_status"

    def test_logs_call_with_args_on_entry(self, mock_logger):
        @log_call
        def contracts_status(contract_id, new_status=None):
            pass

        contracts_status(7, new_status="editing")

        msg = mock_logger.debug.call_args[0][0]
        assert msg.startswith("CALL contracts_status")
        assert "7" in msg
        assert "new_status='editing'" in msg

    def test_no_args_shows_em_dash(self, mock_logger):
        @log_call
        def reminders():
            pass

        reminders()
        assert "—" in mock_logger.debug.call_args[0][0]

    def test_logs_ok_with_timing(self, mock_logger):
        @log_call
        def deliveries():
            pass

        deliveries()

        mock_logger.info.assert_called_once()
        msg = mock_logger.info.call_args[0][0]
        assert "OK" in msg and "deliveries" in msg and "ms" in msg

    def test_invalid_transition_logged_as_rejected_warning(self, mock_logger):
        @log_call
        def contracts_status():
            raise InvalidTransitionError(ContractStatus.DRAFT, ContractStatus.DELIVERED)

        with pytest.raises(InvalidTransitionError):
            contracts_status()

        mock_logger.warning.assert_called_once()
        mock_logger.error.assert_not_called()
        msg = mock_logger.warning.call_args[0][0]
        assert "REJECTED contracts_status" in msg
        assert "InvalidTransitionError: Cannot transition from draft to delivered" in msg

    def test_other_errors_logged_as_fail(self, mock_logger):
        @log_call
        def init_db():
            raise RuntimeError("connection refused")

        with pytest.raises(RuntimeError, match="connection refused"):
            init_db()

        mock_logger.error.assert_called_once()
        msg = mock_logger.error.call_args[0][0]
        assert "FAIL init_db" in msg
        assert "RuntimeError: connection refused" in msg
        assert "ms" in msg

    def test_does_not_log_ok_on_failure(self, mock_logger):
        @log_call
        def boom():
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            boom()

        mock_logger.info.assert_not_called()
