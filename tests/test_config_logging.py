"""
Tests for configuration and structured logging
"""

import json
import logging

import pytest

from lending_core import config as config_module
from lending_core.config import LendingConfig, get_config, reload_config
from lending_core.logging_config import JSONFormatter, get_logger, log_action, setup_logging


class TestLendingConfig:
    """Test environment-based configuration"""

    def test_defaults(self):
        config = LendingConfig()

        assert config.storage_backend == "memory"
        assert config.log_format == "json"
        assert config.late_fee_amount == "0.00"
        assert config.sweep_max_workers == 4
        assert config.enable_audit_logging

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LENDING_LATE_FEE_AMOUNT", "7.50")
        monkeypatch.setenv("LENDING_SWEEP_OPEN_ENDED_ONLY", "true")
        monkeypatch.setenv("LENDING_API_PORT", "9100")

        config = LendingConfig()
        assert config.late_fee_amount == "7.50"
        assert config.sweep_open_ended_only is True
        assert config.api_port == 9100

    def test_reload_config(self, monkeypatch):
        original = config_module.config
        monkeypatch.setenv("LENDING_LATE_FEE_GRACE_DAYS", "5")
        try:
            reloaded = reload_config()
            assert reloaded.late_fee_grace_days == 5
            assert get_config() is reloaded
        finally:
            config_module.config = original


class TestJSONFormatter:
    """Test structured log records"""

    def test_structured_fields(self):
        record = logging.LogRecord("lending.loans", logging.INFO, __file__, 1,
                                   "Interest accrued", (), None)
        record.action = "accrue_interest"
        record.resource = "loan:L1"
        record.extra = {"new_interest": "20.00"}

        entry = json.loads(JSONFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "lending.loans"
        assert entry["message"] == "Interest accrued"
        assert entry["action"] == "accrue_interest"
        assert entry["resource"] == "loan:L1"
        assert entry["extra"] == {"new_interest": "20.00"}
        assert "timestamp" in entry

    def test_none_fields_dropped(self):
        record = logging.LogRecord("lending", logging.WARNING, __file__, 1, "plain", (), None)
        entry = json.loads(JSONFormatter().format(record))
        assert "action" not in entry
        assert "extra" not in entry


class TestLogging:
    """Test logger setup and log_action"""

    def test_log_action_emits_json(self, capsys):
        logger = setup_logging("INFO", "lending_test_json")
        log_action(logger, "info", "Loan payment applied", action="make_payment",
                   resource="loan:L1", extra={"amount": "160.00"})

        entry = json.loads(capsys.readouterr().err.strip())
        assert entry["action"] == "make_payment"
        assert entry["extra"]["amount"] == "160.00"

    def test_log_action_respects_level(self, capsys):
        logger = setup_logging("WARNING", "lending_test_level")
        log_action(logger, "info", "should not appear")
        assert capsys.readouterr().err == ""

    def test_text_format(self, capsys):
        logger = setup_logging("INFO", "lending_test_text", log_format="text")
        logger.info("plain message")
        assert "plain message" in capsys.readouterr().err

    def test_log_file(self, tmp_path):
        path = tmp_path / "lending.log"
        logger = setup_logging("INFO", "lending_test_file", log_file=str(path))
        log_action(logger, "error", "Interest sweep failed for loan", action="interest_sweep")
        for handler in logger.handlers:
            handler.flush()

        entry = json.loads(path.read_text().strip())
        assert entry["level"] == "ERROR"

    def test_setup_is_idempotent(self):
        setup_logging("INFO", "lending_test_twice")
        logger = setup_logging("INFO", "lending_test_twice")
        assert len(logger.handlers) == 1
        assert get_logger("lending_test_twice") is logger
