"""
Tests for configuration loading and structured logging
"""

import io
import json
import logging

from shxdw_bank import config as config_module
from shxdw_bank.config import ShxdwConfig, get_config, reload_config
from shxdw_bank.logging_config import JSONFormatter, log_action, setup_logging


class TestConfig:

    def test_defaults(self):
        config = ShxdwConfig()
        assert config.account_number_prefix == "SHX"
        assert config.account_number_max_attempts == 10
        assert config.dashboard_refresh_seconds == 0.5
        assert config.dashboard_top_n == 8
        assert config.bootstrap_admin_username == "admin"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("SHXDW_ACCOUNT_NUMBER_PREFIX", "TST")
        monkeypatch.setenv("SHXDW_DASHBOARD_TOP_N", "3")
        original = config_module.config
        try:
            config = reload_config()
            assert config.account_number_prefix == "TST"
            assert config.dashboard_top_n == 3
            assert get_config() is config
        finally:
            config_module.config = original


class TestLogging:

    def make_logger(self, name):
        logger = logging.getLogger(name)
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JSONFormatter())
        logger.handlers = [handler]
        logger.setLevel(logging.INFO)
        logger.propagate = False
        return logger, stream

    def test_log_action_emits_structured_json(self):
        logger, stream = self.make_logger("shxdw.test.structured")

        log_action(logger, "info", "deposit committed", user_id="olga",
                   action="deposit", resource="account:SHX-12345-678",
                   extra={"amount": "10"})

        entry = json.loads(stream.getvalue())
        assert entry["level"] == "INFO"
        assert entry["message"] == "deposit committed"
        assert entry["user_id"] == "olga"
        assert entry["action"] == "deposit"
        assert entry["resource"] == "account:SHX-12345-678"
        assert entry["extra"] == {"amount": "10"}

    def test_disabled_level_is_skipped(self):
        logger, stream = self.make_logger("shxdw.test.quiet")
        log_action(logger, "debug", "not shown")
        assert stream.getvalue() == ""

    def test_setup_logging_text_format(self, tmp_path):
        log_file = tmp_path / "shxdw.log"
        logger = setup_logging("DEBUG", "text", logger_name="shxdw.test.text", log_file=str(log_file))
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()

        assert "INFO [shxdw.test.text] hello" in log_file.read_text()
        assert not logger.propagate
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
