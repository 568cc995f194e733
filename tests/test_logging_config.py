"""
Tests for structured logging and configuration
"""

import io
import json
import logging

from loan_ledger.config import LedgerConfig, get_config, reload_config
from loan_ledger.logging_config import JSONFormatter, log_action, setup_logging


class TestJSONFormatter:
    """Test JSON log records"""

    def setup_method(self):
        self.stream = io.StringIO()
        self.logger = logging.getLogger("loan_ledger.tests.formatter")
        self.logger.handlers = []
        handler = logging.StreamHandler(self.stream)
        handler.setFormatter(JSONFormatter())
        self.logger.addHandler(handler)
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

    def records(self):
        return [json.loads(line) for line in self.stream.getvalue().splitlines()]

    def test_plain_message(self):
        """Test the basic fields of a record"""
        self.logger.info("Loan created")

        record = self.records()[0]
        assert record["level"] == "INFO"
        assert record["logger"] == "loan_ledger.tests.formatter"
        assert record["message"] == "Loan created"
        assert "action" not in record
        assert "timestamp" in record

    def test_log_action_fields(self):
        """Test structured action fields are emitted"""
        log_action(self.logger, "info", "Payment applied",
                   action="loan.payment", resource="loan", loan_id="loan-1",
                   extra={"amount": "112.00"})

        record = self.records()[0]
        assert record["action"] == "loan.payment"
        assert record["resource"] == "loan"
        assert record["loan_id"] == "loan-1"
        assert record["extra"] == {"amount": "112.00"}

    def test_log_action_respects_level(self):
        """Test disabled levels are skipped"""
        self.logger.setLevel(logging.WARNING)
        log_action(self.logger, "info", "ignored", action="loan.create")
        assert self.stream.getvalue() == ""

    def test_loan_id_from_extra_kwarg(self):
        """Test loan_id passed through logging's extra lands in the record"""
        self.logger.error("Error fetching loan", extra={"loan_id": "loan-7"})
        assert self.records()[0]["loan_id"] == "loan-7"


class TestSetupLogging:
    """Test logger configuration"""

    def test_text_format_to_file(self, tmp_path):
        """Test plain text output to a log file"""
        log_file = tmp_path / "ledger.log"
        logger = setup_logging(level="DEBUG", logger_name="loan_ledger.tests.file",
                               log_format="text", log_file=str(log_file))

        logger.debug("hello")
        for handler in logger.handlers:
            handler.flush()

        content = log_file.read_text()
        assert "DEBUG loan_ledger.tests.file: hello" in content
        for handler in logger.handlers:
            handler.close()

    def test_no_duplicate_handlers(self):
        """Test repeated setup replaces the handler"""
        setup_logging(logger_name="loan_ledger.tests.dup")
        logger = setup_logging(logger_name="loan_ledger.tests.dup")
        assert len(logger.handlers) == 1
        assert logger.propagate is False


class TestConfig:
    """Test environment-driven settings"""

    def test_defaults(self):
        """Test built-in defaults"""
        settings = LedgerConfig()
        assert settings.api_port == 8090
        assert settings.default_late_fee_rate == "0.05"
        assert settings.loan_number_prefix == "LOAN"
        assert settings.enable_capital_tracking is True

    def test_env_prefix(self, monkeypatch):
        """Test LEDGER_* variables override defaults"""
        monkeypatch.setenv("LEDGER_DATABASE_URL", "memory://")
        monkeypatch.setenv("LEDGER_TIMEZONE", "America/Mexico_City")
        monkeypatch.setenv("LEDGER_ENABLE_CAPITAL_TRACKING", "false")

        settings = LedgerConfig()

        assert settings.database_url == "memory://"
        assert settings.timezone == "America/Mexico_City"
        assert settings.enable_capital_tracking is False

    def test_reload(self, monkeypatch):
        """Test reload_config swaps the global instance"""
        original = get_config()
        monkeypatch.setenv("LEDGER_LOAN_NUMBER_PREFIX", "MC")
        try:
            assert reload_config().loan_number_prefix == "MC"
            assert get_config().loan_number_prefix == "MC"
        finally:
            monkeypatch.delenv("LEDGER_LOAN_NUMBER_PREFIX")
            reload_config()
        assert get_config() is not original
