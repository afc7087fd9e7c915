"""
Tests for environment settings, structured logging and error helpers.
"""

import json
import logging

import pytest
from pythonjsonlogger.json import JsonFormatter

from aakit.core import config, types
from aakit.core.exceptions import (
    ConfigurationError,
    ExecutionFailedError,
    ExecutionTimeoutError,
    UnsupportedForProviderError,
    get_error_context,
    is_recoverable_error,
)
from aakit.core.logging_config import CustomJsonFormatter, setup_logging


class TestSettings:
    """Environment-driven settings"""

    def test_int_setting_default_and_override(self, monkeypatch):
        monkeypatch.delenv("AAKIT_TEST_INT", raising=False)
        assert config.get_int_setting("AAKIT_TEST_INT", 5) == 5
        monkeypatch.setenv("AAKIT_TEST_INT", "12")
        assert config.get_int_setting("AAKIT_TEST_INT", 5) == 12

    def test_int_setting_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("AAKIT_TEST_INT", "twelve")
        with pytest.raises(ConfigurationError) as exc_info:
            config.get_int_setting("AAKIT_TEST_INT", 5)
        assert exc_info.value.stage == "config"

    def test_float_setting_rejects_negative(self, monkeypatch):
        monkeypatch.setenv("AAKIT_TEST_FLOAT", "-1")
        with pytest.raises(ConfigurationError):
            config.get_float_setting("AAKIT_TEST_FLOAT", 1.0)

    def test_extra_p256_chains(self, monkeypatch):
        monkeypatch.setenv("AAKIT_EXTRA_P256_CHAIN_IDS", "999, 1000,bogus")
        chains = config.p256_precompile_chain_ids()
        assert {999, 1000, 8453} <= chains
        assert 1 not in chains

    def test_unknown_default_provider(self, monkeypatch):
        monkeypatch.setattr(config, "DEFAULT_PROVIDER", "argent")
        with pytest.raises(ConfigurationError):
            types.default_provider()

    def test_default_provider(self, monkeypatch):
        monkeypatch.setattr(config, "DEFAULT_PROVIDER", "kernel")
        assert types.default_provider() is types.ProviderKind.KERNEL


class TestJsonLogging:
    """Structured JSON log output"""

    def test_formatter_adds_context(self):
        formatter = CustomJsonFormatter(environment="test", service_name="aakit")
        record = logging.LogRecord(
            name="aakit.deployment",
            level=logging.INFO,
            pathname=__file__,
            lineno=10,
            msg="Deploying account",
            args=(),
            exc_info=None,
        )
        record.event = "deploy.start"
        payload = json.loads(formatter.format(record))
        assert payload["message"] == "Deploying account"
        assert payload["environment"] == "test"
        assert payload["service"] == "aakit"
        assert payload["level"] == "info"
        assert payload["event"] == "deploy.start"
        assert payload["timestamp"]
        assert payload["source"]["line"] == 10

    def test_formatter_builds_on_json_module(self):
        assert issubclass(CustomJsonFormatter, JsonFormatter)

    def test_setup_logging_writes_json_file(self, tmp_path):
        log_file = tmp_path / "logs" / "aakit.json"
        logger = setup_logging(
            name="aakit.test_file", log_file=str(log_file), level="DEBUG", enable_console=False
        )
        logger.info("hello", extra={"event": "test.hello"})
        for handler in logger.handlers:
            handler.flush()
        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["event"] == "test.hello"
        assert logger.level == logging.DEBUG

    def test_setup_logging_rejects_unknown_level(self):
        with pytest.raises(ValueError):
            setup_logging(name="aakit.test_level", level="LOUD", enable_console=False, enable_file=False)


class TestErrorHelpers:
    """Error classification and log context"""

    def test_timeout_is_recoverable(self):
        assert is_recoverable_error(ExecutionTimeoutError("slow", timeout=3))
        assert not is_recoverable_error(ExecutionFailedError("reverted", reference="0xabc"))
        assert is_recoverable_error(ConnectionError())
        assert not is_recoverable_error(KeyError("x"))

    def test_error_context(self):
        context = get_error_context(ExecutionFailedError("reverted", reference="0xabc", details={"stage": "deploy"}))
        assert context["error_type"] == "ExecutionFailedError"
        assert context["reference"] == "0xabc"
        assert context["details"] == {"stage": "deploy"}

    def test_provider_error_details(self):
        exc = UnsupportedForProviderError("EIP-7702", "safe")
        assert exc.provider == "safe"
        assert "EIP-7702" in str(exc)
