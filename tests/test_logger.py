"""Tests for logging setup and terminal sanitization."""
import logging

import pytest
import structlog

from schemadrift.utils import logger as logger_module
from schemadrift.utils.console import SafeConsole
from schemadrift.utils.logger import configure_logging, get_logger, sanitize_for_terminal


class TestSanitize:
    """Unicode icons degrade to ASCII when the terminal cannot render them."""

    def test_ascii_terminal(self):
        assert sanitize_for_terminal('users → orders ✓', utf8=False) == 'users -> orders [OK]'

    def test_utf8_terminal(self):
        assert sanitize_for_terminal('users → orders ✓', utf8=True) == 'users → orders ✓'

    def test_plain_text_untouched(self):
        assert sanitize_for_terminal('orders.userId', utf8=False) == 'orders.userId'


class TestConfigureLogging:
    """configure_logging installs a single stderr handler."""

    @pytest.fixture(autouse=True)
    def restore(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        structlog.reset_defaults()

    def test_level(self):
        configure_logging('DEBUG')
        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level_falls_back_to_warning(self):
        configure_logging('chatty')
        assert logging.getLogger().level == logging.WARNING

    def test_repeat_calls_replace_handler(self):
        configure_logging('INFO')
        configure_logging('INFO', json_format=True)
        assert len(logging.getLogger().handlers) == 1

    def test_json_output(self, capsys):
        configure_logging('INFO', json_format=True)
        get_logger('schemadrift.test').info('stage_started', stage='usage')
        err = capsys.readouterr().err
        assert '"event": "stage_started"' in err
        assert '"stage": "usage"' in err

    def test_filtered_below_level(self, capsys):
        configure_logging('ERROR')
        get_logger('schemadrift.test').warning('schema_file_skipped')
        assert 'schema_file_skipped' not in capsys.readouterr().err


class TestSafeConsole:
    """SafeConsole rewrites strings only on non-UTF-8 terminals."""

    def test_sanitizes_when_needed(self, monkeypatch):
        monkeypatch.setattr('schemadrift.utils.console.is_utf8_capable', lambda: False)
        console = SafeConsole(record=True, width=80)
        console.print('users → orders')
        assert console.export_text().strip() == 'users -> orders'

    def test_passthrough_on_utf8(self, monkeypatch):
        monkeypatch.setattr('schemadrift.utils.console.is_utf8_capable', lambda: True)
        console = SafeConsole(record=True, width=80)
        console.print('users → orders')
        assert console.export_text().strip() == 'users → orders'


def test_encoding_detection(monkeypatch):
    monkeypatch.setattr(logger_module, 'detect_terminal_encoding', lambda: 'cp1252')
    assert not logger_module.is_utf8_capable()
