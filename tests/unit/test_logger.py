"""Unit tests for core logger module."""
import logging
from logging.handlers import TimedRotatingFileHandler

from simtrader.core.logger import setup_logging


class TestSetupLoggingBasics:
    def test_setup_logging_returns_logger(self):
        log = setup_logging("SIM_TEST")
        assert isinstance(log, logging.Logger)

    def test_setup_logging_default_level(self):
        log = setup_logging("SIM_DEFAULT")
        assert log.level == logging.INFO

    def test_setup_logging_debug_level(self):
        log = setup_logging("SIM_DEBUG", level="DEBUG")
        assert log.level == logging.DEBUG

    def test_mixedcase_level(self):
        log = setup_logging("SIM_MIXED", level="WaRnInG")
        assert log.level == logging.WARNING

    def test_invalid_level_defaults_to_info(self):
        log = setup_logging("SIM_INVALID", level="LOUD")
        assert log.level == logging.INFO


class TestSetupLoggingHandler:
    def test_console_handler_with_format(self):
        log = setup_logging("SIM_STREAM")
        handler = log.handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        fmt = handler.formatter._fmt
        assert "%(asctime)s" in fmt
        assert "%(name)s" in fmt
        assert "%(levelname)s" in fmt
        assert "%(message)s" in fmt

    def test_repeated_setup_doesnt_duplicate_handlers(self):
        log = setup_logging("SIM_DUP")
        count = len(log.handlers)
        log = setup_logging("SIM_DUP")
        assert len(log.handlers) == count

    def test_file_handler_created_in_log_dir(self, tmp_path):
        log_dir = tmp_path / "logs"
        log = setup_logging("SIM_FILE", log_dir=str(log_dir))
        file_handlers = [h for h in log.handlers if isinstance(h, TimedRotatingFileHandler)]
        assert len(file_handlers) == 1
        assert log_dir.is_dir()
        log.info("hello file")
        file_handlers[0].flush()
        assert "hello file" in (log_dir / "SIM_FILE.log").read_text(encoding="utf-8")
        for h in file_handlers:
            h.close()
            log.removeHandler(h)


class TestSetupLoggingFunctionality:
    def test_child_module_logger_propagates(self, caplog):
        setup_logging("simtrader_parent", level="DEBUG")
        child = logging.getLogger("simtrader_parent.execution.ledger")
        with caplog.at_level(logging.DEBUG):
            child.info("fill applied")
        assert "fill applied" in caplog.text

    def test_logger_respects_level(self, caplog):
        with caplog.at_level(logging.INFO):
            log = setup_logging("SIM_LEVEL", level="INFO")
            log.debug("Debug message")
            log.info("Info message")
        assert "Debug message" not in caplog.text
        assert "Info message" in caplog.text
