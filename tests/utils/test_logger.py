import logging
from logging.handlers import RotatingFileHandler

from modbot.util import logger as logger_module
from modbot.util.logger import ColorFormatter, PromptToolkitHandler, get_log_filepath, get_logger, handle_exception, setup_logger


class DummyStream:
    def isatty(self):
        return True


def test_get_logger_has_console_and_rotating_file_handlers():
    logger = get_logger("test_logger")

    assert isinstance(logger, logging.Logger)
    assert any(isinstance(h, PromptToolkitHandler) for h in logger.handlers)
    assert any(isinstance(h, RotatingFileHandler) for h in logger.handlers)
    assert logger.propagate is False


def test_setup_logger_idempotent():
    logger1 = setup_logger("test_logger_idem")
    logger2 = setup_logger("test_logger_idem")

    assert logger1 is logger2
    assert len(logger1.handlers) == 2


def test_color_formatter_applies_color():
    formatter = ColorFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("test", logging.ERROR, "", 0, "error occurred", None, None)

    formatted = formatter.format(record)

    assert formatted.startswith("\033[31m") and "error occurred" in formatted


def test_should_use_color_true(monkeypatch):
    monkeypatch.setattr("sys.stderr", DummyStream())

    assert logger_module.should_use_color() is True


def test_log_filepath_is_stable_for_the_session():
    assert get_log_filepath() == get_log_filepath()
    assert get_log_filepath().parent.exists()


def test_noisy_libraries_are_silenced():
    assert logging.getLogger("aiohttp").level == logging.ERROR
    assert logging.getLogger("uvicorn.access").level == logging.ERROR


def test_handle_exception_logs_error(monkeypatch):
    recorded = []

    class RecordingLogger:
        def error(self, message, exc_info=None):
            recorded.append((message, exc_info[0]))

    monkeypatch.setattr(logger_module, "get_logger", lambda name: RecordingLogger())

    class DummyException(Exception):
        pass

    try:
        raise DummyException("fail")
    except DummyException as exc:
        handle_exception(DummyException, exc, exc.__traceback__)

    assert recorded == [("Uncaught exception", DummyException)]
