from pathlib import Path
import logging

from carrier_routing.config.logging_config import (
    get_logger,
    default_log_path_for_input,
)


def test_default_log_path_for_input():
    assert default_log_path_for_input(
        "/x/y/orders.xlsx") == Path("/x/y/orders.log")
    assert default_log_path_for_input("orders.csv") == Path("orders.log")


def test_get_logger_idempotent_no_duplicate_handlers(tmp_path):
    log_path = tmp_path / "run.log"
    logger = get_logger("cr.test", level="DEBUG",
                        log_file=log_path, console=False)
    # Same params again: no extra handlers
    logger2 = get_logger("cr.test", level="DEBUG",
                         log_file=log_path, console=False)

    assert logger is logger2
    assert len(logger.handlers) == 1  # just file handler


def test_get_logger_adds_console_handler():
    lg = logging.getLogger("cr.console")
    for h in list(lg.handlers):
        lg.removeHandler(h)

    logger = get_logger("cr.console", level="INFO",
                        console=True, log_file=None)

    shs = [h for h in logger.handlers if isinstance(h, logging.StreamHandler)]
    assert len(shs) == 1
    assert logger.propagate is False


def test_get_logger_writes_to_file(tmp_path):
    log_file = tmp_path / "logs" / "app.log"
    logger = get_logger("cr.file", level="INFO",
                        log_file=log_file, console=False)
    logger.info("routed %s via %s", "A-1", "discount")

    assert log_file.exists()
    content = log_file.read_text(encoding="utf-8")
    assert "routed A-1 via discount" in content
    assert "| INFO | cr.file |" in content


def test_get_logger_respects_level_env(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    log_file = tmp_path / "lvl.log"
    logger = get_logger("cr.level.env", log_file=log_file, console=False)

    logger.info("should NOT appear")
    logger.error("should appear")

    text = log_file.read_text(encoding="utf-8")
    assert "should appear" in text
    assert "should NOT appear" not in text


def test_unknown_level_name_falls_back_to_info(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    logger = get_logger("cr.level.bogus", level="chatty", console=False)
    assert logger.level == logging.INFO


def test_multiple_calls_different_targets_do_not_duplicate(tmp_path):
    """
    Console first, then a file added later: exactly two handlers.
    """
    name = "cr.multi"
    lg = logging.getLogger(name)
    for h in list(lg.handlers):
        lg.removeHandler(h)

    lg1 = get_logger(name, level="INFO", console=True, log_file=None)
    lg2 = get_logger(name, level="INFO", console=True,
                     log_file=tmp_path / "x.log")

    assert lg1 is lg2
    assert len(lg2.handlers) == 2
