"""Tests for process logging setup in wasmhttp.host.bootstrap."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from wasmhttp.host.bootstrap import ROOT_LOGGER_NAME, configure_logging


def close_handlers(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.close()


class TestConfigureLogging:
    """Tests for configure_logging()."""

    @pytest.mark.parametrize(
        "verbosity,level",
        [(0, logging.WARNING), (1, logging.INFO), (2, logging.DEBUG)],
    )
    def test_verbosity_selects_level(self, verbosity: int, level: int) -> None:
        logger = configure_logging(verbosity)

        assert logger.name == ROOT_LOGGER_NAME
        assert logger.level == level
        assert [h.level for h in logger.handlers] == [level]

    def test_console_handler_writes_to_stderr(self, capsys) -> None:
        logger = configure_logging(0)

        logging.getLogger("wasmhttp.host.http").warning("port busy")

        err = capsys.readouterr().err
        assert "[WARNING] wasmhttp.host.http: port busy" in err
        assert not logger.propagate

    def test_level_override_wins_over_verbosity(self) -> None:
        logger = configure_logging(0, level_override="DEBUG")

        assert logger.level == logging.DEBUG
        assert logger.handlers[0].level == logging.DEBUG

    def test_reconfigure_replaces_handlers(self) -> None:
        configure_logging(0)
        logger = configure_logging(2)

        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG

    def test_log_file_gets_rotating_handler(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "host.log"
        logger = configure_logging(0, log_file=log_file)
        try:
            file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
            assert len(file_handlers) == 1
            handler = file_handlers[0]
            assert handler.maxBytes == 5 * 1024 * 1024
            assert handler.backupCount == 3
            assert handler.level == logging.INFO
            # file needs INFO even though the console only shows warnings
            assert logger.level == logging.INFO

            logging.getLogger("wasmhttp.host.runtime").info("guest started")
            logging.getLogger("wasmhttp.host.runtime").debug("not recorded")
            handler.flush()

            content = log_file.read_text(encoding="utf-8")
            assert "[INFO] wasmhttp.host.runtime: guest started" in content
            assert "not recorded" not in content
        finally:
            close_handlers(logger)
