"""Tests for logging setup."""

import logging

import pytest

from utils.logger import ROOT_LOGGER_NAME, get_logger, setup_logging


@pytest.fixture
def root_logger():
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    yield logger
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()


def console_handler(logger):
    return next(h for h in logger.handlers if not isinstance(h, logging.FileHandler))


def test_creates_log_file_and_handlers(tmp_path, root_logger):
    log_file = setup_logging(tmp_path)

    assert log_file.parent == tmp_path
    assert log_file.name.startswith('geoenrich_')
    assert log_file.exists()
    assert len(root_logger.handlers) == 2
    assert console_handler(root_logger).level == logging.INFO


def test_verbose_console(tmp_path, root_logger):
    setup_logging(tmp_path, verbose=True)
    assert console_handler(root_logger).level == logging.DEBUG


def test_repeated_setup_does_not_duplicate_handlers(tmp_path, root_logger):
    setup_logging(tmp_path)
    setup_logging(tmp_path)
    assert len(root_logger.handlers) == 2


def test_module_loggers_are_children(tmp_path, root_logger):
    log_file = setup_logging(tmp_path)
    get_logger('core.layer_query').debug('leg finished')

    for handler in root_logger.handlers:
        handler.flush()
    assert get_logger('core.layer_query').name == 'geoenrich.core.layer_query'
    assert 'leg finished' in log_file.read_text(encoding='utf-8')
