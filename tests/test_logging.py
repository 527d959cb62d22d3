import logging

import pytest

from house_leads_api.app.core.logging_config import ACCESS_LOGGER, access_log_level, setup_logging


@pytest.fixture
def access_logger():
    logger = logging.getLogger(ACCESS_LOGGER)
    previous = logger.level
    yield logger
    logger.setLevel(previous)


def test_access_log_level():
    assert access_log_level(logging.DEBUG) == logging.DEBUG
    assert access_log_level(logging.INFO) == logging.WARNING
    assert access_log_level(logging.ERROR) == logging.ERROR


def test_setup_logging_quiets_access_log(access_logger):
    setup_logging("info")
    assert access_logger.level == logging.WARNING
    setup_logging("DEBUG")
    assert access_logger.level == logging.DEBUG
    setup_logging("nonsense")
    assert access_logger.level == logging.WARNING
