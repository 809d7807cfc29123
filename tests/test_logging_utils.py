import logging

import pytest

from board_pose.logging_utils import LOG_FORMAT, NodeNameFilter, add_file_handler, setup_logger


@pytest.fixture
def node_logger(request):
    name = request.node.name
    logger = setup_logger(name)
    yield name, logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def test_setup_logger_names_logger_after_node(node_logger):
    name, logger = node_logger
    assert logger.name == f"board_pose.{name}"
    assert len(logger.handlers) == 1
    assert logger.handlers[0].formatter._fmt == LOG_FORMAT


def test_setup_logger_again_only_changes_level(node_logger):
    name, logger = node_logger
    again = setup_logger(name, "debug")
    assert again is logger
    assert len(logger.handlers) == 1
    assert logger.level == logging.DEBUG


def test_unknown_level_name_is_rejected(node_logger):
    name, _ = node_logger
    with pytest.raises(ValueError):
        setup_logger(name, "chatty")


def test_file_handler_tags_lines_with_node(node_logger, tmp_path):
    name, logger = node_logger
    log_path = tmp_path / "logs" / "node.log"

    add_file_handler(logger, name, str(log_path))
    logger.info("pose requested")
    for handler in logger.handlers:
        handler.flush()

    line = log_path.read_text().strip()
    assert f"[{name}]" in line
    assert line.endswith("pose requested")


def test_file_handler_is_added_once_per_path(node_logger, tmp_path):
    name, logger = node_logger
    log_path = str(tmp_path / "node.log")

    first = add_file_handler(logger, name, log_path)
    second = add_file_handler(logger, name, log_path)

    assert first is second
    assert len(logger.handlers) == 2


def test_filter_sets_node_attribute():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    assert NodeNameFilter("left").filter(record)
    assert record.node == "left"
