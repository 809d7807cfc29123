import logging
import os
from pathlib import Path
from typing import Union

LOG_FORMAT = "%(asctime)s %(levelname)s [%(node)s] %(message)s"


class NodeNameFilter(logging.Filter):
    """Tags every record with the node that emitted it."""

    def __init__(self, node_name: str):
        super().__init__()
        self.node_name = node_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.node = self.node_name
        return True


def _attach(logger: logging.Logger, handler: logging.Handler, node_name: str) -> logging.Handler:
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(NodeNameFilter(node_name))
    logger.addHandler(handler)
    return handler


def setup_logger(node_name: str, level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Return the ``board_pose.<node_name>`` logger with a console handler.

    ``level`` is a level number or a name such as ``"debug"``. Calling again
    for the same node only changes the level.
    """
    logger = logging.getLogger(f"board_pose.{node_name}")
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    if not logger.handlers:
        _attach(logger, logging.StreamHandler(), node_name)

    return logger


def add_file_handler(logger: logging.Logger, node_name: str, log_path: str) -> logging.Handler:
    """Also write the node's log to ``log_path``, creating its directory.

    A second call for the same file returns the existing handler.
    """
    path = Path(log_path)
    target = os.path.abspath(path)
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return handler
    path.parent.mkdir(parents=True, exist_ok=True)
    return _attach(logger, logging.FileHandler(path), node_name)
