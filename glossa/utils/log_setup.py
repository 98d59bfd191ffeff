"""
Logging setup for the Glossa server and agent processes.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

GLOSSA_MODULES = [
    'glossa.agents',
    'glossa.api',
    'glossa.communication',
    'glossa.llm',
    'glossa.memory',
    'glossa.workflows',
]


def default_log_file(outputs_dir: str = "./outputs") -> Path:
    """``<outputs>/logs/server_log_<timestamp>.log``"""
    stamp = datetime.now().strftime("%Y%m%d%H%M%S")
    return Path(outputs_dir) / "logs" / f"server_log_{stamp}.log"


def setup_logging(debug: bool = False, log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure the root logger for console output and, optionally, a log file.

    Args:
        debug: Log at DEBUG instead of INFO
        log_file: Also write logs to this file

    Returns:
        The root logger
    """
    level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(console)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(file_handler)

    # Module loggers inherit the root level
    for module_name in GLOSSA_MODULES:
        logging.getLogger(module_name).setLevel(logging.NOTSET)

    # websocket frame logs drown out the conversation at DEBUG
    logging.getLogger('websockets').setLevel(logging.INFO)
    logging.getLogger('httpx').setLevel(logging.WARNING)

    return root_logger
