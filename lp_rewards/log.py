import logging
import os

import colorlog

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def setup_logging(level="INFO", file_path=None, name="lp_rewards"):
    cli_handler = colorlog.StreamHandler()
    cli_handler.setFormatter(
        colorlog.ColoredFormatter("%(log_color)s%(levelname)s:%(name)s:%(message)s", log_colors=LOG_COLORS)
    )

    logger = colorlog.getLogger(name)
    logger.handlers.clear()
    logger.addHandler(cli_handler)

    if file_path:
        # Ensure the log directory exists
        log_directory = os.path.dirname(file_path)
        if log_directory and not os.path.exists(log_directory):
            os.makedirs(log_directory)
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(logging.Formatter("%(levelname)s:%(name)s:%(asctime)s:%(message)s"))
        logger.addHandler(file_handler)

    logger.setLevel(level)
    return logger
