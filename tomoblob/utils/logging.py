"""
Logging setup for TomoBlob command line tools
"""

import logging
import sys
from pathlib import Path
from typing import Union

DATE_TIME_FMT = "%Y-%m-%d %H:%M:%S"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d | %(message)s"


def initialize_logger(
    log_name: str = "tomoblob",
    directory: Union[str, Path] = ".",
    filename: Union[str, Path, bool] = False,
    level: int = logging.INFO,
    print_log: bool = True,
) -> logging.Logger:
    """Initialize the package logger with stdout and file handlers.

    Parameters
    ----------
    log_name : str, optional
        Name of the logging object, by default "tomoblob"
    directory : Union[str, Path], optional
        Folder the log file is written to, by default "."
    filename : Union[str, Path, bool], optional
        The log filename. If False, no log file is written
    level : int, optional
        The log level, by default logging.INFO
    print_log : bool, optional
        Whether to print the log to the screen, by default True

    Returns
    -------
    logging.Logger
        A logger with the TomoBlob formatter and handlers.
    """
    log = logging.getLogger(log_name)
    log.setLevel(level)
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_TIME_FMT)

    if print_log:
        screen_handler = logging.StreamHandler(stream=sys.stdout)
        screen_handler.setLevel(level)
        screen_handler.setFormatter(formatter)
        log.addHandler(screen_handler)

    if filename:
        path = Path(directory) / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        log.addHandler(file_handler)

    log.propagate = False
    return log
