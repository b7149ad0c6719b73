import logging
from pathlib import Path
from typing import Union


class CustomFormatter(logging.Formatter):
    grey = "\x1b[38;21m"
    yellow = "\x1b[33;21m"
    red = "\x1b[31;21m"
    bold_red = "\x1b[31;1m"
    white = "\x1b[37m"
    reset = "\x1b[0m"
    lineformat = "%(asctime)s - %(levelname)s - (%(filename)s:%(lineno)d) %(message)s "

    FORMATS = {
        logging.DEBUG: grey + lineformat + reset,
        logging.INFO: white + lineformat + reset,
        logging.WARNING: yellow + lineformat + reset,
        logging.ERROR: red + lineformat + reset,
        logging.CRITICAL: bold_red + lineformat + reset,
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno)
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


def create_logger(
    log_name: str = "signal2nwb",
    log_file: Union[str, Path, None] = None,
    level: int = logging.INFO,
    log_message: str = "Starting Logging",
):
    """Attach a coloured console handler, and optionally a file handler,
    to the named logger.

    Args:
        log_name (str): logger name. Defaults to "signal2nwb".
        log_file (Union[str, Path, None]): file to log to as well. Defaults to None (console only).
        level (int): logging level for the logger and its handlers.
        log_message (str): first message written once the handlers are in place.

    Returns:
        logging.Logger: the configured logger
    """
    Logger = logging.getLogger(log_name)
    Logger.setLevel(level)
    # calling twice from the same process must not duplicate output
    for handler in list(Logger.handlers):
        Logger.removeHandler(handler)
        handler.close()

    logging_sh = logging.StreamHandler()
    logging_sh.setLevel(level)
    logging_sh.setFormatter(CustomFormatter())
    Logger.addHandler(logging_sh)

    if log_file is not None:
        filename = Path(log_file)
        filename.parent.mkdir(parents=True, exist_ok=True)
        logging_fh = logging.FileHandler(filename)
        logging_fh.setLevel(level)
        log_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s  (%(filename)s:%(lineno)d) - %(message)s "
        )
        logging_fh.setFormatter(log_formatter)
        Logger.addHandler(logging_fh)
    Logger.info(log_message)
    return Logger
