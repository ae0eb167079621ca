import logging
import sys

LOG = logging.getLogger("branch-protection")

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

# ANSI colours, same palette the shell versions of these tools used
COLORS = {
    logging.DEBUG: "\033[0;37m",
    logging.INFO: "\033[0;34m",
    SUCCESS: "\033[0;32m",
    logging.WARNING: "\033[1;33m",
    logging.ERROR: "\033[0;31m",
    logging.CRITICAL: "\033[0;31m",
}
RESET = "\033[0m"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
DATE_FORMAT = "%H:%M:%S"


class ColorFormatter(logging.Formatter):
    def format(self, record):
        line = super().format(record)
        color = COLORS.get(record.levelno)
        if not color:
            return line
        return f"{color}{line}{RESET}"


def log_success(logger: logging.Logger, msg: str, *args):
    logger.log(SUCCESS, msg, *args)


def setup_logging(debug: bool = False, stream=None) -> logging.Logger:
    stream = stream or sys.stdout
    handler = logging.StreamHandler(stream)
    use_color = hasattr(stream, "isatty") and stream.isatty()
    formatter_cls = ColorFormatter if use_color else logging.Formatter
    handler.setFormatter(formatter_cls(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))

    LOG.handlers.clear()
    LOG.addHandler(handler)
    LOG.setLevel(logging.DEBUG if debug else logging.INFO)
    return LOG
