import logging
import sys

LOGGER_NAME = "ecs_bluegreen"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _below_warning(record: logging.LogRecord) -> bool:
    return record.levelno < logging.WARNING


def setup_logging(log_level_str: str = "INFO", stream=None, error_stream=None) -> logging.Logger:
    """
    Configures the package logger.

    Progress lines go to stdout, warnings and errors to stderr. Existing
    handlers are removed first so the function can be called again once the
    final log level is known.

    Args:
        log_level_str: Level name such as 'DEBUG' or 'INFO'.
        stream: Output stream for progress lines, stdout by default.
        error_stream: Output stream for warnings and errors, stderr by default.

    Returns:
        The configured package logger.
    """
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    logger.propagate = False

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.addFilter(_below_warning)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    error_handler = logging.StreamHandler(error_stream or sys.stderr)
    error_handler.setLevel(max(log_level, logging.WARNING))
    error_handler.setFormatter(formatter)
    logger.addHandler(error_handler)

    # SDK debug output drowns the deployment progress
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logger.debug(f"Logging configured at level: {log_level_str.upper()}")
    return logger
