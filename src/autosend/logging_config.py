import logging
import logging.config
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("AUTOSEND_LOG_FILE", "/tmp/autosend.log")

# Libraries that only get to speak up for warnings and errors
QUIET_LOGGERS = ("web3", "urllib3", "httpx", "uvicorn.access")


def build_logging_config(level: str = LOG_LEVEL, log_file: str | None = LOG_FILE) -> dict:
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": sys.stdout,
        },
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": log_file,
            "mode": "a",
        }
    names = list(handlers)

    loggers = {
        "autosend": {
            "level": level,
            "handlers": names,
            "propagate": False,  # Don't pass 'autosend' logs up to the root logger
        },
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING", "handlers": names, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-6s %(name)8s:%(lineno)d %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": "WARNING", "handlers": names},
    }


def setup_logging(level: str = LOG_LEVEL, log_file: str | None = LOG_FILE):
    """ Apply the logging configuration. """
    logging.config.dictConfig(build_logging_config(level, log_file))
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
