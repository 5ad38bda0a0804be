import logging.config
import sys
from typing import List

# 외부 라이브러리 로거는 필요 이상으로 시끄럽지 않게
QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore")


def _logger(handlers: List[str], level: str) -> dict:
    return {"handlers": handlers, "level": level, "propagate": False}


def setup_logging(log_level: str = "INFO", debug: bool = False):
    """
    애플리케이션 로깅 설정

    - stdout: 모든 로그 (한 줄 포맷)
    - stderr: ERROR 이상 (파일/라인 포함 상세 포맷)
    - debug=True 이면 SQLAlchemy SQL 로그를 INFO 로 출력
    """
    log_level = log_level.upper()

    loggers = {
        "": {"handlers": ["console"], "level": log_level},
        "squadapi": _logger(["console", "error_console"], log_level),
        "uvicorn.error": _logger(["console", "error_console"], log_level),
        "uvicorn.access": _logger(["console"], log_level),
    }
    for name in QUIET_LOGGERS:
        loggers[name] = _logger(["console"], "WARNING")
    if debug:
        loggers["sqlalchemy.engine"]["level"] = "INFO"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "line": {
                    "format": "%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s",
                },
                "detailed": {
                    "format": "%(asctime)s | %(levelname)-8s | %(name)s | %(pathname)s:%(lineno)d\n%(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "line",
                    "stream": sys.stdout,
                },
                "error_console": {
                    "class": "logging.StreamHandler",
                    "formatter": "detailed",
                    "stream": sys.stderr,
                    "level": "ERROR",
                },
            },
            "loggers": loggers,
        }
    )
