"""Console logging for a process that supervises many cameras.

Every record carries `camera_name` and `session_id`. Per-camera components pass
both through `extra=`; records from shared code get the process defaults. Any
other extra fields are appended to the line as a JSON block.
"""

from __future__ import annotations

import json
import logging
import logging.config
import os

_PLACEHOLDER = "-"
_CONTEXT_FIELDS = ("camera_name", "session_id")
_defaults: dict[str, str] = {"camera_name": _PLACEHOLDER, "session_id": _PLACEHOLDER}

# LogRecord attributes that are never treated as user extras.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

DEFAULT_CONSOLE_FORMAT = (
    "%(asctime)s %(levelname)s [%(camera_name)s:%(session_id)s] "
    "%(module)s %(pathname)s:%(lineno)d %(message)s"
)


class _SessionContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for field in _CONTEXT_FIELDS:
            if getattr(record, field, None) in (None, ""):
                setattr(record, field, _defaults[field])
        return True


class _JsonExtraFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in _CONTEXT_FIELDS
        }
        if not extras:
            return line
        return f"{line}\n{json.dumps(extras, indent=2, default=str, sort_keys=True)}"


def set_camera_name(name: str | None) -> None:
    """Set the `camera_name` used for records that do not carry one."""
    _defaults["camera_name"] = name or _PLACEHOLDER


def configure_logging(*, log_level: str = "INFO", camera_name: str | None = None) -> None:
    """Install the console handler on the root logger.

    `CONSOLE_LOG_FORMAT` replaces the default format; it may use
    `%(camera_name)s` and `%(session_id)s`.
    """
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "session_context": {"()": "camwatch.logging_setup._SessionContextFilter"},
            },
            "formatters": {
                "default": {
                    "()": "camwatch.logging_setup._JsonExtraFormatter",
                    "format": os.getenv("CONSOLE_LOG_FORMAT", DEFAULT_CONSOLE_FORMAT),
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": str(log_level).upper(),
                    "formatter": "default",
                    "filters": ["session_context"],
                    "stream": "ext://sys.stdout",
                }
            },
            "root": {"level": "DEBUG", "handlers": ["console"]},
        }
    )

    set_camera_name(camera_name)
    logging.captureWarnings(True)

    # Model downloads and broker reconnects are noisy at INFO.
    logging.getLogger("ultralytics").setLevel(logging.WARNING)
    logging.getLogger("paho").setLevel(logging.WARNING)
