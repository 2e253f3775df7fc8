# layervault_export/logging_setup.py
from __future__ import annotations

import logging
import logging.config

LOGGER_NAME = "layervault_export"


class DefaultContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "org_id"):
            record.org_id = "-"
        if not hasattr(record, "entity"):
            record.entity = "-"
        return True


def setup_logging(verbosity: int = 1) -> None:
    """
    Configure the exporter's logger.
    - WARNING at 0, INFO at 1, DEBUG when verbosity >= 2
    - Every line carries org_id and entity so a run can be grepped per type.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    fmt = (
        "%(asctime)s %(levelname)s "
        "org=%(org_id)s entity=%(entity)s "
        "%(message)s"
    )

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"std": {"format": fmt}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "std",
                "level": level,
                "filters": ["default_context"]
            }
        },
        "loggers": {
            LOGGER_NAME: {"handlers": ["console"], "level": level, "propagate": False},
            # module-level loggers (logging.getLogger(__name__)) in the packages
            "export": {"handlers": ["console"], "level": level, "propagate": False},
            "utils": {"handlers": ["console"], "level": level, "propagate": False},
        },
        "filters": {
            "default_context": {
                "()": "logging_setup.DefaultContextFilter"
            }
        },
    })


class _Adapter(logging.LoggerAdapter):
    """LoggerAdapter that keeps org_id/entity on every record without colliding with LogRecord fields."""

    _RESERVED = {
        "name","msg","args","levelname","levelno","pathname","filename","module","lineno","funcName",
        "created","asctime","msecs","relativeCreated","thread","threadName","processName","process",
        "exc_info","exc_text","stack_info","stacklevel","message","taskName"
    }

    def process(self, msg: str, kwargs):
        extra = dict(self.extra)
        user_extra = kwargs.get("extra") or {}
        for k, v in user_extra.items():
            key = k if k not in self._RESERVED else f"meta_{k}"
            if key not in extra:
                extra[key] = v
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(*, entity: str, org_id: object = "-") -> logging.LoggerAdapter:
    """
    Create a logger bound to an entity type and the organization being exported.
    Usage:
        log = get_logger(entity="revisions", org_id="42")
        log.info("queued asset", extra={"url": url})
    """
    base = logging.getLogger(LOGGER_NAME)
    return _Adapter(base, extra={"entity": entity, "org_id": org_id})
