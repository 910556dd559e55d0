from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from pathlib import Path

import structlog
from structlog.processors import CallsiteParameter
from structlog.typing import EventDict, Processor

from catalog_gateway.app.config import AppSettings
from catalog_gateway.app.telemetry import TELEMETRY_LOGGER_NAME

ROOT_LOGGER_NAME = "catalog_gateway"
LOG_FILE_NAME = "catalog-gateway.log"
TELEMETRY_LOG_FILE_NAME = "catalog-gateway-telemetry.log"
# uvicorn runs in-process; its records share the gateway handlers.
SERVER_LOGGER_NAMES = ("uvicorn", "uvicorn.access")


def configure_application_logging(settings: AppSettings) -> Path:
    """
    Route gateway and server logs to the console and a JSON lines file.

    The console honours `log_level`; the file always keeps debug records so
    page fetches and filter decisions can be traced after the fact. Telemetry
    events go to their own file and never reach the console.
    """
    log_dir = settings.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console_handler = logging.StreamHandler(stream=sys.stdout)
    console_handler.setLevel(_resolve_log_level(settings.log_level))
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
            ],
        )
    )
    shared = [console_handler, _json_file_handler(log_file, logging.DEBUG)]

    _install(ROOT_LOGGER_NAME, shared, level=logging.DEBUG)
    for name in SERVER_LOGGER_NAMES:
        _install(name, shared, level=logging.INFO)
    _install(
        TELEMETRY_LOGGER_NAME,
        [_json_file_handler(log_dir / TELEMETRY_LOG_FILE_NAME, logging.INFO)],
        level=logging.INFO,
    )

    logging.getLogger(ROOT_LOGGER_NAME).info(
        "logging configured console_level=%s path=%s",
        settings.log_level.upper(),
        log_file,
    )
    return log_file


def _install(name: str, handlers: Sequence[logging.Handler], *, level: int) -> None:
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    logger.setLevel(level)
    logger.propagate = False
    for handler in handlers:
        logger.addHandler(handler)


def _json_file_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[
                structlog.processors.CallsiteParameterAdder(
                    [
                        CallsiteParameter.MODULE,
                        CallsiteParameter.FUNC_NAME,
                        CallsiteParameter.LINENO,
                    ]
                ),
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(sort_keys=True),
            ],
        )
    )
    return handler


def _pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        _add_component,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def _add_component(_logger: object, _method_name: str, event_dict: EventDict) -> EventDict:
    name = event_dict.get("logger")
    if isinstance(name, str):
        prefix = f"{ROOT_LOGGER_NAME}."
        event_dict["component"] = name[len(prefix) :] if name.startswith(prefix) else name
    return event_dict


def _resolve_log_level(raw_level: str) -> int:
    return logging.getLevelNamesMapping().get(raw_level.strip().upper(), logging.INFO)
