from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from types import TracebackType
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from clusterplan.config import Settings

LOGGER_NAME = "clusterplan"

_LEVEL_SYMBOLS: Dict[int, str] = {
    logging.DEBUG: "(?)",
    logging.INFO: "(*)",
    logging.WARNING: "(!)",
    logging.ERROR: "(x)",
    logging.CRITICAL: "(X)",
}


def _headline(symbol: str, event: str, fields: Dict[str, Any]) -> str:
    if event != "operation.step":
        return f"{symbol} {event}"
    step_name = fields.pop("step", "step")
    child_name = fields.pop("child", None)
    if child_name:
        return f"{symbol} >> {step_name} >> {child_name}"
    return f"{symbol} >> {step_name}"


class _PlanFormatter(logging.Formatter):
    """Pipe separated lines: timestamp, level, category, event, message, fields."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        symbol = getattr(record, "symbol", _LEVEL_SYMBOLS.get(record.levelno, "(?)"))
        event = getattr(record, "event", "")
        fields = dict(getattr(record, "fields", {}))
        message = record.getMessage()

        parts: List[str] = [
            created.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3],
            f"{record.levelname:<8}",
            str(getattr(record, "category", record.name)),
        ]
        if event:
            parts.append(_headline(symbol, event, fields))
            if message:
                parts.append(message)
        elif message:
            parts.append(f"{symbol} {message}")
        parts.extend(f"{key}: {value}" for key, value in fields.items())

        line = " | ".join(parts)
        if record.exc_info:
            return f"{line}\n{self.formatException(record.exc_info)}"
        return line


@dataclass
class Operation:
    """A named unit of work logged as start, steps and an outcome line.

    Usable with both ``with`` and ``async with``. Exceptions whose type is in
    ``expected`` are logged once as ``operation.rejected`` at warning level,
    anything else as ``operation.error`` with a traceback. The exception is
    never suppressed.
    """

    logger: "BoundLogger"
    name: str
    message: str
    fields: Dict[str, Any] = field(default_factory=dict)
    expected: Tuple[type[BaseException], ...] = ()
    _started: float = 0.0

    def _elapsed_ms(self) -> float:
        return round((perf_counter() - self._started) * 1000, 1)

    def __enter__(self) -> "Operation":
        self._started = perf_counter()
        self.logger.info("operation.start", self.message, operation=self.name, **self.fields)
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if exc_type is None:
            self.logger.info(
                "operation.complete", "Completed", operation=self.name, duration_ms=self._elapsed_ms()
            )
            return
        outcome = {
            "operation": self.name,
            "duration_ms": self._elapsed_ms(),
            "error_type": exc_type.__name__,
        }
        if issubclass(exc_type, self.expected):
            self.logger.warning("operation.rejected", str(exc), **outcome)
        else:
            self.logger.exception("operation.error", "Failed", **outcome)

    async def __aenter__(self) -> "Operation":
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.__exit__(exc_type, exc, tb)

    def step(self, name: str, message: str, **fields: Any) -> None:
        self.logger.info("operation.step", message, operation=self.name, step=name, **fields)

    def child(self, parent_step: str, child_name: str, message: str, **fields: Any) -> None:
        self.logger.info(
            "operation.step",
            message,
            operation=self.name,
            step=parent_step,
            child=child_name,
            **fields,
        )


class BoundLogger:
    def __init__(self, category: str) -> None:
        self._category = category

    def operation(
        self,
        name: str,
        message: str,
        *,
        expected: Tuple[type[BaseException], ...] = (),
        **fields: Any,
    ) -> Operation:
        return Operation(self, name=name, message=message, fields=fields, expected=expected)

    def debug(self, event: str, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, event, message, fields)

    def info(self, event: str, message: str, **fields: Any) -> None:
        self._log(logging.INFO, event, message, fields)

    def warning(self, event: str, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, event, message, fields)

    def error(self, event: str, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, event, message, fields)

    def exception(self, event: str, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, event, message, fields, exc_info=True)

    def _log(
        self,
        severity: int,
        event: str,
        message: str,
        fields: Dict[str, Any],
        exc_info: Any = None,
    ) -> None:
        logging.getLogger(LOGGER_NAME).log(
            severity,
            message,
            extra={
                "category": self._category,
                "event": event,
                "symbol": _LEVEL_SYMBOLS.get(severity, "(?)"),
                "fields": fields,
            },
            exc_info=exc_info,
        )


def configure_logging(log_level: str, log_file: Optional[str]) -> None:
    formatter = _PlanFormatter()
    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    logger.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False


def configure_from_settings(settings: "Settings") -> None:
    configure_logging(settings.log_level, settings.log_file or None)


def get_logger(category: str) -> BoundLogger:
    return BoundLogger(category)
