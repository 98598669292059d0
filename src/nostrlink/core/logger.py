"""
Structured logging with key=value and JSON output support.

Wraps the standard library ``logging`` module to provide structured output
in two formats: human-readable key=value pairs (default) and one JSON object
per line for log aggregators.

Values containing spaces, equals signs, or quotes are escaped and wrapped in
double quotes. Long values are truncated to a configurable maximum length,
which keeps a relay that echoes a 64 KiB event from flooding the log.

[StructuredFormatter][nostrlink.core.logger.StructuredFormatter] reads the
``structured_kv`` extra field attached by
[Logger][nostrlink.core.logger.Logger]. Installed on the root handler by
[setup_logging()][nostrlink.core.logger.setup_logging], it unifies output
from ``Logger`` and from the plain ``logging.getLogger()`` calls used in the
nips and utils layers.

Examples:
    ```python
    from nostrlink.core.logger import Logger

    logger = Logger("nostrlink.connection").bind(relay="wss://relay.damus.io")
    logger.info("connected", attempt=1)
    # Output: info nostrlink.connection connected relay=wss://relay.damus.io attempt=1
    ```
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _truncate(value: str, max_value_length: int | None) -> str:
    if max_value_length and len(value) > max_value_length:
        return value[:max_value_length] + f"...<truncated {len(value) - max_value_length} chars>"
    return value


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Args:
        kwargs: Key-value pairs to format.
        max_value_length: Maximum characters per value before truncation.
            Pass None to disable truncation.
        prefix: String prepended to the output (default: single space).

    Returns:
        Formatted string, e.g. ``' key1=value1 key2="value with spaces"'``.
        Returns an empty string if *kwargs* is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for k, v in kwargs.items():
        s = _truncate(str(v), max_value_length)
        if not s or any(c in s for c in ' ="\''):
            escaped = s.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{k}="{escaped}"')
        else:
            parts.append(f"{k}={s}")
    return prefix + " ".join(parts)


class StructuredFormatter(logging.Formatter):
    """Formats every log record as ``level name message key=value...``.

    Records without ``structured_kv`` (plain ``logging.getLogger()`` calls)
    are emitted with the same prefix for consistency.
    """

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if extra:
            base += format_kv_pairs(extra)
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


class Logger:
    """Structured logger that appends keyword arguments as extra fields.

    All public methods mirror the standard logging API with an added
    ``**kwargs`` parameter. [bind()][nostrlink.core.logger.Logger.bind]
    returns a child logger that prepends fixed fields to every record.

    Examples:
        ```python
        logger = Logger("nostrlink.pool")
        logger.info("publish_completed", accepted=3, failed=1)
        # Output: publish_completed accepted=3 failed=1
        ```
    """

    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize a structured logger.

        Args:
            name: Name passed to ``logging.getLogger``.
            json_output: If True, emit JSON objects instead of key=value pairs.
            max_value_length: Maximum characters per value before truncation.
                Defaults to 1000.
            context: Fields added to every record.
        """
        if max_value_length is None:
            max_value_length = self._DEFAULT_MAX_VALUE_LENGTH
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = max_value_length
        self._context: dict[str, Any] = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **context: Any) -> Logger:
        """Return a logger sharing this one's settings with extra fixed fields."""
        return Logger(
            self._logger.name,
            json_output=self._json_output,
            max_value_length=self._max_value_length,
            context={**self._context, **context},
        )

    def is_enabled_for(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def _format_json(self, msg: str, level: str, fields: dict[str, Any]) -> str:
        record = {
            "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
            "level": level,
            "logger": self._logger.name,
            "message": msg,
            **{k: _truncate(str(v), self._max_value_length) for k, v in fields.items()},
        }
        return json.dumps(record, default=str)

    def _make_extra(self, fields: dict[str, Any]) -> dict[str, Any]:
        if not fields:
            return {}
        return {
            "structured_kv": {
                k: _truncate(str(v), self._max_value_length) for k, v in fields.items()
            }
        }

    def _log(
        self,
        level: int,
        msg: str,
        kwargs: dict[str, Any],
        *,
        exc_info: bool = False,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = {**self._context, **kwargs}
        if self._json_output:
            level_name = logging.getLevelName(level).lower()
            self._logger.log(level, self._format_json(msg, level_name, fields), exc_info=exc_info)
        else:
            self._logger.log(level, msg, extra=self._make_extra(fields), exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log a DEBUG level message with optional key=value pairs."""
        self._log(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        """Log an INFO level message with optional key=value pairs."""
        self._log(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        """Log a WARNING level message with optional key=value pairs."""
        self._log(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        """Log an ERROR level message with optional key=value pairs."""
        self._log(logging.ERROR, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log an ERROR level message with the current traceback."""
        self._log(logging.ERROR, msg, kwargs, exc_info=True)


class LoggingConfig(BaseModel):
    """Root logging configuration.

    Attributes:
        level: Root log level.
        json_output: Emit JSON lines from [Logger][nostrlink.core.logger.Logger]
            instances created by the pool.
        max_value_length: Truncation limit for individual field values.
    """

    level: LogLevel = Field(default="INFO", description="Root log level")
    json_output: bool = Field(default=False, description="Emit JSON lines")
    max_value_length: int = Field(default=1000, ge=16, description="Max characters per field")


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Install a [StructuredFormatter][nostrlink.core.logger.StructuredFormatter] on the root logger.

    Replaces any handlers already attached to the root logger, so calling it
    twice does not duplicate output.
    """
    config = config or LoggingConfig()
    handler = logging.StreamHandler()
    if not config.json_output:
        handler.setFormatter(StructuredFormatter())
    logging.root.handlers.clear()
    logging.root.addHandler(handler)
    logging.root.setLevel(config.level)
