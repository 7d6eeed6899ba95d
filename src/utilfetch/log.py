"""Leveled logging adapter with key-value metadata."""

from __future__ import annotations

import logging
import typing as t

# Keyword arguments understood by logging.Logger.log itself
_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


class LeveledLogger(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter accepting structured fields as keyword arguments.

    ``log.debug("retrying", attempt=2, delay=0.5)`` attaches ``attempt`` and
    ``delay`` to the emitted record, and lists them under ``record.fields``.
    Any object with ``debug/info/warning/error`` methods can stand in for it.
    """

    def __init__(self, logger: logging.Logger, **context: t.Any) -> None:
        super().__init__(logger, context)

    def process(
        self,
        msg: t.Any,
        kwargs: t.MutableMapping[str, t.Any],
    ) -> tuple[t.Any, t.MutableMapping[str, t.Any]]:
        fields = {k: kwargs.pop(k) for k in list(kwargs) if k not in _LOGGING_KWARGS}
        merged = {**(self.extra or {}), **fields}
        extra = dict(kwargs.get("extra") or {})
        extra.update(merged)
        extra["fields"] = merged
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **context: t.Any) -> LeveledLogger:
        """Return a new adapter with additional fixed fields."""
        return LeveledLogger(self.logger, **{**(self.extra or {}), **context})
