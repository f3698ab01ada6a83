"""Structured logging helpers for the e2e harness."""

from __future__ import annotations

import logging
import sys
from io import StringIO
from typing import Any

import structlog
from rich.console import Console
from rich.text import Text

from .output_config import LogFormat

LOGGER_NAME = "e2e_harness"


class RichConsoleRenderer:
    """structlog renderer printing one coloured line per event."""

    def __init__(self) -> None:
        self.level_styles = {
            "debug": "dim cyan",
            "info": "cyan",
            "warning": "yellow",
            "error": "bold red",
            "critical": "bold white on red",
        }

    def __call__(self, logger: Any, name: str, event_dict: dict[str, Any]) -> str:
        timestamp = event_dict.pop("timestamp", "")
        level = event_dict.pop("level", "info")
        event = event_dict.pop("event", "")

        text = Text()
        text.append(timestamp, style="dim white")
        text.append(" ")
        text.append(f"[{level:<8}]", style=self.level_styles.get(level, "white"))
        text.append(" ")
        text.append(event, style="bold white")

        # align key-value pairs after short event names
        padding = max(0, 32 - len(event))
        if padding > 0 and event_dict:
            text.append(" " * padding)

        items = sorted(event_dict.items())
        for i, (key, value) in enumerate(items):
            if key in ("color_message", "stack", "exception"):
                continue
            text.append(f"{key}=", style="dim white")
            text.append(str(value), style="bright_cyan")
            if i < len(items) - 1:
                text.append(" ")

        exception = event_dict.get("exception")
        if exception:
            text.append("\n")
            text.append(str(exception), style="red")

        buffer = StringIO()
        Console(file=buffer, force_terminal=True, width=200, legacy_windows=False).print(text, end="")
        return buffer.getvalue()


def configure_logging(log_level: str, log_format: LogFormat = "console") -> structlog.stdlib.BoundLogger:
    """Configure structlog for harness components and return the root harness logger."""

    normalized_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=normalized_level,
        stream=sys.stderr,
        format="%(message)s",
        force=True,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        structlog.processors.format_exc_info,
    ]

    if log_format == "console":
        processors.append(RichConsoleRenderer())
    elif log_format == "plain":
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:  # json
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(normalized_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(LOGGER_NAME)


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(LOGGER_NAME).bind(component=component)
