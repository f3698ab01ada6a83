"""Console output and log format selection shared by the CLI and reporters."""

import os
from enum import Enum
from typing import Literal


class OutputFormat(str, Enum):
    """Console output modes for run progress and summaries."""
    AUTO = "auto"
    RICH = "rich"
    PLAIN = "plain"
    JSON = "json"


LogFormat = Literal["json", "console", "plain"]

ENV_VAR_NAME = "CONSOLE_OUTPUT_FORMAT"


def get_output_format(cli_override: str | None = None) -> OutputFormat:
    """
    Get the output format with priority: CLI parameter > Environment variable > Default (auto).

    Args:
        cli_override: Optional CLI parameter value that takes precedence

    Returns:
        OutputFormat enum value
    """
    if cli_override:
        try:
            return OutputFormat(cli_override.lower())
        except ValueError:
            pass

    env_value = os.environ.get(ENV_VAR_NAME)
    if env_value:
        try:
            return OutputFormat(env_value.lower())
        except ValueError:
            pass

    return OutputFormat.AUTO


def log_format_for(output_format: OutputFormat) -> LogFormat:
    """
    Map the console output format onto a structlog renderer.

    - auto/rich -> console (with colors)
    - plain -> plain (no colors, simple text)
    - json -> json
    """
    if output_format == OutputFormat.JSON:
        return "json"
    if output_format == OutputFormat.PLAIN:
        return "plain"
    return "console"
