"""Console and log output format selection."""

import os
from enum import Enum
from typing import Literal, Mapping, Optional


class OutputFormat(str, Enum):
    """Console output modes for progress and summaries."""
    AUTO = "auto"
    RICH = "rich"
    PLAIN = "plain"
    JSON = "json"


LogFormat = Literal["json", "console", "plain"]

ENV_VAR_NAME = "CONSOLE_OUTPUT_FORMAT"
LOG_LEVEL_ENV_VAR = "BROWSER_SMOKE_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "warning"


def get_output_format(
    cli_override: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> OutputFormat:
    """
    Get the output format with priority: CLI parameter > Environment variable > Default (auto).

    Unknown values are ignored and fall through to the next source.
    """
    env = os.environ if environ is None else environ

    if cli_override:
        try:
            return OutputFormat(cli_override.lower())
        except ValueError:
            pass

    env_value = env.get(ENV_VAR_NAME)
    if env_value:
        try:
            return OutputFormat(env_value.lower())
        except ValueError:
            pass

    return OutputFormat.AUTO


def get_log_format(output_format: OutputFormat) -> LogFormat:
    """
    Map the console output format to a log format:
    - auto/rich -> console (with colors)
    - plain -> plain (no colors, simple text)
    - json -> json
    """
    if output_format == OutputFormat.JSON:
        return "json"
    if output_format == OutputFormat.PLAIN:
        return "plain"
    return "console"


def get_log_level(
    cli_override: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    env = os.environ if environ is None else environ
    return (cli_override or env.get(LOG_LEVEL_ENV_VAR) or DEFAULT_LOG_LEVEL).lower()
