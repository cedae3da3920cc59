import json
import logging
import os
import sys

DEFAULT_MCP_LOG_FILE = "/tmp/jira-sync-mcp.log"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured debug output.

    Produces one JSON object per log record with fields: ts, level, logger, msg.
    Exception info is included as an "exc" field when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_formatter(debug_format: str, with_name: bool) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=_DATE_FORMAT)
    fmt = (
        "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
        if with_name
        else "[%(asctime)s] [%(levelname)s] %(message)s"
    )
    return logging.Formatter(fmt, datefmt=_DATE_FORMAT)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
) -> None:
    """
    Configure logging based on execution mode.

    Args:
        mode: "mcp" for file logging (never stdout), "cli" for stderr logging.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Custom log file path (overrides LOG_FILE env var).
        debug_format: "text" (default) or "json" for structured output.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Default: WARNING for MCP mode, INFO for CLI mode.
        LOG_FILE: Custom log file path for MCP mode.
                  Default: /tmp/jira-sync-mcp.log
    """
    default_level = "WARNING" if mode == "mcp" else "INFO"
    env_level = os.getenv("LOG_LEVEL", default_level).upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    if mode == "mcp":
        # stdio transport owns stdout, so MCP mode only ever logs to a file
        final_log_file = log_file or os.getenv(
            "LOG_FILE", DEFAULT_MCP_LOG_FILE
        )
        file_handler = logging.FileHandler(final_log_file, mode="a")
        file_handler.setFormatter(_make_formatter(debug_format, True))
        logging.basicConfig(level=log_level, handlers=[file_handler])
    else:
        handlers: list[logging.Handler] = []
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(_make_formatter(debug_format, False))
        handlers.append(stderr_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setFormatter(_make_formatter(debug_format, True))
            handlers.append(file_handler)

        logging.basicConfig(level=log_level, handlers=handlers)

    # Silence third-party libs unless DEBUG
    if log_level != logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("requests").setLevel(logging.WARNING)
