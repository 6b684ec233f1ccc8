"""Loguru setup: colorized console output plus JSON-lines log files.

Every record carries the storefront it concerns. Pipeline stages bind
``region`` and ``page_kind`` once per page with :func:`bind_page`, and
both handlers show them: the console prints the region column, the
JSON file promotes the page keys to top-level fields so log queries can
filter by storefront without digging into the context object.

Design Rationale:
    Skipped records, blocked pages and degraded regions are logged, not
    raised, so the log stream is where partial page failures become
    visible. The log directory is checked for writability at startup;
    a pipeline that cannot report its skips must not run.
"""

import json
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from config.settings import GlobalConfig, get_config
from pricelens.exceptions import LoggingInitializationError

# Extra keys lifted out of "context" into the top level of a JSON line
PAGE_KEYS = ("region", "page_kind", "asin")

_UNSET_REGION = "--"

_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> "
    "<level>{level: <8}</level> "
    "<magenta>[{extra[region]}]</magenta> "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def _to_json_line(record: dict[str, Any]) -> str:
    """Render one loguru record as a JSON document terminated by a newline."""
    extra = {k: v for k, v in record["extra"].items() if k != "json_line"}

    document: dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "level": record["level"].name,
        "msg": record["message"],
        "logger": extra.pop("module", record["name"]),
        "at": f"{record['function']}:{record['line']}",
    }
    for key in PAGE_KEYS:
        value = extra.pop(key, None)
        if value is not None and value != _UNSET_REGION:
            document[key] = value
    if extra:
        document["context"] = extra

    error = record["exception"]
    if error is not None and error.type is not None:
        document["error"] = {"type": error.type.__name__, "detail": str(error.value)}

    return json.dumps(document, default=str, ensure_ascii=False) + "\n"


def _attach_json_line(record: dict[str, Any]) -> bool:
    record["extra"]["json_line"] = _to_json_line(record)
    return True


def _check_writable(log_dir: Path) -> None:
    """Create the log directory and prove a file can be written into it.

    Raises:
        LoggingInitializationError: If the directory is missing and cannot
            be created, or is read-only.
    """
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=log_dir, prefix=".probe-"):
            pass
    except PermissionError as exc:
        raise LoggingInitializationError(str(log_dir), f"Permission denied: {exc}") from exc
    except OSError as exc:
        raise LoggingInitializationError(str(log_dir), f"Directory not usable: {exc}") from exc


def configure_logging(config: GlobalConfig | None = None) -> Path:
    """Install the console and file handlers, replacing any existing ones.

    Call once during bootstrap, before any pipeline stage runs.

    Args:
        config: Optional GlobalConfig instance. If None, uses singleton.

    Returns:
        The log file path pattern handed to loguru.

    Raises:
        LoggingInitializationError: If the log directory is not writable.
    """
    config = config or get_config()

    logger.remove()
    _check_writable(config.log_dir)
    logger.configure(extra={"region": _UNSET_REGION})

    console_level = "DEBUG" if config.debug else config.log_level
    logger.add(
        sys.stderr,
        format=_CONSOLE_FORMAT,
        level=console_level,
        colorize=True,
        backtrace=config.debug,
        diagnose=config.debug,
    )

    file_pattern = config.log_dir / "pricelens_{time:YYYY-MM-DD}.jsonl"
    logger.add(
        str(file_pattern),
        format="{extra[json_line]}",
        level=config.log_level,
        rotation=config.log_rotation,
        retention=config.log_retention,
        compression="gz",
        filter=_attach_json_line,
    )

    logger.info(
        "Logging initialized",
        app_name=config.app_name,
        environment=config.environment,
        console_level=console_level,
        file_level=config.log_level,
        log_dir=str(config.log_dir),
    )
    return file_pattern


def get_logger(name: str) -> "logger":
    """Logger bound with the module name.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("Page normalized", region="de", products=48)
    """
    return logger.bind(module=name)


def bind_page(log: "logger", region: object, page_kind: object, **extra: Any) -> "logger":
    """Child logger carrying the page keys on every record it emits."""
    return log.bind(region=str(region), page_kind=str(getattr(page_kind, "value", page_kind)), **extra)
