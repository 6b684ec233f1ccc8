"""Exceptions raised by PriceLens.

Only caller mistakes and unusable configuration raise. A missing node, an
unparseable price or a non-product card is ordinary on a live storefront
and costs one field or one record, never the page.

Every error carries a short message plus a ``context`` dict that loguru
can attach to a log record as-is, e.g.::

    except PriceLensError as exc:
        log.critical("Batch aborted", message=exc.message, context=exc.context)
"""

from datetime import UTC, datetime
from typing import Any


class PriceLensError(Exception):
    """Root of the PriceLens exception tree.

    Attributes:
        message: What went wrong, without context values.
        context: Values that identify the failing input (region, field,
            currency, path). Empty when there are none.
        timestamp: When the error was created, in UTC.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = dict(context) if context else {}
        self.timestamp = datetime.now(UTC)
        super().__init__(str(self))

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = "; ".join(f"{key}={value!r}" for key, value in self.context.items())
        return f"{self.message} ({details})"


class ConfigValidationError(PriceLensError):
    """A setting holds a value the pipeline cannot run with."""

    def __init__(self, field: str, value: Any, reason: str) -> None:
        super().__init__(
            message=f"Setting {field} rejected: {reason}",
            context={"field": field, "value": value, "reason": reason},
        )


class FilterConfigurationError(PriceLensError):
    """Raised when filter criteria are invalid at chain construction time.

    Reported eagerly so that a bad bound never yields a chain that
    silently rejects every product.
    """

    def __init__(self, reason: str, criteria: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=f"Invalid filter criteria: {reason}",
            context={"reason": reason, **(criteria or {})},
        )


class CurrencyMismatchError(PriceLensError):
    """Raised when monetary amounts in different currencies are compared.

    This is a caller bug, not a data issue: amounts are only comparable
    in a shared currency or after explicit conversion to a common basis.
    """

    def __init__(self, left: str, right: str, operation: str = "compare") -> None:
        super().__init__(
            message=f"Cannot {operation} amounts in {left} and {right}",
            context={"left": left, "right": right, "operation": operation},
        )
        self.left = left
        self.right = right


class SelectorConfigError(PriceLensError):
    """Raised when selector rule data cannot be loaded.

    Typically a malformed overrides file or an uncompilable CSS selector.
    """

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(
            message=f"Selector rules from '{source}' are invalid: {reason}",
            context={"source": source, "reason": reason},
        )


class BlockedPageError(PriceLensError):
    """Raised when a supplied document is a CAPTCHA or service error page.

    The document holds no product data; the caller decides whether to
    fetch it again. Within a cross-region comparison the region simply
    degrades to "no product available".
    """

    def __init__(self, region: str, page_kind: str, marker: str) -> None:
        super().__init__(
            message=f"Blocked or error page supplied for region '{region}'",
            context={"region": region, "page_kind": page_kind, "marker": marker},
        )
        self.region = region
        self.marker = marker


class ReportGenerationError(PriceLensError):
    """A report could not be rendered or written to the output directory."""

    def __init__(self, report_type: str, reason: str, output_path: str | None = None) -> None:
        super().__init__(
            message=f"{report_type} report not written: {reason}",
            context={"report_type": report_type, "output_path": output_path, "reason": reason},
        )


class LoggingInitializationError(PriceLensError):
    """The log directory cannot be created or written to.

    Raised before any handler is installed, so callers report it on stderr.
    """

    def __init__(self, log_dir: str, reason: str) -> None:
        super().__init__(
            message=f"No usable log directory at {log_dir}: {reason}",
            context={"log_dir": log_dir, "reason": reason},
        )
        self.log_dir = log_dir
