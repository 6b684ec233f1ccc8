"""Extraction quality accounting.

Design Rationale:
    A storefront layout change rarely breaks extraction outright. More
    often the container rule still matches while a field rule silently
    stops matching, and the normalizer starts skipping most records.
    Individual skips are expected noise (ad banners, placeholder cards),
    so the monitor looks at the per-page skip ratio and raises the alarm
    through the log stream when it crosses the configured threshold.

    The monitor never aborts a page: a partially extracted page is still
    returned to the caller, and the alert tells operators a selector
    update is due.
"""

from typing import Any

from config.settings import GlobalConfig, get_config
from pricelens.logger import get_logger

log = get_logger(__name__)


class QualityMonitor:
    """Per-page and cumulative skip accounting.

    Attributes:
        threshold: Skip ratio above which a page triggers a layout-shift alert.

    Example:
        monitor = QualityMonitor()
        monitor.start_page("de", "search")
        for raw in items:
            if normalize(raw, region) is None:
                monitor.record_skipped()
            else:
                monitor.record_extracted()
        monitor.evaluate_page()
    """

    def __init__(self, config: GlobalConfig | None = None, threshold: float | None = None) -> None:
        """Initialize the monitor.

        Args:
            config: Optional GlobalConfig. Uses singleton if not provided.
            threshold: Explicit threshold overriding the configured one.
        """
        if threshold is None:
            threshold = (config or get_config()).skip_ratio_warning_threshold
        self.threshold = threshold
        self._page_extracted = 0
        self._page_skipped = 0
        self._total_extracted = 0
        self._total_skipped = 0
        self._alerts = 0
        self._context: dict[str, str] = {}

    def start_page(self, region: str, page_kind: str) -> None:
        """Begin accounting a new page; cumulative totals are preserved."""
        self._page_extracted = 0
        self._page_skipped = 0
        self._context = {"region": str(region), "page_kind": str(page_kind)}

    def record_extracted(self) -> None:
        self._page_extracted += 1
        self._total_extracted += 1

    def record_skipped(self) -> None:
        self._page_skipped += 1
        self._total_skipped += 1

    @property
    def page_attempts(self) -> int:
        return self._page_extracted + self._page_skipped

    @property
    def page_skip_ratio(self) -> float:
        """Skip ratio of the current page, 0.0 for an empty page."""
        if self.page_attempts == 0:
            return 0.0
        return self._page_skipped / self.page_attempts

    @property
    def total_skip_ratio(self) -> float:
        attempts = self._total_extracted + self._total_skipped
        if attempts == 0:
            return 0.0
        return self._total_skipped / attempts

    def evaluate_page(self) -> bool:
        """Compare the current page's skip ratio with the threshold.

        Returns:
            True if the page is healthy, False if a layout shift is suspected.
        """
        if self.page_attempts == 0:
            log.warning("Empty page evaluated - no items found", **self._context)
            return True

        ratio = self.page_skip_ratio
        log.info(
            "Page quality evaluated",
            extracted=self._page_extracted,
            skipped=self._page_skipped,
            skip_ratio=f"{ratio:.1%}",
            threshold=f"{self.threshold:.1%}",
            **self._context,
        )

        # Epsilon guards the boundary against float division noise
        if ratio > self.threshold + 1e-9:
            self._alerts += 1
            log.critical(
                "Possible layout shift: skip ratio exceeds threshold",
                skip_ratio=f"{ratio:.1%}",
                threshold=f"{self.threshold:.1%}",
                page_size=self.page_attempts,
                **self._context,
            )
            return False
        return True

    def get_summary(self) -> dict[str, Any]:
        """Cumulative quality metrics for reporting."""
        return {
            "total_extracted": self._total_extracted,
            "total_skipped": self._total_skipped,
            "total_skip_rate": f"{self.total_skip_ratio:.1%}",
            "layout_shift_alerts": self._alerts,
            "threshold": f"{self.threshold:.1%}",
        }

    def reset(self) -> None:
        self._page_extracted = 0
        self._page_skipped = 0
        self._total_extracted = 0
        self._total_skipped = 0
        self._alerts = 0
        self._context = {}
        log.debug("Quality monitor reset")
