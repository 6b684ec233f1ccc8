"""Batch runner for saved storefront pages.

Reads every HTML file in INPUT_DIR, runs it through the pricelens
pipeline and writes per-page CSV exports, cross-region comparison
summaries, one Excel workbook and one dashboard per comparable ASIN into
OUTPUT_DIR. No extraction or pricing rules live here.

Input files are named after the storefront and page kind:
    de-search-headphones.html      search-results page
    fr-product-B08N5WRWNW.html     product-detail page for one ASIN

Exit codes:
    0    batch finished
    1    runtime failure (unusable input, output or log directory, or an
         unexpected error)
    2    invalid configuration, selector overrides or filter criteria
    130  interrupted

Usage:
    python main.py
"""

import asyncio
import re
import sys
from collections import defaultdict
from pathlib import Path
from typing import NoReturn

from loguru import logger

from config.settings import GlobalConfig, get_config
from pricelens.exceptions import (
    BlockedPageError,
    ConfigValidationError,
    CurrencyMismatchError,
    FilterConfigurationError,
    LoggingInitializationError,
    PriceLensError,
    SelectorConfigError,
)
from pricelens.logger import configure_logging
from pricelens.regions import PageKind, Region

PAGE_FILE_PATTERN = re.compile(
    r"^(?:(?P<region>[a-z]{2})-)?(?P<kind>search|product)(?:-(?P<rest>[^.]+))?\.html?$",
    re.IGNORECASE,
)

# Contract and configuration violations exit with 2, everything else with 1
_CONTRACT_ERRORS = (
    ConfigValidationError,
    FilterConfigurationError,
    SelectorConfigError,
    CurrencyMismatchError,
)


def _check_directories(config: GlobalConfig) -> None:
    """Exit with status 1 unless INPUT_DIR exists and OUTPUT_DIR can be created."""
    if not config.input_dir.is_dir():
        logger.critical("Input directory does not exist", input_dir=str(config.input_dir))
        sys.exit(1)

    try:
        config.output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.critical(
            "Output directory cannot be created",
            output_dir=str(config.output_dir),
            error=str(exc),
        )
        sys.exit(1)

    logger.debug(
        "Directories checked",
        input_dir=str(config.input_dir),
        output_dir=str(config.output_dir),
    )


def classify_page(
    path: Path, default_region: Region | None = None
) -> tuple[Region, PageKind, str | None] | None:
    """Region, page kind and (for product pages) ASIN encoded in a file name.

    A name without a region prefix (``search-cables.html``) belongs to
    ``default_region``; without one it is not classified.

    Returns:
        The triple, or None if the name does not follow the convention.
    """
    match = PAGE_FILE_PATTERN.match(path.name)
    if match is None:
        return None
    if match["region"] is None:
        if default_region is None:
            return None
        region = default_region
    else:
        try:
            region = Region.parse(match["region"])
        except ValueError:
            return None
    if match["kind"].lower() == "search":
        return region, PageKind.SEARCH_RESULTS, None
    if not match["rest"]:
        return None
    return region, PageKind.PRODUCT_DETAIL, match["rest"].upper()


async def _run_pipeline(config: GlobalConfig) -> int:
    """Process INPUT_DIR and write all reports.

    Search pages become CSV exports. An ASIN with product pages from two
    or more storefronts of one currency is compared across them. Blocked
    pages are skipped with a warning; invalid selector overrides or filter
    criteria propagate before any page is read.

    Returns:
        0 once every page has been handled.
    """
    from pricelens.comparison import ComparisonEngine
    from pricelens.filters import build_filter_chain
    from pricelens.monitor import QualityMonitor
    from pricelens.pipeline import compare_across_regions, lookup_product, process_search_page
    from pricelens.reporter import ReportGenerator
    from pricelens.selectors import load_selector_table

    logger.info(
        "Batch started",
        app_name=config.app_name,
        environment=config.environment,
        input_dir=str(config.input_dir),
    )

    # Raises on bad overrides or criteria
    table = load_selector_table(config.selector_overrides_path)
    filter_chain = build_filter_chain(config.filter_criteria())
    engine = ComparisonEngine(config.markup_threshold_percent, config.percent_precision)
    monitor = QualityMonitor(config)
    reporter = ReportGenerator(config)

    all_products = []
    product_pages: dict[str, dict[Region, Path]] = defaultdict(dict)

    # Search pages now; product pages are grouped by ASIN for later
    for path in sorted(config.input_dir.glob("*.htm*")):
        classified = classify_page(path, config.default_region)
        if classified is None:
            logger.warning("Skipping file with unrecognized name", path=str(path))
            continue

        region, page_kind, asin = classified
        if page_kind is PageKind.PRODUCT_DETAIL:
            product_pages[asin][region] = path
            continue

        try:
            page = process_search_page(
                path.read_bytes(),
                region,
                filter_chain=filter_chain,
                table=table,
                monitor=monitor,
                max_results=config.max_results,
            )
        except BlockedPageError as exc:
            logger.warning("Skipping blocked page", path=str(path), marker=exc.marker)
            continue

        all_products.extend(page.products)
        reporter.write_text(reporter.render_products(page.products, "csv"), f"{path.stem}.csv")

    # Product pages
    comparisons = []
    for asin, pages in sorted(product_pages.items()):
        if len(pages) == 1:
            ((region, path),) = pages.items()
            try:
                product = lookup_product(path.read_bytes(), region, asin, table)
            except BlockedPageError as exc:
                logger.warning("Skipping blocked page", path=str(path), marker=exc.marker)
                continue
            if product is not None:
                all_products.append(product)
            continue

        async def fetch(region: Region, _asin: str, pages: dict[Region, Path] = pages) -> bytes:
            return await asyncio.to_thread(pages[region].read_bytes)

        # Only same-currency regions are comparable without exchange rates
        by_currency: dict[str, list[Region]] = defaultdict(list)
        for region in pages:
            by_currency[region.currency].append(region)

        for currency, regions in sorted(by_currency.items()):
            if len(regions) < 2:
                logger.info("Single region for currency - not compared", asin=asin, currency=currency)
                continue
            comparison = await compare_across_regions(
                fetch,
                asin,
                regions,
                engine,
                max_concurrency=config.max_concurrent_regions,
                table=table,
            )
            comparisons.append(comparison)
            suffix = f"{asin}_{currency.lower()}"
            reporter.write_text(reporter.render_comparison(comparison), f"compare_{suffix}.txt")
            if comparison.is_comparable:
                reporter.generate_comparison_dashboard(comparison, filename=f"compare_{suffix}")

    if all_products or comparisons:
        excel_path = reporter.generate_excel(all_products, comparisons=comparisons)
        logger.info(
            "Workbook written",
            excel_path=str(excel_path),
            total_items=len(all_products),
            comparisons=len(comparisons),
        )
    else:
        logger.warning("Nothing extracted, no workbook written")

    logger.info("Quality monitoring summary", **monitor.get_summary())
    logger.info("Batch finished")
    return 0


def _exit_for(exc: Exception) -> NoReturn:
    """Log ``exc`` once at critical level and exit with its status code."""
    if not isinstance(exc, PriceLensError):
        logger.exception("Unhandled error, aborting batch", error=str(exc))
        sys.exit(1)

    status = 2 if isinstance(exc, _CONTRACT_ERRORS) else 1
    logger.critical(
        "Batch aborted",
        error_type=type(exc).__name__,
        message=exc.message,
        context=exc.context,
        exit_code=status,
    )
    sys.exit(status)


def main() -> int:
    """Run one batch and return the process exit code."""
    # Settings come first: without them there is no log directory
    try:
        config = get_config()
    except Exception as exc:
        print(f"pricelens: invalid configuration: {exc}", file=sys.stderr)
        return 2

    try:
        configure_logging(config)
    except LoggingInitializationError as exc:
        print(f"pricelens: {exc}", file=sys.stderr)
        return 1

    _check_directories(config)

    try:
        return asyncio.run(_run_pipeline(config))
    except KeyboardInterrupt:
        logger.warning("Interrupted, partial reports may remain in the output directory")
        return 130
    except Exception as exc:
        _exit_for(exc)


if __name__ == "__main__":
    sys.exit(main())
