"""Stage wiring: document -> extract -> normalize -> filter -> compare.

Each stage is a pure function of its inputs, so any number of region
pipelines can run side by side without synchronization. The only
aggregation point is the cross-region comparison, which waits for all
regions and treats a failed, timed-out, empty or blocked region as
"no product there" instead of failing the whole comparison.

Fetching is not done here. Callers pass an async ``fetch(region, asin)``
callable returning the product-detail HTML (or None), which keeps
transport concerns outside this package.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable

from pricelens.comparison import ComparisonEngine, PriceComparison
from pricelens.exceptions import BlockedPageError, ConfigValidationError
from pricelens.extractor import DocumentModel, extract, extract_page_fields, is_blocked
from pricelens.filters import FilterChain
from pricelens.logger import bind_page, get_logger
from pricelens.models import Product, SearchPage
from pricelens.monitor import QualityMonitor
from pricelens.normalizer import clean_asin, normalize, parse_total_results
from pricelens.regions import PageKind, Region
from pricelens.selectors import SelectorSet, SelectorTable, get_selector_set

log = get_logger(__name__)

Markup = bytes | str
Fetch = Callable[[Region, str], Awaitable[Markup | None]]

DEFAULT_MAX_CONCURRENCY = 5


def _open_document(
    html: Markup, region: Region, page_kind: PageKind, table: SelectorTable | None
) -> tuple[DocumentModel, SelectorSet]:
    document = DocumentModel(html)
    selector_set = get_selector_set(page_kind, region, table)
    marker = is_blocked(document, selector_set)
    if marker is not None:
        bind_page(log, region, page_kind).warning("Blocked page detected", marker=marker)
        raise BlockedPageError(str(region), page_kind.value, marker)
    return document, selector_set


def process_search_page(
    html: Markup,
    region: Region,
    filter_chain: FilterChain | None = None,
    table: SelectorTable | None = None,
    monitor: QualityMonitor | None = None,
    max_results: int | None = None,
) -> SearchPage:
    """Extract, normalize and filter one search-results page.

    Args:
        html: Raw page markup.
        region: Storefront the page came from.
        filter_chain: Optional predicates; rejected products are counted
            in ``filtered_out``.
        table: Selector table, the built-in one by default.
        monitor: Optional quality monitor accounting skipped records.
        max_results: Keep at most this many products after filtering.

    Returns:
        SearchPage with products in page order.

    Raises:
        BlockedPageError: If the page is a CAPTCHA or service error page.
    """
    document, selector_set = _open_document(html, region, PageKind.SEARCH_RESULTS, table)
    if monitor is not None:
        monitor.start_page(str(region), PageKind.SEARCH_RESULTS.value)

    products: list[Product] = []
    extracted = skipped = 0
    for raw in extract(document, selector_set):
        extracted += 1
        product = normalize(raw, region)
        if product is None:
            skipped += 1
            if monitor is not None:
                monitor.record_skipped()
            continue
        if monitor is not None:
            monitor.record_extracted()
        products.append(product)

    if monitor is not None:
        monitor.evaluate_page()

    kept = products if filter_chain is None else filter_chain.apply(products)
    filtered_out = len(products) - len(kept)
    if max_results is not None:
        kept = kept[:max_results]

    page_fields = extract_page_fields(document, selector_set)
    page = SearchPage(
        region=region,
        products=kept,
        total_results=parse_total_results(page_fields.get("total_results")),
        has_next_page=page_fields.get("next_page") is not None,
        extracted=extracted,
        skipped=skipped,
        filtered_out=filtered_out,
    )
    bind_page(log, region, PageKind.SEARCH_RESULTS).info(
        "Search page processed",
        extracted=extracted,
        skipped=skipped,
        filtered_out=filtered_out,
        products=page.count,
    )
    return page


def lookup_product(
    html: Markup,
    region: Region,
    asin: str,
    table: SelectorTable | None = None,
) -> Product | None:
    """Extract the requested product from a product-detail page.

    The requested ASIN is authoritative: a page that omits it, or shows a
    different variant's ASIN, is still attributed to the requested one.

    Returns:
        The Product, or None if the page yields no usable record.

    Raises:
        BlockedPageError: If the page is a CAPTCHA or service error page.
    """
    document, selector_set = _open_document(html, region, PageKind.PRODUCT_DETAIL, table)
    page_log = bind_page(log, region, PageKind.PRODUCT_DETAIL, asin=asin)

    raw = next(iter(extract(document, selector_set)), None)
    if raw is None:
        page_log.warning("Product page has no content")
        return None

    page_asin = clean_asin(raw.get("asin"))
    if page_asin is not None and page_asin != asin.strip().upper():
        page_log.debug("Product page shows a different ASIN", page_asin=page_asin)

    return normalize(raw.with_field("asin", asin), region)


async def gather_region_products(
    fetch: Fetch,
    asin: str,
    regions: Iterable[Region],
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    timeout: float | None = None,
    table: SelectorTable | None = None,
) -> dict[Region, Product | None]:
    """Fetch and extract one ASIN from several regions concurrently.

    At most ``max_concurrency`` fetches run at once. A region whose fetch
    raises, times out or returns nothing, or whose page is blocked, maps
    to None; the other regions are unaffected.

    Returns:
        Region to Product (or None), in the order regions were given.

    Raises:
        ConfigValidationError: If ``max_concurrency`` is below 1.
    """
    if max_concurrency < 1:
        raise ConfigValidationError("max_concurrency", max_concurrency, "must be >= 1")
    ordered = list(dict.fromkeys(regions))
    semaphore = asyncio.Semaphore(max_concurrency)

    async def _fetch_one(region: Region) -> Product | None:
        async with semaphore:
            try:
                if timeout is None:
                    html = await fetch(region, asin)
                else:
                    html = await asyncio.wait_for(fetch(region, asin), timeout)
            except asyncio.TimeoutError:
                log.warning("Region fetch timed out", region=str(region), asin=asin, timeout=timeout)
                return None
            except Exception as exc:
                log.warning(
                    "Region fetch failed",
                    region=str(region),
                    asin=asin,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                return None

        if not html:
            log.warning("Region returned no page", region=str(region), asin=asin)
            return None

        try:
            return lookup_product(html, region, asin, table)
        except BlockedPageError:
            return None

    results = await asyncio.gather(*(_fetch_one(region) for region in ordered))
    return dict(zip(ordered, results))


async def compare_across_regions(
    fetch: Fetch,
    asin: str,
    regions: Iterable[Region],
    engine: ComparisonEngine | None = None,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    timeout: float | None = None,
    table: SelectorTable | None = None,
) -> PriceComparison:
    """Gather every region, then compare the ASIN's prices.

    Raises:
        CurrencyMismatchError: If regions price in different currencies
            and the engine has no rate for one of them.
        ConfigValidationError: If ``max_concurrency`` is below 1.
    """
    products = await gather_region_products(fetch, asin, regions, max_concurrency, timeout, table)
    return (engine or ComparisonEngine()).compare(asin, products)
