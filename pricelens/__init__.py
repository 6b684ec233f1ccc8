"""PriceLens core package.

This package contains the extraction-to-comparison pipeline for marketplace pages:
- regions: Storefront table (currency, separators, badge texts) and page kinds
- selectors: Declarative CSS rules per (page kind, region)
- extractor: HTML document model and raw field extraction
- normalizer: Locale-aware parsing into canonical Product records
- filters: Composable predicates and the FilterChain
- comparison: Cross-region price comparison engine
- pipeline: Stage wiring and concurrent multi-region gathering
- monitor: Per-page extraction quality accounting
- reporter: Pandas/Plotly-based reporting and visualization
- logger: Structured JSON logging configuration
- exceptions: Custom exception hierarchy
"""

__version__ = "1.0.0"
