"""Test suite for PriceLens.

This package contains hermetic tests following the pytest framework.
Tests are structured to mirror the pricelens/ package hierarchy for discoverability.

Testing Philosophy:
    - Pages are generated in memory by factory fixtures, never fetched
    - Focus coverage on locale parsing, filtering and comparison semantics
    - Avoid external dependencies - all I/O goes to tmp_path
"""
