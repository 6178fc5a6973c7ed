"""Catalog oracle factory — CATALOG_ADAPTER selects the implementation."""

import os

from orderflow.catalog.port import CatalogOracle

_current_catalog: CatalogOracle | None = None


def get_catalog() -> CatalogOracle:
    global _current_catalog
    if _current_catalog is None:
        adapter = os.environ.get("CATALOG_ADAPTER", "fake")
        if adapter == "fake":
            from orderflow.catalog.fake_adapter import FakeCatalog

            _current_catalog = FakeCatalog()
        else:
            raise ValueError(f"Unknown catalog adapter: {adapter}")
    return _current_catalog


def set_catalog(catalog: CatalogOracle) -> None:
    global _current_catalog
    _current_catalog = catalog


def reset_catalog() -> None:
    global _current_catalog
    _current_catalog = None
