from storefront.services.catalog.backends.base import (
    AttributeInfo,
    CatalogSearchBackend,
    FacetCount,
    PriceBucket,
    SpecificationCount,
)
from storefront.services.catalog.backends.memory import (
    CatalogSnapshot,
    InMemoryCatalogBackend,
    SnapshotProvider,
    load_snapshot,
)
from storefront.services.catalog.backends.sql import SqlCatalogBackend

__all__ = [
    "AttributeInfo",
    "CatalogSearchBackend",
    "CatalogSnapshot",
    "FacetCount",
    "InMemoryCatalogBackend",
    "PriceBucket",
    "SnapshotProvider",
    "SpecificationCount",
    "SqlCatalogBackend",
    "load_snapshot",
]
