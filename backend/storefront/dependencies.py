from functools import lru_cache
from typing import AsyncGenerator, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.db.session import AsyncSessionLocal
from storefront.services.catalog.backends import (
    CatalogSearchBackend,
    InMemoryCatalogBackend,
    SnapshotProvider,
    SqlCatalogBackend,
    load_snapshot,
)
from storefront.services.catalog.search_service import CatalogSearchService
from storefront.services.product_service import ProductService


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for database session."""
    async with AsyncSessionLocal() as session:
        yield session


@lru_cache(maxsize=1)
def get_snapshot_provider() -> Optional[SnapshotProvider]:
    """Shared snapshot cache when SEARCH_BACKEND is "memory", otherwise None."""
    if settings.SEARCH_BACKEND.strip().lower() != "memory":
        return None
    return SnapshotProvider(
        lambda: load_snapshot(AsyncSessionLocal),
        ttl_seconds=settings.SEARCH_SNAPSHOT_TTL_SECONDS,
    )


@lru_cache(maxsize=1)
def get_search_backend() -> CatalogSearchBackend:
    """Backend chosen by SEARCH_BACKEND; built once per process."""
    provider = get_snapshot_provider()
    if provider is not None:
        return InMemoryCatalogBackend(provider=provider)
    return SqlCatalogBackend(AsyncSessionLocal)


def get_search_service(
    backend: CatalogSearchBackend = Depends(get_search_backend),
) -> CatalogSearchService:
    return CatalogSearchService(backend)


def get_product_service(db: AsyncSession = Depends(get_db)) -> ProductService:
    return ProductService(db, snapshot_provider=get_snapshot_provider())
