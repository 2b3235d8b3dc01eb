from storefront.api.routes.health import router as health
from storefront.api.routes.products import router as products
from storefront.api.routes.search import router as search

__all__ = ["health", "products", "search"]
