import asyncio

from storefront.core.logging import configure_logging, get_logger
from storefront.db.base import Base
from storefront.db.session import engine
# Import all models to ensure they are registered with Base metadata
from storefront.models import AttributeDefinition, Category, Product, ProductSpecification  # noqa: F401

logger = get_logger("storefront.create_tables")


async def create_tables():
    logger.info("Creating tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Tables created successfully.")

if __name__ == "__main__":
    configure_logging()
    asyncio.run(create_tables())
