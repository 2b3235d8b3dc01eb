from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.api.routes import health, products, search
from storefront.core.config import settings
from storefront.core.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
)

# CORS configuration
allowed_origins = ["http://localhost:5173", "http://localhost:3000"]
if settings.ALLOWED_ORIGINS and settings.ALLOWED_ORIGINS != "*":
    allowed_origins = [origin.strip() for origin in settings.ALLOWED_ORIGINS.split(",")] + allowed_origins
elif settings.ALLOWED_ORIGINS == "*":
    allowed_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health, tags=["Health"])
app.include_router(search, prefix=f"{settings.API_V1_STR}/search", tags=["Search"])
app.include_router(products, prefix=f"{settings.API_V1_STR}/products", tags=["Products"])


@app.on_event("startup")
async def startup_event():
    """Startup event handler."""
    logger.info("%s is starting up (search backend: %s)", settings.PROJECT_NAME, settings.SEARCH_BACKEND)


@app.on_event("shutdown")
async def shutdown_event():
    """Shutdown event handler."""
    logger.info("%s is shutting down", settings.PROJECT_NAME)
