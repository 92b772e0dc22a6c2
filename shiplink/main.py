import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from shiplink.api.router import api_router
from shiplink.config import settings
from shiplink.middleware.logging import RequestLoggingMiddleware

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)

logger = logging.getLogger("shiplink")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize Sentry if DSN is configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.environment,
            )
            logger.info("Sentry initialized (env=%s)", settings.environment)
        except Exception as e:
            logger.warning("Failed to initialize Sentry: %s", e)

    logger.info("Starting shiplink (env=%s)", settings.environment)
    yield
    logger.info("Shutting down shiplink")


app = FastAPI(
    title="Shiplink - Freight Document Identity Resolution",
    description="Links carrier and customer emails to shipments and infers each shipment's workflow state",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router, prefix="/api")
