# Farm Market API entrypoint

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.core.rate_limiter import limiter
from app.core.config import settings
from app.models import farm, inventory, products, sales, sale_items  # noqa: F401  (register mappers)
from app.payments.gateway import get_gateway
from app.routers import market


# LOGGING

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)s | %(message)s",
)

logger = logging.getLogger("app")


# STARTUP
# Build the gateway once so missing PayPal credentials stop the process
# at boot instead of at the first checkout.

@asynccontextmanager
async def lifespan(app: FastAPI):
    gateway = get_gateway()
    logger.info(
        f"Starting Farm Market API env={settings.ENV} "
        f"gateway={type(gateway).__name__} currency={settings.PAYPAL_CURRENCY}"
    )
    yield
    logger.info("Farm Market API stopped")


app = FastAPI(
    title="Farm Market API",
    description="Storefront and PayPal order settlement for farm products",
    version="1.0.0",
    lifespan=lifespan,
)


# CORS (storefront origins from settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)


# RATE LIMITING

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# REQUEST LOGGING

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    duration = round((time.time() - start_time) * 1000, 2)
    client = request.client.host if request.client else "-"

    # Checkout failures are logged by the pipeline itself; this line is timing only
    logger.info(
        f"{request.method} {request.url.path} "
        f"Status: {response.status_code} "
        f"Client: {client} "
        f"Time: {duration}ms"
    )

    return response


app.include_router(market.router)


@app.get("/")
def root():
    return {
        "message": "Farm Market API is running",
        "gateway": settings.PAYMENT_GATEWAY,
    }
