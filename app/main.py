from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, APIRouter, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.db.session import create_mongo_client, ensure_indexes
from app.routers import admin, cart, favorites, images, notifications, payments, products, reviews, users
from app.services.payments import PaymentGateway
from app.services.ratelimit import RateLimiter
from app.services.storage import ObjectStorage

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def first_error_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid data"
    error = errors[0]
    field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    return f"{field}: {error['msg']}" if field else error["msg"]

def create_app(
    db=None,
    payment_gateway: Optional[PaymentGateway] = None,
    storage: Optional[ObjectStorage] = None,
    rate_limiter: Optional[RateLimiter] = None
) -> FastAPI:
    """Build the application. Clients not passed in are created from settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        mongo_client = None
        if app.state.db is None:
            mongo_client = create_mongo_client(settings)
            app.state.db = mongo_client[settings.DB_NAME]
            await ensure_indexes(app.state.db)
        yield
        await app.state.rate_limiter.close()
        if mongo_client is not None:
            mongo_client.close()

    app = FastAPI(title="Koda", lifespan=lifespan)

    app.state.db = db
    app.state.payments = payment_gateway or PaymentGateway(settings.STRIPE_API_KEY, settings.STRIPE_WEBHOOK_SECRET)
    app.state.storage = storage or ObjectStorage(settings.AWS_S3_BUCKET_NAME, settings.AWS_REGION)
    app.state.rate_limiter = rate_limiter or RateLimiter.from_url(
        settings.REDIS_URL,
        limit=settings.RATE_LIMIT_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=422, content={"detail": first_error_message(exc)})

    # Create a router with the /api prefix
    api_router = APIRouter(prefix="/api")
    for module in (products, payments, reviews, users, cart, favorites, notifications, images, admin):
        api_router.include_router(module.router)
    app.include_router(api_router)

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app
