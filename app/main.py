"""
Heterodox Labs Funding API - FastAPI Application
Stripe Connect donations, memberships and payouts for Virtual Lab
"""
from contextlib import asynccontextmanager
import logging
from datetime import datetime, timezone

import stripe
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from app.config import settings
from app.core.exceptions import AppError
from app.integrations.payments import provider_message
from app.api.routes import goals, health, payments, users

logging.basicConfig(
    level=logging.DEBUG if settings.app_debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("Starting Heterodox Labs Funding API...")
    for name in settings.missing_optional():
        logger.warning(f"{name} is not configured")
    logger.info(f"API running on {settings.app_env} environment")
    yield
    logger.info("Shutting down Heterodox Labs Funding API...")


app = FastAPI(
    title=settings.app_name,
    description="Funding orchestration API for Heterodox Labs",
    version="1.0.0",
    lifespan=lifespan,
)

# Respect forwarded proto/host so onboarding URLs don't downgrade to http.
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(stripe.StripeError)
async def stripe_error_handler(request: Request, exc: stripe.StripeError) -> JSONResponse:
    logger.error(f"Unhandled Stripe error on {request.url.path}: {str(exc)}")
    return JSONResponse(status_code=500, content={"error": provider_message(exc)})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"Database error on {request.url.path}: {str(exc)}")
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": {"errors": jsonable_encoder(exc.errors())}},
    )


@app.get("/")
async def root() -> dict:
    return {
        "name": settings.app_name,
        "environment": settings.app_env,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


prefix = settings.api_v1_prefix
app.include_router(health.router, prefix=prefix, tags=["Health"])
app.include_router(payments.router, prefix=f"{prefix}/stripe", tags=["Stripe"])
app.include_router(goals.router, prefix=f"{prefix}/funding-goals", tags=["Funding Goals"])
app.include_router(users.router, prefix=f"{prefix}/users", tags=["Users"])
