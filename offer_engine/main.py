"""FastAPI application entry point for the Offer Negotiation Engine"""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from offer_engine.api.routes import cron, offers
from offer_engine.config import settings, validate_settings
from offer_engine.core.exceptions import AppException, ErrorCode
from offer_engine.core.logging import log, setup_logging
from offer_engine.tasks.dispatcher import start_expiration_sweeper, stop_expiration_sweeper


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    validate_settings()
    setup_logging(
        debug=settings.DEBUG,
        log_format=settings.LOG_FORMAT,
        log_to_file=settings.LOG_TO_FILE,
    )
    log.info(f"Starting {settings.APP_NAME}...")
    log.info(f"Environment: {settings.current_env}")

    start_expiration_sweeper()

    yield

    log.info("Shutting down...")
    await stop_expiration_sweeper()


app = FastAPI(
    title=settings.APP_NAME,
    description="Buyer/seller offer negotiation with counter-offers and expiry",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Log all requests."""
    request_id = str(uuid.uuid4())[:8]
    start_time = time.time()
    request.state.request_id = request_id

    with log.contextualize(request_id=request_id):
        log.info(f"Request started: {request.method} {request.url.path}")
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000
        log.info(
            f"Request completed: {request.method} {request.url.path} "
            f"{response.status_code} in {duration_ms:.2f}ms"
        )

    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Handle application exceptions."""
    if exc.status_code >= 500:
        log.warning(f"{exc.code.value}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code.value, "details": exc.details},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    log.exception("Unhandled exception")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": ErrorCode.INTERNAL.value},
    )


# Routes
app.include_router(offers.router, prefix=f"{settings.API_PREFIX}/offers", tags=["offers"])
app.include_router(cron.router, prefix=f"{settings.API_PREFIX}/cron", tags=["cron"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.APP_NAME}
