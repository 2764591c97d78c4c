"""
FastAPI Application for betledger.

REST API for:
    - Bankroll management and the transaction ledger
    - Bet placement and settlement
    - Balance, drawdown, analytics, loss limits and Kelly sizing

Security features:
    - API Key authentication (X-API-Key header)
    - Rate limiting (settings.RATE_LIMIT per client)
    - Input validation with Pydantic
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging
import os
import secrets
import time

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from betledger.api.endpoints import bankrolls, bets
from betledger.core.config import settings
from betledger.core.errors import BetLedgerError
from betledger.database.connection import dispose_engine, get_engine, init_db

# Load environment variables from .env file
load_dotenv()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# ============================================================================
# Rate Limiting Configuration
# ============================================================================

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.RATE_LIMIT])


# ============================================================================
# Authentication
# ============================================================================

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(
    api_key: Optional[str] = Depends(api_key_header)
) -> Optional[str]:
    """
    Verify API key from X-API-Key header.

    API key is read from BETLEDGER_API_KEY. If not set, authentication is
    skipped (development mode).
    """
    expected_key = settings.BETLEDGER_API_KEY

    if not expected_key:
        return None

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    if not secrets.compare_digest(api_key.encode("utf-8"), expected_key.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key"
        )

    return api_key


# ============================================================================
# API Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str


# ============================================================================
# Application
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(get_engine())
    if not settings.BETLEDGER_API_KEY:
        logger.warning("BETLEDGER_API_KEY not set - API key auth disabled")
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started")
    yield
    dispose_engine()


app = FastAPI(
    title="betledger API",
    description="Bankroll risk management and betting analytics",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# CORS middleware - configure for production
allowed_origins = os.getenv("CORS_ORIGINS", "*").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add X-Process-Time header for performance monitoring."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(round(process_time * 1000, 2)) + "ms"
    return response


@app.exception_handler(BetLedgerError)
async def betledger_error_handler(request: Request, exc: BetLedgerError):
    """Map domain errors to their HTTP status with a stable error code."""
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message, "code": exc.code}
    )


app.include_router(bankrolls.router, dependencies=[Depends(verify_api_key)])
app.include_router(bets.router, dependencies=[Depends(verify_api_key)])


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/", tags=["Info"])
async def root():
    """API root - basic info."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }


@app.get("/health", response_model=HealthResponse, tags=["Info"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.APP_VERSION
    )
