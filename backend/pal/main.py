import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pal.core.config import get_settings
from pal.core.database import init_db, close_db, async_session_maker
from pal.core.errors import register_exception_handlers
from pal.core.middleware import RateLimitMiddleware
from pal.core.rate_limit import InMemoryRateLimiter
from pal.api.v1 import router as api_router
from pal.schemas import HealthResponse
from pal.services.container import build_services
# Import all models to register them with Base
from pal import models  # noqa: F401

VERSION = "1.0.0"

settings = get_settings()

_log_level = (settings.log_level or ("DEBUG" if settings.debug else "INFO")).upper()
logging.basicConfig(
    level=_log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.INFO)

logger = logging.getLogger(__name__)

_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    services = build_services(settings, async_session_maker)
    app.state.services = services
    await services.startup()
    logger.info("%s started in %s mode", settings.app_name, settings.environment)
    yield
    await services.shutdown()
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=VERSION,
    description="Document-grounded chat assistant with web search fallback",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.state.rate_limiter = InMemoryRateLimiter(
    max_requests=settings.rate_limit_max_requests,
    window_seconds=settings.rate_limit_window_seconds,
)
app.add_middleware(RateLimitMiddleware, limiter=app.state.rate_limiter)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"],
)

register_exception_handlers(app)

app.include_router(api_router, prefix=settings.api_v1_prefix)


def _health(status: str = "healthy") -> HealthResponse:
    return HealthResponse(
        status=status,
        version=VERSION,
        uptime=round(time.monotonic() - _started_at, 3),
        timestamp=datetime.now(timezone.utc),
    )


@app.get("/", response_model=HealthResponse)
async def root():
    return _health()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    return _health()
