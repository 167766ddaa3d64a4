import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from apphost.config import settings
from apphost.core.exceptions import AppHostError, ConfigurationError
from apphost.modules.deployments import routes as deployments_routes
from apphost.modules.schema import routes as schema_routes
from apphost.modules.storage_migration import routes as storage_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

SECURITY_HEADERS = (
    (b"x-content-type-options", b"nosniff"),
    (b"x-frame-options", b"DENY"),
    (b"x-xss-protection", b"1; mode=block"),
)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


def _error_detail(exc: Exception) -> str:
    return "Internal server error" if settings.is_production else str(exc)


@app.exception_handler(AppHostError)
async def apphost_exception_handler(request: Request, exc: AppHostError):
    if isinstance(exc, ConfigurationError):
        logger.error("Service not configured: %s", exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})
    logger.exception("Unhandled apphost error: %s", exc)
    return JSONResponse(status_code=500, content={"detail": _error_detail(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(status_code=500, content={"detail": _error_detail(exc)})


class SecurityHeadersMiddleware:
    """Adds the security headers a response has not set itself (preview pages set their own frame policy)."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                present = {name.lower() for name, _ in headers}
                headers.extend(h for h in SECURITY_HEADERS if h[0] not in present)
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(deployments_routes.router, prefix="/api/v1")
app.include_router(schema_routes.router, prefix="/api/v1")
app.include_router(storage_routes.router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    logger.info(f"Application startup ({settings.environment})")
    if not settings.cloudflare_configured:
        logger.warning("Cloudflare credentials missing; deployments will fail at credentials-check")
    if not settings.r2_configured:
        logger.warning("R2 credentials missing; asset offload is unavailable")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutdown")


@app.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@app.get("/ready")
@limiter.exempt
async def ready():
    """Readiness probe: reports which backends are configured."""
    return {
        "status": "ready",
        "cloudflare": settings.cloudflare_configured,
        "r2": settings.r2_configured,
    }
