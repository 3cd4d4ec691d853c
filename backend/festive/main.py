"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from festive.config import settings
from festive.errors import FestiveError, Internal, InvalidInput
from festive.schemas import ErrorResponse
from festive.security.client_info import get_client_info
from festive.security.event_log import SecurityEventCategory, SecurityEventLog
from festive.security.rate_limiter import build_rate_limiter

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    app.state.security_events.shutdown()


# Create FastAPI app
app = FastAPI(
    title="Festive API",
    description="Accounts, two-factor login and sessions for Festive party planning",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Process-wide services, shared by every request
app.state.rate_limiter = build_rate_limiter(settings)
app.state.security_events = SecurityEventLog(
    capacity=settings.security_event_capacity,
    webhook_url=settings.security_webhook_url,
    production=settings.is_production,
)

# API responses carry session cookies, TOTP secrets and backup codes
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def apply_security_headers(response: Response) -> Response:
    response.headers.update(SECURITY_HEADERS)
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security and no-cache headers to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        return apply_security_headers(await call_next(request))


app.add_middleware(SecurityHeadersMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(error: FestiveError) -> JSONResponse:
    headers = None
    if getattr(error, "retry_after", 0):
        headers = {"Retry-After": str(error.retry_after)}
    body = ErrorResponse(**error.to_dict()).model_dump(exclude_none=True)
    return JSONResponse(status_code=error.status_code, content=body, headers=headers)


@app.exception_handler(FestiveError)
async def festive_error_handler(request: Request, exc: FestiveError) -> JSONResponse:
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    client = get_client_info(request)
    fields = sorted(
        {".".join(str(part) for part in error["loc"][1:]) for error in exc.errors()} - {""}
    )
    request.app.state.security_events.log(
        SecurityEventCategory.INVALID_INPUT,
        client.ip_address,
        request.url.path,
        f"Rejected request fields: {', '.join(fields) or 'body'}",
        client.user_agent,
    )
    message = f"Invalid input: {', '.join(fields)}" if fields else "Invalid input"
    return _error_response(InvalidInput(message))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    client = get_client_info(request)
    request.app.state.security_events.log(
        SecurityEventCategory.API_ERROR,
        client.ip_address,
        request.url.path,
        type(exc).__name__,
        client.user_agent,
    )
    error = Internal()
    body = error.to_dict()
    if settings.debug and not settings.is_production:
        body["detail"] = f"{type(exc).__name__}: {exc}"
    # Runs outside the middleware stack
    return apply_security_headers(JSONResponse(status_code=error.status_code, content=body))


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Festive API", "version": "0.1.0", "status": "running"}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "rate_limit_engine": app.state.rate_limiter.store.name}


# Import and include routers
from festive.routers import admin, auth, two_factor, user  # noqa: E402

app.include_router(auth.router, prefix="/api")
app.include_router(two_factor.router, prefix="/api")
app.include_router(user.router, prefix="/api")
app.include_router(admin.router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, reload=True)
