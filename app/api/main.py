import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp

from app.api.rate_limit import increment_rate_limit_exceeded, limiter
from app.api.routes_achievements import router as achievements_router
from app.api.routes_admin import router as admin_router
from app.api.routes_health import router as health_router
from app.api.routes_metrics import router as metrics_router
from app.api.routes_payments import router as payments_router
from app.api.routes_prices import router as prices_router
from app.api.routes_projects import router as projects_router
from app.api.routes_shares import router as shares_router
from app.api.routes_subscription import router as subscription_router
from app.api.routes_user import public_router as users_public_router
from app.api.routes_user import router as me_router
from app.api.routes_webhooks import router as webhook_router
from app.core.config import settings
from app.core.errors import register_error_handlers
from app.core.logger import init_logging
from app.core.monitoring import init_monitoring


async def _rate_limit_handler(request, exc: RateLimitExceeded):
    increment_rate_limit_exceeded(request.url.path)
    return JSONResponse(status_code=429, content={"detail": "Too many requests"})


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):  # type: ignore[override]
        response = await call_next(request)
        response.headers.setdefault("Referrer-Policy", "same-origin")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, max_body: int = 1024 * 1024) -> None:
        super().__init__(app)
        self.max_body = max_body
        self.logger = logging.getLogger("app.request_size")

    async def dispatch(self, request, call_next):  # type: ignore[override]
        length_header = request.headers.get("content-length")
        if length_header:
            try:
                if int(length_header) > self.max_body:
                    self.logger.warning("Rejected %s bytes on %s", length_header, request.url.path)
                    return JSONResponse(status_code=413, content={"detail": "Request body too large"})
            except ValueError:
                pass
        return await call_next(request)


def create_app() -> FastAPI:
    init_logging()
    init_monitoring()

    is_production = settings.ENV.lower() == "prod"
    app = FastAPI(
        title=settings.APP_NAME,
        debug=False,
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        openapi_url=None if is_production else "/openapi.json",
    )
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)
    register_error_handlers(app)

    app.include_router(webhook_router, prefix="/webhooks", tags=["webhooks"])
    app.include_router(payments_router, prefix="/payments", tags=["payments"])
    app.include_router(subscription_router, prefix="/subscriptions", tags=["subscriptions"])
    app.include_router(prices_router, prefix="/prices", tags=["prices"])
    app.include_router(achievements_router, prefix="/achievements", tags=["achievements"])
    app.include_router(projects_router, prefix="/projects", tags=["projects"])
    app.include_router(me_router, prefix="/me", tags=["me"])
    app.include_router(users_public_router, prefix="/users", tags=["users"])
    app.include_router(shares_router, prefix="/shares", tags=["shares"])
    app.include_router(admin_router, prefix="/admin", tags=["admin"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(health_router)

    return app


app = create_app()
