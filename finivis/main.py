import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core import errors
from .core.config import Settings, get_settings
from .core.logging import init_logging, request_context_middleware
from .db.dal import Database
from .db.migrate import apply_migrations
from .routers import (
    account,
    applications,
    audit,
    compliance,
    delivery,
    exchange_orders,
    health,
    insurance,
    notifications,
    pricing,
    rates,
    refundable_balance,
    remittance,
    settings as settings_router,
    tracking,
)
from .services.notifications import EmailSender, FixedWindowRateLimiter
from .services.rates.cache_service import build_dynamic_rate_cache_service


def create_app(settings_override: Settings | None = None) -> FastAPI:
    """Application factory.

    settings_override: pass an already constructed Settings instance for tests
    to isolate environment (e.g., temp DB). Falls back to cached get_settings().
    """
    if settings_override is not None:
        settings_override.init_post_load()
    settings = settings_override or get_settings()
    init_logging(debug=settings.debug)

    # Schema must exist before the rate service reads runtime settings from it
    try:
        apply_migrations(settings.db_path)  # type: ignore[arg-type]
    except Exception:
        logging.getLogger("finivis").exception("failed to apply migrations on startup")
        raise

    app = FastAPI(
        title=settings.app_name, debug=settings.debug, version=settings.version
    )

    app.state.settings = settings
    app.state.rate_service = build_dynamic_rate_cache_service(Database(settings.db_path), settings)
    app.state.email_sender = EmailSender(settings)
    app.state.email_limiter = FixedWindowRateLimiter(
        settings.email_rate_limit, settings.email_rate_window_seconds
    )

    app.middleware("http")(request_context_middleware)

    app.add_exception_handler(StarletteHTTPException, errors.not_found_handler)
    app.add_exception_handler(RequestValidationError, errors.validation_error_handler)
    app.add_exception_handler(errors.DomainError, errors.domain_error_handler)
    app.add_exception_handler(Exception, errors.server_error_handler)

    app.include_router(health.router)
    app.include_router(account.router)
    app.include_router(rates.router)
    app.include_router(pricing.router)
    app.include_router(delivery.router)
    app.include_router(tracking.router)
    app.include_router(compliance.router)
    app.include_router(compliance.admin_router)
    app.include_router(exchange_orders.router)
    app.include_router(exchange_orders.admin_router)
    app.include_router(remittance.router)
    app.include_router(remittance.admin_router)
    app.include_router(applications.router)
    app.include_router(applications.admin_router)
    app.include_router(insurance.router)
    app.include_router(insurance.admin_router)
    app.include_router(refundable_balance.router)
    app.include_router(refundable_balance.admin_router)
    app.include_router(notifications.router)
    app.include_router(settings_router.router)
    app.include_router(audit.router)

    @app.get("/")
    async def root():
        return {"message": "RBP FINIVIS Forex Services API", "version": settings.version}

    return app


app = create_app()
