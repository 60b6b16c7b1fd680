"""
LexLedger - Main Application Entry Point

Practice management for law firms: clients, matters, tasks, time billing,
documents, calendar, CRM and a client portal.
"""

import logging

from fastapi import FastAPI, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger.config import settings
from lexledger.database import init_db, close_db, get_db, async_session
from lexledger.auth import ensure_admin, require_user
from lexledger.authorization import AuthorizationMiddleware
from lexledger.csrf import CSRFMiddleware
from lexledger.dashboard import get_dashboard
from lexledger.errors import LexLedgerError
from lexledger.rate_limit import RateLimitMiddleware, rate_limit_store
from lexledger.schemas import DashboardOut
from lexledger.routes.auth_routes import router as auth_router
from lexledger.routes.billing_routes import router as billing_router
from lexledger.routes.calendar_routes import router as calendar_router
from lexledger.routes.client_routes import router as client_router
from lexledger.routes.communication_routes import router as communication_router
from lexledger.routes.crm_routes import router as crm_router
from lexledger.routes.document_routes import router as document_router
from lexledger.routes.matter_routes import router as matter_router
from lexledger.routes.portal_routes import router as portal_router
from lexledger.routes.reminder_routes import router as reminder_router
from lexledger.routes.settings_routes import router as settings_router
from lexledger.routes.task_routes import router as task_router
from lexledger.routes.time_routes import router as time_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
)

# Middleware runs in reverse order of registration:
# rate limiting, then CSRF, then route authorization.
app.add_middleware(AuthorizationMiddleware)
app.add_middleware(CSRFMiddleware)
app.add_middleware(RateLimitMiddleware, store=rate_limit_store)

# Include routers
app.include_router(auth_router)
app.include_router(client_router)
app.include_router(matter_router)
app.include_router(task_router)
app.include_router(time_router)
app.include_router(billing_router)
app.include_router(document_router)
app.include_router(calendar_router)
app.include_router(crm_router)
app.include_router(communication_router)
app.include_router(reminder_router)
app.include_router(settings_router)
app.include_router(portal_router)


# =============================================================================
# ERROR HANDLING
# =============================================================================

@app.exception_handler(LexLedgerError)
async def lexledger_error_handler(request: Request, exc: LexLedgerError):
    """Expected failures carry their own status and optional field errors."""
    content = {"detail": exc.message}
    errors = getattr(exc, "errors", None)
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An unexpected error occurred"})


# =============================================================================
# ROUTES
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@app.get("/dashboard", response_model=DashboardOut, dependencies=[Depends(require_user)])
async def dashboard(db: AsyncSession = Depends(get_db)):
    """Firm-wide counts, billing totals and recent activity."""
    return await get_dashboard(db)


# =============================================================================
# STARTUP & SHUTDOWN
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    await init_db()

    async with async_session() as db:
        admin = await ensure_admin(db, settings)
    if admin is not None:
        logger.info("Seeded administrator account %s", admin.email)

    logger.info(
        "%s %s starting at %s (docs: %s/docs)",
        settings.APP_NAME, settings.APP_VERSION, settings.BASE_URL, settings.BASE_URL,
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    await close_db()
    logger.info("%s is shutting down", settings.APP_NAME)


# =============================================================================
# RUN (for development)
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "lexledger.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
