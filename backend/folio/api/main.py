"""
FastAPI application entry point.

API server for the Folio portfolio engine.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from folio.core.config import settings
from folio.core.logging import setup_logging
from folio.core.database import close_db, init_db
from folio.api.errors import register_exception_handlers

# Setup logging
setup_logging()

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Portfolio valuation, goals and watchlist tracking",
    debug=settings.DEBUG,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.on_event("startup")
async def startup() -> None:
    """Run on application startup."""
    # Deployed environments are migrated by Alembic
    if settings.ENVIRONMENT in ("local", "test"):
        await init_db()


@app.on_event("shutdown")
async def shutdown() -> None:
    """Run on application shutdown."""
    await close_db()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }


from folio.api.transactions import router as transactions_router
from folio.api.portfolio import router as portfolio_router
from folio.api.goals import router as goals_router
from folio.api.watchlist import router as watchlist_router
from folio.api.dashboard import router as dashboard_router
from folio.api.assets import router as assets_router

USER_PREFIX = "/api/v1/users/{user_id}"

app.include_router(transactions_router, prefix=USER_PREFIX, tags=["ledger"])
app.include_router(portfolio_router, prefix=f"{USER_PREFIX}/portfolio", tags=["portfolio"])
app.include_router(goals_router, prefix=f"{USER_PREFIX}/goals", tags=["goals"])
app.include_router(watchlist_router, prefix=f"{USER_PREFIX}/watchlist", tags=["watchlist"])
app.include_router(dashboard_router, prefix=f"{USER_PREFIX}/dashboard", tags=["dashboard"])
app.include_router(assets_router, prefix="/api/v1/assets", tags=["assets"])
