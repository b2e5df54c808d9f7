import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from smartlink.api.endpoints import account, admin, campaigns, financial, public, sites, stats
from smartlink.core.database import Base, engine
from smartlink.core.settings import settings
from smartlink.services.budget_monitor import budget_monitor_loop
import smartlink.models  # noqa: F401

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("smartlink")

app = FastAPI(title="SmartLink Ad Network API")

# Configure CORS
origins = settings.resolved_cors_origins()
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
async def startup() -> None:
    if settings.is_production and not settings.jwt_secret:
        raise RuntimeError("JWT_SECRET must be set in production")
    if settings.db_auto_create:
        Base.metadata.create_all(bind=engine)
    if settings.budget_monitor_interval_s > 0:
        app.state.budget_monitor_task = asyncio.create_task(budget_monitor_loop())
        logger.info("budget_monitor.scheduled interval_s=%s", settings.budget_monitor_interval_s)


@app.on_event("shutdown")
async def shutdown() -> None:
    task = getattr(app.state, "budget_monitor_task", None)
    if task is not None:
        task.cancel()


# API Routes
app.include_router(account.router, prefix="/api", tags=["account"])
app.include_router(sites.router, prefix="/api", tags=["sites"])
app.include_router(campaigns.router, prefix="/api", tags=["campaigns"])
app.include_router(financial.router, prefix="/api", tags=["financial"])
app.include_router(stats.router, prefix="/api", tags=["stats"])
app.include_router(admin.router, prefix="/api", tags=["admin"])
app.include_router(public.router, prefix="/api", tags=["public"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
