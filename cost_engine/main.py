"""
FastAPI application factory for the Cost Control Engine.
Registers the v1 API and the nightly forecast refresh job.
"""
import logging
import threading
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI

from cost_engine import __version__
from cost_engine.api.v1 import api_router as v1_router
from cost_engine.config import CostEngineConfig, get_config
from cost_engine.domain.events import EventBus, InMemoryEventBus
from cost_engine.domain.services import CostControlService, ForecastRefreshJob, LedgerLockRegistry
from cost_engine.domain.services.forecast_refresh import RefreshSummary
from cost_engine.infrastructure.repositories import (
    SqlBudgetRepository,
    SqlCostRepository,
    SqlProjectRepository,
)
from cost_engine.models import DEFAULT_DATABASE_URL, get_engine, get_session_factory, init_db

logger = logging.getLogger(__name__)


def create_app(
    database_url: str = DEFAULT_DATABASE_URL,
    config: Optional[CostEngineConfig] = None,
    event_bus: Optional[EventBus] = None,
    enable_scheduler: bool = True,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        database_url: SQLAlchemy URL of the cost database
        config: Engine configuration (packaged defaults when None)
        event_bus: Destination of domain events (in-memory bus when None)
        enable_scheduler: Start the nightly forecast refresh on startup
    """
    app = FastAPI(
        title="Cost Control Engine",
        description="Budgets, actual costs, variance, forecasts, alerts and control strategies",
        version=__version__,
    )
    engine = get_engine(database_url)
    app.state.engine = engine
    app.state.session_factory = get_session_factory(engine)
    app.state.config = config or get_config()
    app.state.event_bus = event_bus or InMemoryEventBus()
    app.state.lock_registry = LedgerLockRegistry()
    app.state.cancel_event = threading.Event()
    app.state.scheduler = None

    app.include_router(v1_router)

    @app.on_event("startup")
    def startup_event():
        init_db(engine)
        if enable_scheduler:
            app.state.scheduler = setup_scheduler(app)

    @app.on_event("shutdown")
    def shutdown_event():
        app.state.cancel_event.set()
        if app.state.scheduler is not None:
            app.state.scheduler.shutdown(wait=False)

    return app


def setup_scheduler(app: FastAPI) -> BackgroundScheduler:
    """Nightly forecast refresh at the configured time (02:00 by default)."""
    scheduler = BackgroundScheduler()
    schedule = app.state.config.forecast_refresh_schedule
    scheduler.add_job(
        run_forecast_refresh, 'cron',
        hour=schedule["hour"], minute=schedule["minute"],
        args=[app], id="forecast_refresh", replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduled nightly forecast refresh at {schedule['hour']:02d}:{schedule['minute']:02d}")
    return scheduler


def run_forecast_refresh(app: FastAPI) -> Optional[RefreshSummary]:
    """Background job refreshing forecasts of every stored project."""
    db = app.state.session_factory()
    try:
        projects = SqlProjectRepository(db)
        service = CostControlService(
            projects,
            SqlBudgetRepository(db),
            SqlCostRepository(db),
            event_bus=app.state.event_bus,
            config=app.state.config,
            lock_registry=app.state.lock_registry,
        )
        job = ForecastRefreshJob(service, project_ids=projects.list_project_ids)
        return job.run(cancel_event=app.state.cancel_event)
    except Exception:
        logger.exception("Nightly forecast refresh failed")
        return None
    finally:
        db.close()
