"""
FastAPI dependencies: database sessions and the application service.
"""
from typing import Iterator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from cost_engine.domain.services import CostControlService
from cost_engine.infrastructure.repositories import (
    SqlBudgetRepository,
    SqlCostRepository,
    SqlProjectRepository,
)


def get_db(request: Request) -> Iterator[Session]:
    """Database session dependency, one session per request."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_cost_control_service(request: Request, db: Session = Depends(get_db)) -> CostControlService:
    """CostControlService over SQL repositories and the app's event bus."""
    state = request.app.state
    return CostControlService(
        SqlProjectRepository(db),
        SqlBudgetRepository(db),
        SqlCostRepository(db),
        event_bus=state.event_bus,
        config=state.config,
        lock_registry=state.lock_registry,
    )
