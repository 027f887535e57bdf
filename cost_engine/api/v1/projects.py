"""
Cost Control API Endpoints.

Implements:
- POST /api/v1/projects/{project_id}/budget - Create the project budget
- POST /api/v1/projects/{project_id}/budget/activate - DRAFT -> ACTIVE
- POST /api/v1/projects/{project_id}/budget/lock - ACTIVE -> LOCKED
- POST /api/v1/projects/{project_id}/costs - Record an actual cost
- POST /api/v1/projects/{project_id}/costs/{cost_id}/reverse - Reverse a cost
- GET /api/v1/projects/{project_id}/variance|forecast|alerts|optimization|strategy
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from cost_engine.api.dependencies import get_cost_control_service
from cost_engine.domain.entities import CostEntry
from cost_engine.domain.exceptions import (
    DomainError,
    NotFoundError,
    RepositoryError,
    ValidationError,
)
from cost_engine.domain.result import Failure, OperationResult
from cost_engine.domain.services import CostControlService

router = APIRouter()


# =============================================================================
# Pydantic Models
# =============================================================================

class BudgetCategoryIn(BaseModel):
    """One category allocation."""
    name: str = Field(..., min_length=1, max_length=100, description="Category name")
    allocated_amount: Decimal = Field(..., description="Planned amount")
    description: str = Field("", max_length=500)


class BudgetCreate(BaseModel):
    """Request model for creating a budget."""
    categories: List[BudgetCategoryIn] = Field(..., description="Category allocations")
    currency: Optional[str] = Field(None, min_length=3, max_length=3, description="ISO currency code")


class BudgetCreated(BaseModel):
    budget_id: str
    total_budget: Decimal


class BudgetResponse(BaseModel):
    """Stored budget."""
    budget_id: str
    project_id: str
    categories: List[Dict[str, Any]]
    total_budget: Decimal
    currency: str
    status: str


class CostEntryCreate(BaseModel):
    """Request model for recording an actual cost."""
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., description="Cost amount (non-negative)")
    entry_date: date
    recorded_by: str = Field(..., min_length=1, max_length=100)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    description: str = Field("", max_length=500)


class CostRecorded(BaseModel):
    cost_id: str


class CostReverse(BaseModel):
    """Request model for reversing a cost entry."""
    recorded_by: str = Field(..., min_length=1, max_length=100)
    on_date: Optional[date] = None
    reason: str = Field("", max_length=500)


class CostReversed(BaseModel):
    cost_id: str
    reverses_cost_id: str


# =============================================================================
# Error Mapping
# =============================================================================

def _raise_http(error: DomainError) -> NoReturn:
    if isinstance(error, ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, RepositoryError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_409_CONFLICT
    raise HTTPException(status_code=code, detail={'code': error.code, 'message': error.message})


def _unwrap(result: OperationResult):
    if isinstance(result, Failure):
        _raise_http(result.reason)
    return result.value


# =============================================================================
# Budget Endpoints
# =============================================================================

@router.post(
    "/{project_id}/budget",
    response_model=BudgetCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create the project budget",
    description="Create a DRAFT budget. A project has at most one budget."
)
def create_budget(
    project_id: str,
    budget_data: BudgetCreate,
    service: CostControlService = Depends(get_cost_control_service),
):
    try:
        result = service.create_project_budget(
            project_id,
            [c.model_dump() for c in budget_data.categories],
            budget_data.currency,
        )
    except DomainError as e:
        _raise_http(e)
    return _unwrap(result)


@router.post("/{project_id}/budget/activate", response_model=BudgetResponse, summary="Activate the budget")
def activate_budget(project_id: str, service: CostControlService = Depends(get_cost_control_service)):
    try:
        result = service.activate_budget(project_id)
    except DomainError as e:
        _raise_http(e)
    return _unwrap(result).to_dict()


@router.post("/{project_id}/budget/lock", response_model=BudgetResponse, summary="Lock the budget")
def lock_budget(project_id: str, service: CostControlService = Depends(get_cost_control_service)):
    try:
        result = service.lock_budget(project_id)
    except DomainError as e:
        _raise_http(e)
    return _unwrap(result).to_dict()


# =============================================================================
# Cost Endpoints
# =============================================================================

@router.post(
    "/{project_id}/costs",
    response_model=CostRecorded,
    status_code=status.HTTP_201_CREATED,
    summary="Record an actual cost",
)
def record_cost(
    project_id: str,
    cost_data: CostEntryCreate,
    service: CostControlService = Depends(get_cost_control_service),
):
    try:
        entry = CostEntry(
            project_id=project_id,
            category=cost_data.category,
            amount=cost_data.amount,
            entry_date=cost_data.entry_date,
            recorded_by=cost_data.recorded_by,
            currency=cost_data.currency or service.config.default_currency,
            description=cost_data.description,
        )
        result = service.record_actual_cost(project_id, entry)
    except DomainError as e:
        _raise_http(e)
    return _unwrap(result)


@router.post(
    "/{project_id}/costs/{cost_id}/reverse",
    response_model=CostReversed,
    status_code=status.HTTP_201_CREATED,
    summary="Reverse a recorded cost",
)
def reverse_cost(
    project_id: str,
    cost_id: str,
    reverse_data: CostReverse,
    service: CostControlService = Depends(get_cost_control_service),
):
    try:
        result = service.reverse_cost(
            project_id, cost_id, reverse_data.recorded_by, reverse_data.on_date, reverse_data.reason
        )
    except DomainError as e:
        _raise_http(e)
    return _unwrap(result)


# =============================================================================
# Analysis Endpoints
# =============================================================================

@router.get("/{project_id}/variance", summary="Budget vs actual variance")
def get_variance(
    project_id: str,
    as_of: Optional[date] = Query(None, description="Analysis date (today by default)"),
    service: CostControlService = Depends(get_cost_control_service),
) -> Dict[str, Any]:
    try:
        return service.analyze_cost_variance(project_id, as_of).to_dict()
    except DomainError as e:
        _raise_http(e)


@router.get("/{project_id}/forecast", summary="Final cost forecast")
def get_forecast(
    project_id: str,
    as_of: Optional[date] = Query(None),
    service: CostControlService = Depends(get_cost_control_service),
) -> Dict[str, Any]:
    try:
        return service.generate_cost_forecast(project_id, as_of).to_dict()
    except DomainError as e:
        _raise_http(e)


@router.get("/{project_id}/alerts", summary="Prioritized cost alerts")
def get_alerts(
    project_id: str,
    as_of: Optional[date] = Query(None),
    service: CostControlService = Depends(get_cost_control_service),
) -> Dict[str, Any]:
    try:
        alerts = service.evaluate_cost_alerts(project_id, as_of)
    except DomainError as e:
        _raise_http(e)
    return {'project_id': project_id, 'alerts': [a.to_dict() for a in alerts], 'total': len(alerts)}


@router.get("/{project_id}/optimization", summary="Optimization recommendations")
def get_optimization(
    project_id: str,
    as_of: Optional[date] = Query(None),
    service: CostControlService = Depends(get_cost_control_service),
) -> Dict[str, Any]:
    try:
        return service.generate_optimization_recommendations(project_id, as_of).to_dict()
    except DomainError as e:
        _raise_http(e)


@router.get("/{project_id}/strategy", summary="Cost control strategy")
def get_strategy(
    project_id: str,
    as_of: Optional[date] = Query(None),
    service: CostControlService = Depends(get_cost_control_service),
) -> Dict[str, Any]:
    try:
        return service.develop_cost_control_strategy(project_id, as_of).to_dict()
    except DomainError as e:
        _raise_http(e)
