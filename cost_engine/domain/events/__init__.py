"""
Domain events published by the cost control engine.
"""

from .bus import (
    DomainEvent,
    EventBus,
    InMemoryEventBus,
    NullEventBus,
    BUDGET_CREATED,
    BUDGET_STATUS_CHANGED,
    COST_RECORDED,
    COST_REVERSED,
    COST_ALERT,
)

__all__ = [
    'DomainEvent',
    'EventBus',
    'InMemoryEventBus',
    'NullEventBus',
    'BUDGET_CREATED',
    'BUDGET_STATUS_CHANGED',
    'COST_RECORDED',
    'COST_REVERSED',
    'COST_ALERT',
]
