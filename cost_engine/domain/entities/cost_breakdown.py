"""
Cost Breakdown - Immutable aggregate of labor, material, equipment and
overhead cost items.

Each item validates its own fields at construction. Category totals and
the overall total are computed on read; nothing is cached, so
total_cost always equals the sum of the four category totals.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, Tuple

from ..exceptions import ValidationError
from .money import Money, normalize_currency, quantize_amount, to_decimal


class CostCategory(str, Enum):
    """Standard cost categories of a breakdown."""
    LABOR = "labor"
    MATERIAL = "material"
    EQUIPMENT = "equipment"
    OVERHEAD = "overhead"


def _require_text(field_name: str, value: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(field_name, "must not be empty")
    return str(value).strip()


def _require_non_negative(field_name: str, value) -> Decimal:
    number = to_decimal(value, field_name)
    if number < 0:
        raise ValidationError(field_name, "must be non-negative")
    return number


# =============================================================================
# Cost Items
# =============================================================================

@dataclass(frozen=True)
class LaborCostItem:
    """Labor cost: hours worked x hourly rate."""
    role: str
    hours: Decimal
    hourly_rate: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'role', _require_text('role', self.role))
        object.__setattr__(self, 'hours', _require_non_negative('hours', self.hours))
        object.__setattr__(self, 'hourly_rate', _require_non_negative('hourly_rate', self.hourly_rate))

    @property
    def total_amount(self) -> Decimal:
        return quantize_amount(self.hours * self.hourly_rate)


@dataclass(frozen=True)
class MaterialCostItem:
    """Material cost: quantity x unit price."""
    material: str
    quantity: Decimal
    unit_price: Decimal
    unit: str = "ea"

    def __post_init__(self):
        object.__setattr__(self, 'material', _require_text('material', self.material))
        object.__setattr__(self, 'quantity', _require_non_negative('quantity', self.quantity))
        object.__setattr__(self, 'unit_price', _require_non_negative('unit_price', self.unit_price))
        object.__setattr__(self, 'unit', _require_text('unit', self.unit))

    @property
    def total_amount(self) -> Decimal:
        return quantize_amount(self.quantity * self.unit_price)


@dataclass(frozen=True)
class EquipmentCostItem:
    """Equipment cost: usage hours x hourly rate."""
    equipment: str
    usage_hours: Decimal
    hourly_rate: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'equipment', _require_text('equipment', self.equipment))
        object.__setattr__(self, 'usage_hours', _require_non_negative('usage_hours', self.usage_hours))
        object.__setattr__(self, 'hourly_rate', _require_non_negative('hourly_rate', self.hourly_rate))

    @property
    def total_amount(self) -> Decimal:
        return quantize_amount(self.usage_hours * self.hourly_rate)


@dataclass(frozen=True)
class OverheadCostItem:
    """Overhead cost: allocation base x rate (e.g. 12% of site costs)."""
    description: str
    allocation_base: Decimal
    rate: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'description', _require_text('description', self.description))
        object.__setattr__(self, 'allocation_base', _require_non_negative('allocation_base', self.allocation_base))
        object.__setattr__(self, 'rate', _require_non_negative('rate', self.rate))

    @property
    def total_amount(self) -> Decimal:
        return quantize_amount(self.allocation_base * self.rate)


# =============================================================================
# Breakdown
# =============================================================================

def _sum_items(items: Iterable) -> Decimal:
    return sum((item.total_amount for item in items), Decimal("0.00"))


@dataclass(frozen=True)
class CostBreakdown:
    """
    Immutable cost breakdown.

    Constructing a new breakdown is the only way to change one.

    Attributes:
        currency: ISO currency of every total
        labor_items: Labor cost items
        material_items: Material cost items
        equipment_items: Equipment cost items
        overhead_items: Overhead cost items
    """

    currency: str = "USD"
    labor_items: Tuple[LaborCostItem, ...] = field(default_factory=tuple)
    material_items: Tuple[MaterialCostItem, ...] = field(default_factory=tuple)
    equipment_items: Tuple[EquipmentCostItem, ...] = field(default_factory=tuple)
    overhead_items: Tuple[OverheadCostItem, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'currency', normalize_currency(self.currency))
        expected = (
            ('labor_items', LaborCostItem),
            ('material_items', MaterialCostItem),
            ('equipment_items', EquipmentCostItem),
            ('overhead_items', OverheadCostItem),
        )
        for name, item_type in expected:
            items = tuple(getattr(self, name))
            for item in items:
                if not isinstance(item, item_type):
                    raise ValidationError(name, f"expected {item_type.__name__}, got {type(item).__name__}")
            object.__setattr__(self, name, items)

    @classmethod
    def create(
        cls,
        labor: Iterable[LaborCostItem] = (),
        material: Iterable[MaterialCostItem] = (),
        equipment: Iterable[EquipmentCostItem] = (),
        overhead: Iterable[OverheadCostItem] = (),
        currency: str = "USD",
    ) -> 'CostBreakdown':
        """
        Create a validated breakdown.

        Raises:
            ValidationError: If an item is of the wrong kind or invalid
        """
        return cls(
            currency=currency,
            labor_items=tuple(labor),
            material_items=tuple(material),
            equipment_items=tuple(equipment),
            overhead_items=tuple(overhead),
        )

    @property
    def labor_total(self) -> Money:
        return Money(_sum_items(self.labor_items), self.currency)

    @property
    def material_total(self) -> Money:
        return Money(_sum_items(self.material_items), self.currency)

    @property
    def equipment_total(self) -> Money:
        return Money(_sum_items(self.equipment_items), self.currency)

    @property
    def overhead_total(self) -> Money:
        return Money(_sum_items(self.overhead_items), self.currency)

    @property
    def total_cost(self) -> Money:
        return self.labor_total + self.material_total + self.equipment_total + self.overhead_total

    def category_totals(self) -> Dict[CostCategory, Money]:
        """Totals keyed by standard category."""
        return {
            CostCategory.LABOR: self.labor_total,
            CostCategory.MATERIAL: self.material_total,
            CostCategory.EQUIPMENT: self.equipment_total,
            CostCategory.OVERHEAD: self.overhead_total,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'currency': self.currency,
            'labor_total': str(self.labor_total.amount),
            'material_total': str(self.material_total.amount),
            'equipment_total': str(self.equipment_total.amount),
            'overhead_total': str(self.overhead_total.amount),
            'total_cost': str(self.total_cost.amount),
        }
