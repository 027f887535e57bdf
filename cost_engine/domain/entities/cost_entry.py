"""
Cost Entry - One recorded actual cost.

Entries are immutable once appended to a ledger. Corrections are new
compensating REVERSAL entries; the stored amount is always non-negative
and the reversal kind flips its sign in totals.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from ..exceptions import ValidationError
from .money import normalize_currency, quantize_amount, to_decimal


class EntryKind(str, Enum):
    """Semantic tag of a ledger entry."""
    STANDARD = "standard"
    REVERSAL = "reversal"


@dataclass(frozen=True)
class CostEntry:
    """
    Actual cost recorded against a budget category.

    Sign and currency are checked by the ledger on append, not here, so a
    request can be built before the ledger's currency is known.

    Attributes:
        project_id: Owning project
        category: Budget category name
        amount: Recorded amount
        currency: ISO currency code
        entry_date: Date the cost was incurred
        recorded_by: User or system that recorded the entry
        description: Free-text description
        kind: STANDARD or REVERSAL
        reverses_entry_id: For reversals, the entry being compensated
        entry_id: Assigned by the ledger on append
        sequence: 1-based position in the ledger, assigned on append
    """

    project_id: str
    category: str
    amount: Decimal
    entry_date: date
    recorded_by: str
    currency: str = "USD"
    description: str = ""
    kind: EntryKind = EntryKind.STANDARD
    reverses_entry_id: Optional[str] = None
    entry_id: Optional[str] = None
    sequence: Optional[int] = None

    def __post_init__(self):
        for name in ('project_id', 'category', 'recorded_by'):
            value = getattr(self, name)
            if not value or not str(value).strip():
                raise ValidationError(name, "must not be empty")
            object.__setattr__(self, name, str(value).strip())
        if not isinstance(self.entry_date, date):
            raise ValidationError("entry_date", "must be a date")
        object.__setattr__(self, 'amount', quantize_amount(to_decimal(self.amount)))
        object.__setattr__(self, 'currency', normalize_currency(self.currency))
        object.__setattr__(self, 'kind', EntryKind(self.kind))
        if self.kind == EntryKind.REVERSAL and not self.reverses_entry_id:
            raise ValidationError("reverses_entry_id", "reversal entries must reference an entry")

    @property
    def is_reversal(self) -> bool:
        return self.kind == EntryKind.REVERSAL

    @property
    def signed_amount(self) -> Decimal:
        """Contribution to totals: negative for reversals."""
        return -self.amount if self.is_reversal else self.amount

    def to_dict(self) -> dict:
        """Persisted-state shape of the cost entry."""
        return {
            'cost_id': self.entry_id,
            'sequence': self.sequence,
            'project_id': self.project_id,
            'category': self.category,
            'amount': str(self.amount),
            'currency': self.currency,
            'date': self.entry_date.isoformat(),
            'recorded_by': self.recorded_by,
            'description': self.description,
            'kind': self.kind.value,
            'reverses_entry_id': self.reverses_entry_id,
        }
