"""
Cost Ledger - Append-only record of cost entries for one project.

The ledger is the only stateful, order-sensitive part of the engine.
Appends are serialized by a per-ledger lock; reads return immutable
snapshots in insertion order. There are no update or delete operations.
"""
import threading
from collections import defaultdict
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from ..exceptions import CostEntryNotFoundError, EntryAlreadyReversedError, ValidationError
from .cost_entry import CostEntry, EntryKind
from .money import normalize_currency


class CostLedger:
    """
    Append-only cost ledger.

    The first appended entry establishes the ledger currency unless one is
    given up front; later entries must match it.
    """

    def __init__(self, project_id: str, currency: Optional[str] = None):
        if not project_id:
            raise ValidationError("project_id", "must not be empty")
        self.project_id = str(project_id)
        self._currency = normalize_currency(currency) if currency else None
        self._entries: List[CostEntry] = []
        self._by_id: Dict[str, CostEntry] = {}
        self._reversed_ids = set()
        self._lock = threading.Lock()

    @classmethod
    def from_entries(
        cls,
        project_id: str,
        entries: Iterable[CostEntry],
        currency: Optional[str] = None,
    ) -> 'CostLedger':
        """
        Rebuild a ledger from persisted entries, keeping their ids.

        Entries are replayed in sequence order through the same validation
        as append.
        """
        ledger = cls(project_id, currency)
        ordered = sorted(entries, key=lambda e: (e.sequence is None, e.sequence or 0))
        with ledger._lock:
            for entry in ordered:
                ledger._store(entry, keep_identity=True)
        return ledger

    # =========================================================================
    # Writes
    # =========================================================================

    @property
    def currency(self) -> Optional[str]:
        return self._currency

    @property
    def version(self) -> int:
        """Number of entries appended so far."""
        return len(self._entries)

    def append(self, entry: CostEntry) -> str:
        """
        Append an entry and return its id.

        Raises:
            ValidationError: On negative amount, currency mismatch, wrong
                project, or an invalid reversal reference
            EntryAlreadyReversedError: If the referenced entry cannot be reversed
        """
        with self._lock:
            return self._store(entry, keep_identity=False).entry_id

    def append_entry(self, entry: CostEntry) -> CostEntry:
        """Append and return the stored entry (with id and sequence)."""
        with self._lock:
            return self._store(entry, keep_identity=False)

    def reverse(
        self,
        entry_id: str,
        recorded_by: str,
        on_date: date,
        reason: str = "",
    ) -> CostEntry:
        """
        Append a compensating entry for an existing standard entry.

        Returns:
            The stored reversal entry
        """
        with self._lock:
            original = self._by_id.get(entry_id)
            if original is None:
                raise CostEntryNotFoundError(entry_id)
            reversal = CostEntry(
                project_id=self.project_id,
                category=original.category,
                amount=original.amount,
                currency=original.currency,
                entry_date=on_date,
                recorded_by=recorded_by,
                description=reason or f"Reversal of {entry_id}",
                kind=EntryKind.REVERSAL,
                reverses_entry_id=entry_id,
            )
            return self._store(reversal, keep_identity=False)

    def _store(self, entry: CostEntry, keep_identity: bool) -> CostEntry:
        if entry.project_id != self.project_id:
            raise ValidationError(
                "project_id",
                f"entry for project '{entry.project_id}' cannot be added to ledger of '{self.project_id}'"
            )
        if entry.amount < 0:
            raise ValidationError("amount", "cost entry amount must be non-negative")
        if self._currency is not None and entry.currency != self._currency:
            raise ValidationError(
                "currency",
                f"entry currency {entry.currency} does not match ledger currency {self._currency}"
            )
        if entry.is_reversal:
            self._check_reversal(entry)

        if keep_identity and entry.entry_id:
            stored = replace(entry, sequence=len(self._entries) + 1)
        else:
            stored = replace(entry, entry_id=str(uuid4()), sequence=len(self._entries) + 1)
        if stored.entry_id in self._by_id:
            raise ValidationError("entry_id", f"duplicate entry id '{stored.entry_id}'")

        if self._currency is None:
            self._currency = stored.currency
        self._entries.append(stored)
        self._by_id[stored.entry_id] = stored
        if stored.is_reversal:
            self._reversed_ids.add(stored.reverses_entry_id)
        return stored

    def _check_reversal(self, entry: CostEntry) -> None:
        original = self._by_id.get(entry.reverses_entry_id)
        if original is None:
            raise ValidationError(
                "reverses_entry_id",
                f"entry '{entry.reverses_entry_id}' is not in this ledger"
            )
        if original.is_reversal or original.entry_id in self._reversed_ids:
            raise EntryAlreadyReversedError(original.entry_id)
        if original.category != entry.category or original.amount != entry.amount:
            raise ValidationError(
                "reverses_entry_id",
                "a reversal must match the original entry's category and amount"
            )
        if entry.entry_date < original.entry_date:
            raise ValidationError(
                "on_date",
                f"reversal date {entry.entry_date} precedes the original entry date {original.entry_date}"
            )

    # =========================================================================
    # Reads
    # =========================================================================

    @property
    def entries(self) -> Tuple[CostEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def get(self, entry_id: str) -> CostEntry:
        entry = self._by_id.get(entry_id)
        if entry is None:
            raise CostEntryNotFoundError(entry_id)
        return entry

    def is_reversed(self, entry_id: str) -> bool:
        return entry_id in self._reversed_ids

    def entries_by_category(self, category: str) -> Tuple[CostEntry, ...]:
        """Entries of one category, in insertion order."""
        return tuple(e for e in self.entries if e.category == category)

    def entries_in_range(self, start: date, end: date) -> Tuple[CostEntry, ...]:
        """Entries dated within [start, end], in insertion order."""
        if end < start:
            raise ValidationError("end", "range end must not precede range start")
        return tuple(e for e in self.entries if start <= e.entry_date <= end)

    def entries_up_to(self, as_of: Optional[date]) -> Tuple[CostEntry, ...]:
        """Entries dated on or before as_of (all entries when None)."""
        if as_of is None:
            return self.entries
        return tuple(e for e in self.entries if e.entry_date <= as_of)

    def total(self, as_of: Optional[date] = None) -> Decimal:
        """Net recorded cost, reversals subtracted."""
        return sum((e.signed_amount for e in self.entries_up_to(as_of)), Decimal("0.00"))

    def totals_by_category(self, as_of: Optional[date] = None) -> Dict[str, Decimal]:
        """Net recorded cost per category."""
        totals: Dict[str, Decimal] = defaultdict(lambda: Decimal("0.00"))
        for entry in self.entries_up_to(as_of):
            totals[entry.category] += entry.signed_amount
        return dict(totals)

    def first_entry_date(self) -> Optional[date]:
        entries = self.entries
        return min(e.entry_date for e in entries) if entries else None

    def last_entry_date(self) -> Optional[date]:
        entries = self.entries
        return max(e.entry_date for e in entries) if entries else None

    def __len__(self) -> int:
        return len(self._entries)
