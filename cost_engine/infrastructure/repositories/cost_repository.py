"""
Cost Repository - Append-only storage of cost entries.

Implements the CostRepository port with an optimistic version check:
an entry is written at sequence expected_version + 1 and
UNIQUE(project_id, sequence) rejects a competing append.
"""
from typing import List

from sqlalchemy.orm import Session

from cost_engine.domain.entities import CostEntry, EntryKind
from cost_engine.domain.entities.money import from_cents, to_cents
from cost_engine.domain.exceptions import ConcurrencyError, ValidationError
from cost_engine.models import CostEntryRecord
from .base_repository import BaseRepository


def to_entry(record: CostEntryRecord) -> CostEntry:
    return CostEntry(
        project_id=record.project_id,
        category=record.category,
        amount=from_cents(record.amount_cents),
        currency=record.currency,
        entry_date=record.entry_date,
        recorded_by=record.recorded_by,
        description=record.description or "",
        kind=EntryKind(record.kind),
        reverses_entry_id=record.reverses_cost_id,
        entry_id=record.cost_id,
        sequence=record.sequence,
    )


class SqlCostRepository(BaseRepository[CostEntryRecord]):
    """Cost entries stored in the cost_entries table."""

    def __init__(self, session: Session):
        super().__init__(session, CostEntryRecord)

    def find_by_project_id(self, project_id: str) -> List[CostEntry]:
        records = self._read(
            "load cost entries",
            lambda: self.session.query(CostEntryRecord)
            .filter(CostEntryRecord.project_id == project_id)
            .order_by(CostEntryRecord.sequence)
            .all(),
        )
        return [to_entry(r) for r in records]

    def save(self, entry: CostEntry, expected_version: int) -> CostEntry:
        """
        Append an entry at sequence expected_version + 1.

        Raises:
            ConcurrencyError: The project's stream is no longer at expected_version
        """
        if not entry.entry_id:
            raise ValidationError("entry_id", "entries must be appended to a ledger before saving")

        current = self._read("count cost entries", lambda: self.count(project_id=entry.project_id))
        if current != expected_version:
            raise ConcurrencyError(entry.project_id, expected_version)

        self.session.add(CostEntryRecord(
            cost_id=entry.entry_id,
            project_id=entry.project_id,
            sequence=expected_version + 1,
            category=entry.category,
            amount_cents=to_cents(entry.amount),
            currency=entry.currency,
            entry_date=entry.entry_date,
            recorded_by=entry.recorded_by,
            description=entry.description,
            kind=entry.kind.value,
            reverses_cost_id=entry.reverses_entry_id,
        ))
        self._commit(
            "save cost entry",
            on_conflict=lambda: ConcurrencyError(entry.project_id, expected_version),
        )
        return entry
