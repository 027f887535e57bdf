"""
Project View - The slice of the external project aggregate the engine reads.

Projects are owned elsewhere; the engine only consumes status and timeline
by reference through ProjectRepository.find_by_id.
"""
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from ..exceptions import ValidationError


class ProjectStatus(str, Enum):
    """Status of the owning project."""
    PLANNING = "planning"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


CLOSED_STATUSES = frozenset({ProjectStatus.COMPLETED, ProjectStatus.CANCELLED})


@dataclass(frozen=True)
class ProjectTimeline:
    """
    Planned project window and reported progress.

    Attributes:
        start_date: Planned start
        end_date: Planned completion
        percent_complete: Reported physical progress, 0-100
    """

    start_date: date
    end_date: date
    percent_complete: float = 0.0

    def __post_init__(self):
        if self.end_date < self.start_date:
            raise ValidationError(
                "end_date",
                f"end date ({self.end_date}) must not precede start date ({self.start_date})"
            )
        if not 0 <= self.percent_complete <= 100:
            raise ValidationError("percent_complete", "must be between 0 and 100")

    def duration_days(self) -> int:
        """Planned duration in days."""
        return (self.end_date - self.start_date).days

    def remaining_days(self, as_of: date) -> int:
        """Days left until the planned end (0 once passed)."""
        return max(0, (self.end_date - as_of).days)

    def elapsed_days(self, as_of: date) -> int:
        """Days since start, bounded by the planned duration."""
        return min(max(0, (as_of - self.start_date).days), self.duration_days())


@dataclass(frozen=True)
class Project:
    """
    Read-only project view.

    Attributes:
        project_id: External identifier
        name: Display name
        status: Current status
        timeline: Planned window and progress
        project_type: Free-form type (e.g. 'commercial')
    """

    project_id: str
    name: str
    status: ProjectStatus
    timeline: ProjectTimeline
    project_type: Optional[str] = None

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_STATUSES
