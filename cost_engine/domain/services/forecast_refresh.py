"""
Forecast Refresh - Nightly batch recomputation of project forecasts.

Projects are processed independently and in no particular order; a
failure in one project is recorded and does not stop the others.
Cancellation is cooperative and checked between projects.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional

from cost_engine.domain.exceptions import DomainError
from .cost_control_service import CostControlService
from .forecast_engine import ForecastReport

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


@dataclass
class RefreshSummary:
    """Outcome of one refresh run."""
    as_of: date
    forecasts: Dict[str, ForecastReport] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def refreshed_count(self) -> int:
        return len(self.forecasts)

    def to_dict(self) -> dict:
        return {
            'as_of': self.as_of.isoformat(),
            'refreshed': sorted(self.forecasts),
            'failures': dict(self.failures),
            'skipped': list(self.skipped),
            'cancelled': self.cancelled,
        }


class ForecastRefreshJob:
    """
    Recomputes forecasts for many projects.

    Args:
        service: Application service used for each project
        project_ids: Callable returning the project ids to refresh when
            run() is called without explicit ids (e.g. a repository listing)
        on_forecast: Optional sink receiving each fresh ForecastReport
    """

    def __init__(
        self,
        service: CostControlService,
        project_ids: Optional[Callable[[], Iterable[str]]] = None,
        on_forecast: Optional[Callable[[ForecastReport], None]] = None,
    ):
        self.service = service
        self.project_ids = project_ids
        self.on_forecast = on_forecast

    def run(
        self,
        project_ids: Optional[Iterable[str]] = None,
        cancel_event: Optional[threading.Event] = None,
        as_of: Optional[date] = None,
    ) -> RefreshSummary:
        """
        Refresh forecasts.

        Args:
            project_ids: Projects to refresh (defaults to the configured source)
            cancel_event: Set to stop before the next project
            as_of: Forecast date (service clock by default)

        Returns:
            RefreshSummary; projects left unprocessed after cancellation are
            listed as skipped
        """
        if project_ids is None:
            project_ids = self.project_ids() if self.project_ids else []
        pending = list(project_ids)
        summary = RefreshSummary(as_of=as_of or self.service.clock())

        for index, project_id in enumerate(pending):
            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                summary.skipped = pending[index:]
                logger.info(f"Forecast refresh cancelled, {len(summary.skipped)} projects skipped")
                break

            try:
                report = self.service.generate_cost_forecast(project_id, summary.as_of)
                if self.on_forecast is not None:
                    self.on_forecast(report)
            except DomainError as e:
                logger.warning(f"Forecast refresh failed for project {project_id}: {e.message}")
                summary.failures[project_id] = e.code
                continue
            except Exception:
                logger.exception(f"Unexpected error refreshing forecast for project {project_id}")
                summary.failures[project_id] = UNEXPECTED_ERROR
                continue

            summary.forecasts[project_id] = report

        logger.info(
            f"Forecast refresh finished: {summary.refreshed_count} refreshed, "
            f"{len(summary.failures)} failed, {len(summary.skipped)} skipped"
        )
        return summary
