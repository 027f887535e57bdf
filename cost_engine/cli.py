"""
CLI for the Cost Control Engine.

Usage:
    cost-engine init-db
    cost-engine add-project P-100 --name "Clinic" --start 2024-01-01 --end 2024-12-31
    cost-engine create-budget P-100 -c labor=100000 -c material=50000
    cost-engine record-cost P-100 labor 1200.50 --date 2024-02-01 --by jdoe
    cost-engine variance P-100
    cost-engine refresh-forecasts

Commands print JSON reports to stdout.
"""
import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Tuple

import click

from cost_engine import __version__
from cost_engine.config import CostEngineConfig, get_config
from cost_engine.domain.entities import CostEntry, Project, ProjectStatus, ProjectTimeline
from cost_engine.domain.exceptions import DomainError
from cost_engine.domain.services import CostControlService, ForecastRefreshJob
from cost_engine.domain.result import Failure
from cost_engine.infrastructure.repositories import (
    SqlBudgetRepository,
    SqlCostRepository,
    SqlProjectRepository,
)
from cost_engine.models import DEFAULT_DATABASE_URL, get_engine, get_session_factory, init_db

logger = logging.getLogger(__name__)


class CliContext:
    """Database session and service shared by a CLI invocation."""

    def __init__(self, database_url: str, config: CostEngineConfig):
        self.engine = get_engine(database_url)
        self.config = config
        self._session = None

    @property
    def session(self):
        if self._session is None:
            self._session = get_session_factory(self.engine)()
        return self._session

    @property
    def projects(self) -> SqlProjectRepository:
        return SqlProjectRepository(self.session)

    def service(self) -> CostControlService:
        return CostControlService(
            self.projects,
            SqlBudgetRepository(self.session),
            SqlCostRepository(self.session),
            config=self.config,
        )

    def close(self) -> None:
        if self._session is not None:
            self._session.close()


def _parse_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise click.BadParameter(f"'{value}' is not a YYYY-MM-DD date")


def _emit(payload) -> None:
    click.echo(json.dumps(payload, indent=2))


def _fail(message: str) -> None:
    click.echo(click.style(message, fg='red'), err=True)
    raise click.Abort()


def _run(ctx: click.Context, action):
    """Run an action against the service, reporting domain errors."""
    try:
        return action(ctx.obj.service())
    except DomainError as e:
        _fail(f"{e.code}: {e.message}")


@click.group()
@click.version_option(version=__version__)
@click.option('--database-url', default=DEFAULT_DATABASE_URL, show_default=True,
              envvar='COST_ENGINE_DATABASE_URL', help='SQLAlchemy database URL')
@click.option('--config', 'config_path', default=None, type=click.Path(exists=True),
              help='Path to an engine configuration YAML file')
@click.option('--verbose', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx: click.Context, database_url: str, config_path: Optional[str], verbose: bool):
    """Cost Control & Forecasting Engine CLI.

    Plan budgets, record actual costs and produce variance, forecast,
    alert and control strategy reports.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    config = CostEngineConfig(Path(config_path)) if config_path else get_config()
    ctx.obj = CliContext(database_url, config)
    ctx.call_on_close(ctx.obj.close)


@cli.command('init-db')
@click.pass_context
def init_db_command(ctx: click.Context):
    """Create the database tables."""
    init_db(ctx.obj.engine)
    click.echo(click.style("Database initialized", fg='green'))


@cli.command('add-project')
@click.argument('project_id')
@click.option('--name', required=True, help='Project name')
@click.option('--start', 'start', required=True, help='Planned start (YYYY-MM-DD)')
@click.option('--end', 'end', required=True, help='Planned end (YYYY-MM-DD)')
@click.option('--status', type=click.Choice([s.value for s in ProjectStatus]), default='active')
@click.option('--percent-complete', type=float, default=0.0, help='Reported progress, 0-100')
@click.option('--type', 'project_type', default=None, help='Project type')
@click.pass_context
def add_project(ctx: click.Context, project_id: str, name: str, start: str, end: str,
                status: str, percent_complete: float, project_type: Optional[str]):
    """Register or update a project view."""
    try:
        project = Project(
            project_id=project_id,
            name=name,
            status=ProjectStatus(status),
            timeline=ProjectTimeline(_parse_date(start), _parse_date(end), percent_complete),
            project_type=project_type,
        )
        ctx.obj.projects.save(project)
    except DomainError as e:
        _fail(f"{e.code}: {e.message}")
    click.echo(click.style(f"Project {project_id} saved", fg='green'))


@cli.command('create-budget')
@click.argument('project_id')
@click.option('--category', '-c', 'categories', multiple=True, required=True,
              help='Category allocation as name=amount (repeatable)')
@click.option('--currency', default=None, help='ISO currency code')
@click.pass_context
def create_budget(ctx: click.Context, project_id: str, categories: Tuple[str, ...], currency: Optional[str]):
    """Create the budget of a project."""
    parsed: List[dict] = []
    for item in categories:
        name, sep, amount = item.partition('=')
        if not sep:
            raise click.BadParameter(f"'{item}' must look like name=amount")
        parsed.append({'name': name.strip(), 'allocated_amount': amount.strip()})

    result = _run(ctx, lambda s: s.create_project_budget(project_id, parsed, currency))
    if isinstance(result, Failure):
        _fail(f"{result.code}: {result.message}")
    _emit({'budget_id': result.value['budget_id'], 'total_budget': str(result.value['total_budget'])})


@cli.command('activate-budget')
@click.argument('project_id')
@click.pass_context
def activate_budget(ctx: click.Context, project_id: str):
    """Move a budget from DRAFT to ACTIVE."""
    result = _run(ctx, lambda s: s.activate_budget(project_id))
    if isinstance(result, Failure):
        _fail(f"{result.code}: {result.message}")
    _emit(result.value.to_dict())


@cli.command('record-cost')
@click.argument('project_id')
@click.argument('category')
@click.argument('amount')
@click.option('--date', 'entry_date', default=None, help='Cost date (YYYY-MM-DD, today by default)')
@click.option('--by', 'recorded_by', required=True, help='Who recorded the cost')
@click.option('--currency', default=None, help='ISO currency code')
@click.option('--description', default='', help='Description')
@click.pass_context
def record_cost(ctx: click.Context, project_id: str, category: str, amount: str,
                entry_date: Optional[str], recorded_by: str, currency: Optional[str], description: str):
    """Record an actual cost."""
    def action(service: CostControlService):
        entry = CostEntry(
            project_id=project_id,
            category=category,
            amount=amount,
            entry_date=_parse_date(entry_date) or service.clock(),
            recorded_by=recorded_by,
            currency=currency or service.config.default_currency,
            description=description,
        )
        return service.record_actual_cost(project_id, entry)

    result = _run(ctx, action)
    if isinstance(result, Failure):
        _fail(f"{result.code}: {result.message}")
    _emit(result.value)


# =============================================================================
# Reports
# =============================================================================

def _as_of_option(func):
    return click.option('--as-of', default=None, help='Report date (YYYY-MM-DD, today by default)')(func)


@cli.command()
@click.argument('project_id')
@_as_of_option
@click.pass_context
def variance(ctx: click.Context, project_id: str, as_of: Optional[str]):
    """Budget vs actual variance report."""
    _emit(_run(ctx, lambda s: s.analyze_cost_variance(project_id, _parse_date(as_of))).to_dict())


@cli.command()
@click.argument('project_id')
@_as_of_option
@click.pass_context
def forecast(ctx: click.Context, project_id: str, as_of: Optional[str]):
    """Final cost forecast report."""
    _emit(_run(ctx, lambda s: s.generate_cost_forecast(project_id, _parse_date(as_of))).to_dict())


@cli.command()
@click.argument('project_id')
@_as_of_option
@click.pass_context
def alerts(ctx: click.Context, project_id: str, as_of: Optional[str]):
    """Prioritized cost alerts."""
    found = _run(ctx, lambda s: s.evaluate_cost_alerts(project_id, _parse_date(as_of)))
    _emit([a.to_dict() for a in found])


@cli.command()
@click.argument('project_id')
@_as_of_option
@click.pass_context
def optimize(ctx: click.Context, project_id: str, as_of: Optional[str]):
    """Optimization recommendations."""
    _emit(_run(ctx, lambda s: s.generate_optimization_recommendations(project_id, _parse_date(as_of))).to_dict())


@cli.command()
@click.argument('project_id')
@_as_of_option
@click.pass_context
def strategy(ctx: click.Context, project_id: str, as_of: Optional[str]):
    """Cost control strategy."""
    _emit(_run(ctx, lambda s: s.develop_cost_control_strategy(project_id, _parse_date(as_of))).to_dict())


@cli.command('refresh-forecasts')
@click.option('--project', 'project_ids', multiple=True, help='Limit to these projects (repeatable)')
@_as_of_option
@click.pass_context
def refresh_forecasts(ctx: click.Context, project_ids: Tuple[str, ...], as_of: Optional[str]):
    """Recompute forecasts for all (or the given) projects."""
    service = ctx.obj.service()
    job = ForecastRefreshJob(service, project_ids=ctx.obj.projects.list_project_ids)
    summary = job.run(list(project_ids) or None, as_of=_parse_date(as_of))
    _emit(summary.to_dict())
    if summary.failures:
        click.echo(click.style(f"{len(summary.failures)} projects failed", fg='yellow'), err=True)


if __name__ == '__main__':
    cli()
