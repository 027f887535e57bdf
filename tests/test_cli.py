"""
Tests for the cost-engine CLI.
"""
import json

import pytest
from click.testing import CliRunner

from cost_engine.cli import cli


@pytest.fixture
def run(tmp_path):
    runner = CliRunner()
    database_url = f"sqlite:///{tmp_path / 'cli.db'}"

    def invoke(*args):
        return runner.invoke(cli, ['--database-url', database_url, *args])

    result = invoke('init-db')
    assert result.exit_code == 0, result.output
    result = invoke('add-project', 'P-100', '--name', 'Clinic', '--start', '2024-01-01',
                    '--end', '2024-12-31', '--percent-complete', '50')
    assert result.exit_code == 0, result.output
    return invoke


class TestCli:
    """End-to-end CLI workflow over a SQLite file."""

    def test_budget_and_variance(self, run):
        result = run('create-budget', 'P-100', '-c', 'labor=100000', '-c', 'material=50000')
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)['total_budget'] == "150000.00"

        result = run('record-cost', 'P-100', 'labor', '120000', '--date', '2024-06-01', '--by', 'jdoe')
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)['cost_id']

        result = run('variance', 'P-100', '--as-of', '2024-06-30')
        report = json.loads(result.output)
        labor = next(c for c in report['categories'] if c['category'] == 'labor')
        assert labor['variance'] == "20000.00"
        assert labor['variance_percentage'] == "20.00"

    def test_duplicate_budget_fails(self, run):
        run('create-budget', 'P-100', '-c', 'labor=1000')
        result = run('create-budget', 'P-100', '-c', 'labor=1000')
        assert result.exit_code != 0
        assert "DUPLICATE_BUDGET" in result.output

    def test_bad_category_format(self, run):
        result = run('create-budget', 'P-100', '-c', 'labor')
        assert result.exit_code != 0

    def test_unknown_project(self, run):
        result = run('forecast', 'P-404')
        assert result.exit_code != 0
        assert "PROJECT_NOT_FOUND" in result.output

    def test_refresh_forecasts(self, run):
        run('create-budget', 'P-100', '-c', 'labor=1000')
        result = run('refresh-forecasts', '--as-of', '2024-06-30')
        assert result.exit_code == 0, result.output
        summary = json.loads(result.output)
        assert summary['refreshed'] == ['P-100']
        assert summary['as_of'] == "2024-06-30"
