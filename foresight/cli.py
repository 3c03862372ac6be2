"""
CLI interface for inspecting persisted foresight state.

Reads the directory written by a JSONFileStateStore and prints selector
performance, calibration quality and experiment analyses.
"""

import sys
from pathlib import Path

import click

from foresight.errors import ValidationError
from foresight.experiments import ABTestingFramework
from foresight.persistence import JSONFileStateStore
from foresight.scoring import ConfidenceScorer
from foresight.selection import DynamicModelSelector

state_dir_option = click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("foresight_state"),
    show_default=True,
    help="Directory of the JSON state store",
)


@click.group()
def cli():
    """Foresight prediction aggregation CLI."""
    pass


@cli.command()
@state_dir_option
def models(state_dir: Path):
    """Show selector performance for every known predictor."""
    selector = DynamicModelSelector(store=JSONFileStateStore(state_dir))
    loaded = selector.load_state()
    if not loaded:
        click.echo(f"No predictor performance found in {state_dir}")
        return
    click.echo(selector.get_performance_report().summary())


@cli.command()
@state_dir_option
def calibration(state_dir: Path):
    """Show calibration bins and reliability metrics."""
    scorer = ConfidenceScorer(store=JSONFileStateStore(state_dir))
    if not scorer.load_state():
        click.echo(f"No calibration data found in {state_dir}")
        return
    click.echo(scorer.calibration_summary().summary())


@cli.command()
@click.argument("test_id")
@state_dir_option
def analyze(test_id: str, state_dir: Path):
    """Analyze an A/B test."""
    framework = ABTestingFramework(predictors={}, store=JSONFileStateStore(state_dir))
    framework.load_state()
    try:
        analysis = framework.analyze_test(test_id)
    except ValidationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(analysis.summary())


if __name__ == "__main__":
    cli()
