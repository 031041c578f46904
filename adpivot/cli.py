"""CLI entry point for adpivot."""

from __future__ import annotations

import logging
from typing import Tuple

import click

from adpivot import __version__
from adpivot.aggregate import aggregate_by_dimension
from adpivot.config import load_config
from adpivot.connectors.google_sheets import GoogleSheetsConfigError, push_tabular_file
from adpivot.io_csv import InputSchemaError, read_raw_rows
from adpivot.narrative import build_analysis_prompt, generate_narrative
from adpivot.pipeline import resolve_mappings, run_report
from adpivot.processor import process_rows
from adpivot.quality import audit_quality
from adpivot.schema import TOTAL_AXES


def _load_records(input_path: str, config_path: str):
    cfg = load_config(config_path)
    try:
        raw_rows = read_raw_rows(input_path)
    except InputSchemaError as exc:
        raise click.ClickException(str(exc))
    mappings = resolve_mappings(raw_rows, cfg.mappings)
    return cfg, process_rows(raw_rows, mappings, cfg.dimensions, cfg.formulas)


@click.group()
@click.version_option(version=__version__, prog_name="adpivot")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """adpivot — ad performance pivot tables and data-quality audit."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--input", "input_path", required=True, help="Path to ads CSV/XLSX export")
@click.option("--out", "output_dir", default=None, help="Output directory")
@click.option("--config", "config_path", default="config.yaml", help="Config file path")
@click.option("--rows", "row_dims", multiple=True, help="Row dimension (repeatable)")
@click.option("--cols", "col_dims", multiple=True, help="Column dimension (repeatable)")
@click.option("--values", "value_keys", multiple=True, help="Metric or formula name (repeatable)")
@click.option("--format", "fmt", type=click.Choice(["csv", "xlsx"]), default=None)
@click.option("--subtotal/--no-subtotal", default=None, help="Emit group subtotal rows")
@click.option("--total-axis", type=click.Choice(list(TOTAL_AXES)), default=None)
def pivot(
    input_path: str,
    output_dir: str | None,
    config_path: str,
    row_dims: Tuple[str, ...],
    col_dims: Tuple[str, ...],
    value_keys: Tuple[str, ...],
    fmt: str | None,
    subtotal: bool | None,
    total_axis: str | None,
):
    """Build the pivot table and write pivot / quality exports."""
    cfg = load_config(config_path)
    if row_dims:
        cfg.pivot.row_dims = list(row_dims)
    if col_dims:
        cfg.pivot.col_dims = list(col_dims)
    if value_keys:
        cfg.pivot.value_keys = list(value_keys)
    if subtotal is not None:
        cfg.pivot.show_subtotal = subtotal
    if total_axis:
        cfg.pivot.total_axis = total_axis
    if fmt:
        cfg.export.format = fmt
    output_dir = output_dir or cfg.export.output_dir

    click.echo(f"📂 Input:  {input_path}")
    click.echo(f"📂 Output: {output_dir}")

    try:
        summary = run_report(input_path, output_dir, cfg)
    except InputSchemaError as exc:
        raise click.ClickException(str(exc))

    click.echo("")
    click.echo("✅ Pivot complete!")
    click.echo(f"   Raw rows:        {summary['total_rows']}")
    click.echo(f"   Records in scope: {summary['records']}")
    click.echo(f"   Pivot rows:      {summary['pivot_rows']}")
    worst = summary.get("quality_worst")
    if worst:
        click.echo(
            f"   Weakest dimension: {worst['dimension']} "
            f"({worst['match_rate'] * 100:.1f}% matched)"
        )
    click.echo(f"   Files written to: {output_dir}/")


@cli.command()
@click.option("--input", "input_path", required=True, help="Path to ads CSV/XLSX export")
@click.option("--config", "config_path", default="config.yaml", help="Config file path")
def audit(input_path: str, config_path: str):
    """Print per-dimension match rates, worst first."""
    cfg, processed = _load_records(input_path, config_path)
    report = audit_quality(processed.records, cfg.dimensions)

    click.echo(f"📊 Data quality over {report.total_records} records")
    for dq in report.dimensions:
        click.echo(
            f"   {dq.label:<20} {dq.matched:>6}/{dq.total:<6} "
            f"{dq.match_rate * 100:6.1f}%  ({dq.source})"
        )
    click.echo(f"   Records with any miss: {report.records_with_miss}")


@cli.command()
@click.option("--input", "input_path", required=True, help="Path to ads CSV/XLSX export")
@click.option("--dimension", "dim_label", required=True, help="Dimension label to aggregate by")
@click.option("--config", "config_path", default="config.yaml", help="Config file path")
@click.option("--mock", is_flag=True, help="Print an offline MockProvider report instead")
def prompt(input_path: str, dim_label: str, config_path: str, mock: bool):
    """Print the AI analysis prompt for one dimension's aggregation."""
    cfg, processed = _load_records(input_path, config_path)
    table = aggregate_by_dimension(processed.records, dim_label, cfg.formulas)
    dates = processed.dates
    start, end = (dates[0], dates[-1]) if dates else ("", "")
    labels = [d.label for d in cfg.dimensions]

    if mock:
        from adpivot.providers.mock_provider import MockProvider

        click.echo(generate_narrative(MockProvider(), start, end, labels, table))
    else:
        click.echo(build_analysis_prompt(start, end, labels, table))


@cli.group("sheets")
def sheets_group():
    """Google Sheets helper commands."""
    pass


@sheets_group.command("push")
@click.option("--spreadsheet_id", required=True, help="Target Google Sheet ID")
@click.option("--worksheet", required=True, help="Worksheet/tab name")
@click.option("--input", "input_path", required=True, help="Exported CSV/TSV/XLSX path")
def sheets_push(spreadsheet_id: str, worksheet: str, input_path: str):
    """Push a pivot export to Google Sheets (optional connector)."""
    try:
        n = push_tabular_file(spreadsheet_id, worksheet, input_path)
    except GoogleSheetsConfigError as exc:
        raise click.ClickException(str(exc))
    except Exception as exc:
        raise click.ClickException(f"Failed to push to Google Sheets: {exc}")

    click.echo(
        f"✅ Pushed {n} rows to worksheet '{worksheet}' in spreadsheet {spreadsheet_id}."
    )


if __name__ == "__main__":
    cli()
