"""Main pipeline — orchestrates import → mapping → records → pivot → audit → export."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from adpivot.config import AppConfig
from adpivot.export import flatten_pivot
from adpivot.io_csv import read_raw_rows, write_matrix, write_quality, write_report
from adpivot.mappers import auto_map
from adpivot.pivot import build_pivot
from adpivot.processor import process_rows
from adpivot.quality import QualityReport, audit_quality
from adpivot.schema import (
    DimensionConfig,
    FormulaField,
    MappingSet,
    PivotResult,
    PivotSpec,
    RawRow,
)

logger = logging.getLogger(__name__)


def recompute(
    raw_rows: Iterable[RawRow],
    mappings: MappingSet,
    dimension_configs: Sequence[DimensionConfig],
    formulas: Sequence[FormulaField],
    spec: PivotSpec,
) -> PivotResult:
    """Rebuild the pivot from scratch; call again whenever any input changes."""
    processed = process_rows(raw_rows, mappings, dimension_configs, formulas)
    return build_pivot(processed.records, spec, formulas)


def column_headers(raw_rows: Iterable[RawRow]) -> List[str]:
    """Union of row keys in first-seen order."""
    headers: List[str] = []
    seen = set()
    for row in raw_rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                headers.append(key)
    return headers


def resolve_mappings(raw_rows: List[RawRow], configured: MappingSet) -> MappingSet:
    if not configured.is_empty():
        return configured
    logger.info("No column mapping configured; auto-mapping from file headers")
    return auto_map(column_headers(raw_rows), previous=configured)


def run_report(
    input_path,
    output_dir,
    cfg: AppConfig,
    spec: Optional[PivotSpec] = None,
) -> Dict[str, Any]:
    """Execute the full report. Returns summary dict.

    Writes ``pivot.<ext>``, ``quality.<ext>`` (when auditing is enabled) and
    ``report.md`` into ``output_dir``.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    ext = "xlsx" if cfg.export.format == "xlsx" else "csv"

    # 1. Read input
    raw_rows = read_raw_rows(input_path)
    mappings = resolve_mappings(raw_rows, cfg.mappings)

    # 2. Normalize + pivot
    processed = process_rows(raw_rows, mappings, cfg.dimensions, cfg.formulas)
    spec = spec or cfg.pivot.to_spec()
    result = build_pivot(processed.records, spec, cfg.formulas)
    logger.info(
        "Pivot built: %d of %d records in scope, %d rendered rows",
        result.record_count,
        len(processed.records),
        len(result.rows),
    )

    output_files: List[str] = []
    matrix = flatten_pivot(result, formatted=cfg.export.formatted)
    output_files.append(str(write_matrix(matrix, output_dir / f"pivot.{ext}")))

    # 3. Audit
    quality: Optional[QualityReport] = None
    if cfg.audit.enabled:
        quality = audit_quality(processed.records, cfg.dimensions)
        output_files.append(str(write_quality(quality, output_dir / f"quality.{ext}")))

    worst = quality.worst() if quality else None
    summary: Dict[str, Any] = {
        "total_rows": len(raw_rows),
        "records": result.record_count,
        "pivot_rows": len(result.rows),
        "dates": list(processed.dates),
        "quality_worst": worst.to_dict() if worst else None,
        "output_files": output_files,
    }
    report_path = write_report(_format_report(summary, spec, quality), output_dir / "report.md")
    summary["output_files"].append(str(report_path))
    return summary


def _format_report(summary: Dict, spec: PivotSpec, quality: Optional[QualityReport]) -> str:
    dates = summary.get("dates") or []
    lines = [
        "# Ad Pivot — Run Report",
        f"**Date:** {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}",
        "",
        "## Summary",
        f"- Raw rows in input: {summary['total_rows']}",
        f"- Records in scope: {summary['records']}",
        f"- Rendered pivot rows: {summary['pivot_rows']}",
        f"- Date range: {dates[0]} → {dates[-1]}" if dates else "- Date range: N/A",
        f"- Rows: {', '.join(spec.row_dims) or '—'}",
        f"- Columns: {', '.join(spec.col_dims) or '—'}",
        f"- Values: {', '.join(spec.value_keys) or '—'}",
        "",
    ]

    if quality is None:
        return "\n".join(lines)

    lines += [
        "## Data Quality",
        f"- Records with any unmatched dimension: {quality.records_with_miss} / {quality.total_records}",
        "",
    ]
    for dq in quality.dimensions:
        lines.append(
            f"- **{dq.label}** ({dq.source}): {dq.matched}/{dq.total} matched "
            f"({dq.match_rate * 100:.1f}%)"
        )
    lines.append("")
    return "\n".join(lines)
