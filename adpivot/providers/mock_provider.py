"""Mock provider for dry-run mode — no API calls, report built from the prompt's data."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List

from adpivot.providers.base import BaseProvider

_CONTEXT_RE = re.compile(r"(\[.*\])\s*\n\s*请开始", re.DOTALL)


def _extract_context(prompt: str) -> List[Dict[str, Any]]:
    """Pull the aggregated JSON table back out of an analysis prompt."""
    m = _CONTEXT_RE.search(prompt)
    if not m:
        return []
    try:
        data = json.loads(m.group(1))
    except ValueError:
        return []
    return [row for row in data if isinstance(row, dict)] if isinstance(data, list) else []


def _num(row: Dict[str, Any], key: str) -> float:
    value = row.get(key)
    return float(value) if isinstance(value, (int, float)) else 0.0


class MockProvider(BaseProvider):
    """Deterministic mock that writes a short markdown report.

    The output carries ``**bold**`` and ``* `` bullets like a live model reply,
    so dry runs go through the same clean-up step.
    """

    def __init__(self, **kwargs):
        # Extra keyword arguments are accepted so callers can pass real-provider settings.
        self._call_log: List[str] = []

    def generate(self, prompt: str, system: str = "", max_tokens: int = 2048) -> str:
        rows = _extract_context(prompt)
        self._call_log.append("analysis" if rows else "unknown")
        if not rows:
            return "## 无可分析数据"

        by_cost = sorted(rows, key=lambda r: _num(r, "cost"), reverse=True)
        top, bottom = by_cost[0], by_cost[-1]
        total = sum(_num(r, "cost") for r in rows)
        return "\n".join(
            [
                "## 核心洞察",
                f"**总花费** {total:,.2f}，共 {len(rows)} 个分组。",
                "## 多维度归因",
                f"* 花费最高：{top.get('label', 'N/A')} ({_num(top, 'cost'):,.2f})",
                f"* 花费最低：{bottom.get('label', 'N/A')} ({_num(bottom, 'cost'):,.2f})",
                "## 下周计划",
                "* 向高效分组倾斜预算，复查低效分组素材。",
            ]
        )

    def stats(self) -> dict:
        return {
            "call_count": len(self._call_log),
            "call_log": list(self._call_log),
            "last_error": None,
        }
