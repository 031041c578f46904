"""AI narrative report: prompt building and response clean-up."""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Sequence

from jinja2 import Template

from adpivot.providers.base import BaseProvider

logger = logging.getLogger(__name__)

_PROMPT_PATH = Path(__file__).parent / "prompts" / "analysis_prompt.txt"

SYSTEM_ROLE = "你是一位精通全球众筹广告投放的资深分析师及数据科学家。"
FAILURE_MESSAGE = "AI 分析生成失败，请稍后重试。"
MAX_CONTEXT_ROWS = 20


def _load_template() -> Template:
    return Template(_PROMPT_PATH.read_text(encoding="utf-8"))


def build_analysis_prompt(
    start_date: str,
    end_date: str,
    dimension_labels: Sequence[str],
    table: List[Dict[str, Any]],
) -> str:
    """Render the analysis prompt with the first rows of the aggregated table."""
    context_json = json.dumps(table[:MAX_CONTEXT_ROWS], ensure_ascii=False, default=str)
    return _load_template().render(
        system_role=SYSTEM_ROLE,
        start_date=start_date or "N/A",
        end_date=end_date or "N/A",
        dimension_labels=list(dimension_labels),
        context_json=context_json,
    )


def clean_response_text(text: str) -> str:
    """Turn ``* `` bullets into ``• `` and strip leftover ``*`` / ``#`` markup."""
    if not text:
        return ""
    result = re.sub(r"^\s*\* ", "• ", text, flags=re.MULTILINE)
    result = re.sub(r"(?<!\|)\*(?!\|)", "", result)
    result = re.sub(r"(?<!\|)#+(?!\|)", "", result)
    return result


def generate_narrative(
    provider: BaseProvider,
    start_date: str,
    end_date: str,
    dimension_labels: Sequence[str],
    table: List[Dict[str, Any]],
) -> str:
    """Ask ``provider`` for the report; never raises, returns a fixed message on failure."""
    if not table:
        return ""
    prompt = build_analysis_prompt(start_date, end_date, dimension_labels, table)
    try:
        raw = provider.generate(prompt, system=SYSTEM_ROLE)
    except Exception as exc:
        logger.error("Narrative generation failed: %s", exc)
        return FAILURE_MESSAGE
    return clean_response_text(raw or "")
