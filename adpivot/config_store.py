"""Validate persisted mapping / dimension / formula payloads.

The payloads come from a spreadsheet-backed store with no schema, so every
shape is re-checked here. ``parse_*`` functions are strict and raise
``MalformedConfigError``; ``load_*`` functions never raise and fall back to
the built-in defaults.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

from adpivot.defaults import (
    default_dimension_configs,
    default_formulas,
    is_reserved_metric_name,
    empty_mapping_config,
    empty_mapping_set,
)
from adpivot.schema import (
    DIMENSION_SOURCES,
    UNITS,
    DimensionConfig,
    FormulaField,
    MappingConfig,
    MappingSet,
)

logger = logging.getLogger(__name__)

# persisted key -> MappingConfig attribute
NAME_FIELDS = {
    "platform": "platform",
    "campaign": "campaign",
    "adSet": "ad_set",
    "ad": "ad",
    "date": "date",
    "age": "age",
    "gender": "gender",
}
MAPPING_SLOTS = ("facebook", "google_search", "google_demand_gen", "google_performance_max")
GOOGLE_SLOTS = MAPPING_SLOTS[1:]


class MalformedConfigError(ValueError):
    """Raised when a persisted configuration payload has the wrong shape."""


def _decode(raw: Any) -> Any:
    if isinstance(raw, (str, bytes)):
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise MalformedConfigError(f"not valid JSON: {exc}") from exc
    return raw


def _as_index(value: Any, where: str) -> int:
    if isinstance(value, bool):
        raise MalformedConfigError(f"{where}: index must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise MalformedConfigError(f"{where}: index must be an integer, got {value!r}")


# ─────────────────────────────────────────────────────────────────────────────
# Mappings
# ─────────────────────────────────────────────────────────────────────────────


def parse_mapping_config(raw: Any) -> MappingConfig:
    """Flat ``{canonical key: column name}`` into a ``MappingConfig``.

    Unknown keys that are neither canonical nor ``custom_*`` are ignored.
    """
    raw = _decode(raw)
    if not isinstance(raw, Mapping):
        raise MalformedConfigError("mapping must be an object")
    cfg = empty_mapping_config()
    for key, value in raw.items():
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise MalformedConfigError(f"mapping '{key}' must be a column name string")
        if key in NAME_FIELDS:
            setattr(cfg, NAME_FIELDS[key], value)
        elif key in cfg.metrics:
            cfg.metrics[key] = value
        elif isinstance(key, str) and key.startswith("custom_"):
            cfg.custom_metrics[key] = value
        else:
            logger.debug("Ignoring unknown mapping key %r", key)
    return cfg


def parse_mapping_set(raw: Any) -> MappingSet:
    """Per-platform mappings; a legacy ``google`` entry fills every Google subtype."""
    raw = _decode(raw)
    if not isinstance(raw, Mapping):
        raise MalformedConfigError("mappings must be an object keyed by platform")
    unknown = set(raw) - set(MAPPING_SLOTS) - {"google"}
    if unknown:
        raise MalformedConfigError(f"unknown mapping platform(s): {', '.join(sorted(map(str, unknown)))}")

    mappings = empty_mapping_set()
    if "facebook" in raw:
        mappings.facebook = parse_mapping_config(raw["facebook"])
    for slot in GOOGLE_SLOTS:
        source = raw.get(slot, raw.get("google"))
        if source is not None:
            setattr(mappings, slot, parse_mapping_config(source))
    return mappings


def dump_mapping_config(cfg: MappingConfig) -> Dict[str, str]:
    out = {key: getattr(cfg, attr) for key, attr in NAME_FIELDS.items()}
    out.update(cfg.metrics)
    out.update(cfg.custom_metrics)
    return out


def dump_mapping_set(mappings: MappingSet) -> Dict[str, Dict[str, str]]:
    return {slot: dump_mapping_config(cfg) for slot, cfg in mappings.items()}


# ─────────────────────────────────────────────────────────────────────────────
# Dimensions
# ─────────────────────────────────────────────────────────────────────────────


def parse_dimension_configs(raw: Any) -> List[DimensionConfig]:
    raw = _decode(raw)
    if not isinstance(raw, list):
        raise MalformedConfigError("dimensions must be a list")

    configs: List[DimensionConfig] = []
    seen = set()
    for i, item in enumerate(raw):
        where = f"dimensions[{i}]"
        if not isinstance(item, Mapping):
            raise MalformedConfigError(f"{where} must be an object")
        label = item.get("label")
        if not isinstance(label, str) or not label.strip():
            raise MalformedConfigError(f"{where}: label is required")
        label = label.strip()
        if label in seen:
            raise MalformedConfigError(f"{where}: duplicate label '{label}'")
        source = item.get("source")
        if source not in DIMENSION_SOURCES:
            raise MalformedConfigError(
                f"{where}: source must be one of {', '.join(DIMENSION_SOURCES)}, got {source!r}"
            )
        index = _as_index(item.get("index", -1), where)
        delimiter = item.get("delimiter") or "_"
        if not isinstance(delimiter, str):
            raise MalformedConfigError(f"{where}: delimiter must be a string")
        seen.add(label)
        configs.append(DimensionConfig(label, source, index, delimiter))
    return configs


def dump_dimension_configs(configs: List[DimensionConfig]) -> List[Dict[str, Any]]:
    return [
        {"label": c.label, "source": c.source, "index": c.index, "delimiter": c.delimiter}
        for c in configs
    ]


# ─────────────────────────────────────────────────────────────────────────────
# Formulas
# ─────────────────────────────────────────────────────────────────────────────


def parse_formulas(raw: Any) -> List[FormulaField]:
    raw = _decode(raw)
    if not isinstance(raw, list):
        raise MalformedConfigError("formulas must be a list")

    formulas: List[FormulaField] = []
    ids, names = set(), set()
    for i, item in enumerate(raw):
        where = f"formulas[{i}]"
        if not isinstance(item, Mapping):
            raise MalformedConfigError(f"{where} must be an object")
        name = item.get("name")
        formula = item.get("formula")
        if not isinstance(name, str) or not name.strip():
            raise MalformedConfigError(f"{where}: name is required")
        if not isinstance(formula, str) or not formula.strip():
            raise MalformedConfigError(f"{where}: formula is required")
        name = name.strip()
        fid = str(item.get("id") or f"f_{i}")
        if name in names or fid in ids:
            raise MalformedConfigError(f"{where}: duplicate formula '{name}' ({fid})")
        if is_reserved_metric_name(name):
            raise MalformedConfigError(f"{where}: name '{name}' clashes with a metric key")
        unit = item.get("unit") or ""
        if unit not in UNITS:
            raise MalformedConfigError(f"{where}: unit must be one of '', '%', '$'")
        ids.add(fid)
        names.add(name)
        formulas.append(
            FormulaField(fid, name, formula.strip(), unit, bool(item.get("isDefault", False)))
        )
    return formulas


def dump_formulas(formulas: List[FormulaField]) -> List[Dict[str, Any]]:
    return [
        {"id": f.id, "name": f.name, "formula": f.formula, "unit": f.unit, "isDefault": f.is_default}
        for f in formulas
    ]


# ─────────────────────────────────────────────────────────────────────────────
# Lenient loaders
# ─────────────────────────────────────────────────────────────────────────────


def load_mapping_set(raw: Optional[Any]) -> MappingSet:
    if raw is None:
        return empty_mapping_set()
    try:
        return parse_mapping_set(raw)
    except MalformedConfigError as exc:
        logger.warning("Discarding malformed mapping config, using empty mappings: %s", exc)
        return empty_mapping_set()


def load_dimension_configs(raw: Optional[Any]) -> List[DimensionConfig]:
    if raw is None:
        return default_dimension_configs()
    try:
        return parse_dimension_configs(raw)
    except MalformedConfigError as exc:
        logger.warning("Discarding malformed dimension config, using defaults: %s", exc)
        return default_dimension_configs()


def load_formulas(raw: Optional[Any]) -> List[FormulaField]:
    if raw is None:
        return default_formulas()
    try:
        return parse_formulas(raw)
    except MalformedConfigError as exc:
        logger.warning("Discarding malformed formula config, using defaults: %s", exc)
        return default_formulas()
