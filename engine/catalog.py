from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from engine.errors import CatalogError
from schemas.catalog_ir import Catalog, Preset, SuggestionRule, ToolDefault

logger = logging.getLogger(__name__)

TOOL_DEFAULTS_FILE = "tool_defaults.yaml"
SUGGESTION_RULES_FILE = "suggestion_rules.yaml"
PRESETS_FILE = "presets.yaml"


def load_yaml(path: Path) -> Dict[str, object]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise CatalogError(f"cannot read catalog {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise CatalogError(f"catalog {path} must be a mapping")
    return data


def load_tool_defaults(path: Path) -> List[ToolDefault]:
    data = load_yaml(path)
    items = data.get("tools", [])
    if not isinstance(items, list):
        raise CatalogError(f"{path}: 'tools' must be a list")
    return [ToolDefault(**item) for item in items]


def load_suggestion_rules(path: Path) -> List[SuggestionRule]:
    data = load_yaml(path)
    table = data.get("rules", {})
    if not isinstance(table, dict):
        raise CatalogError(f"{path}: 'rules' must map source tools to rule lists")
    rules: List[SuggestionRule] = []
    for source, entries in table.items():
        for order, entry in enumerate(entries or []):
            if not isinstance(entry, dict):
                raise CatalogError(f"{path}: rule #{order} for {source} must be a mapping")
            rules.append(SuggestionRule(source=source, order=order, **entry))
    return rules


def load_presets(path: Path) -> List[Preset]:
    data = load_yaml(path)
    items = data.get("presets", [])
    if not isinstance(items, list):
        raise CatalogError(f"{path}: 'presets' must be a list")
    return [Preset(**item) for item in items]


def load_catalog(catalog_dir: Path) -> Catalog:
    """Load and cross-check the three static catalogs.

    Any misconfiguration raises ``CatalogError`` so it surfaces at process
    start instead of on a request.
    """
    try:
        defaults_data = load_yaml(catalog_dir / TOOL_DEFAULTS_FILE)
        catalog = Catalog(
            tool_defaults=tuple(load_tool_defaults(catalog_dir / TOOL_DEFAULTS_FILE)),
            rules=tuple(load_suggestion_rules(catalog_dir / SUGGESTION_RULES_FILE)),
            presets=tuple(load_presets(catalog_dir / PRESETS_FILE)),
            fallback_baseline_ms=defaults_data.get("fallback_baseline_ms", 15_000),
        )
    except (ValidationError, TypeError) as exc:
        raise CatalogError(f"invalid catalog in {catalog_dir}: {exc}") from exc
    logger.info(
        "loaded catalog from %s: %d tools, %d rules, %d presets",
        catalog_dir,
        len(catalog.tool_defaults),
        len(catalog.rules),
        len(catalog.presets),
    )
    return catalog


class FeatureBucketer:
    """Maps a tool's feature values onto a discrete bucket key.

    Features are completed with their documented defaults first, so a call
    that omits a feature lands in the same bucket as one passing the default.
    Integral features bucket by exact value, continuous ones by the nearest
    multiple of their ``bucket_width``. Undeclared features are ignored.
    """

    def __init__(self, catalog: Catalog) -> None:
        self.catalog = catalog

    def normalize(self, tool: str, features: Optional[Mapping[str, float]]) -> Dict[str, float]:
        spec = self.catalog.tool_default(tool)
        if spec is None:
            return {}
        values = spec.default_features()
        for name, value in (features or {}).items():
            if name in values and value is not None:
                values[name] = float(value)
        return values

    def bucket_key(self, tool: str, features: Optional[Mapping[str, float]]) -> str:
        spec = self.catalog.tool_default(tool)
        if spec is None:
            return ""
        values = self.normalize(tool, features)
        parts: List[str] = []
        for name in sorted(values):
            feature = spec.features[name]
            if feature.kind == "integral":
                index = int(round(values[name]))
            else:
                index = int(round(values[name] / feature.bucket_width))
            parts.append(f"{name}={index}")
        return ";".join(parts)
