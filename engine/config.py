from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml

from engine.errors import ConfigError

CONFIG_ENV_VAR = "TOOL_METADATA_CONFIG"
DEFAULT_FACTORY_TIMEOUT_MS = 30_000
DEFAULT_CATALOG_DIR = Path(__file__).with_name("catalogs")


def _safe_float(value: object, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _safe_int(value: object, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _optional_float(value: object) -> Optional[float]:
    if value is None:
        return None
    parsed = _safe_float(value, -1.0)
    return parsed if parsed >= 0 else None


def _optional_int(value: object) -> Optional[int]:
    if value is None:
        return None
    parsed = _safe_int(value, -1)
    return parsed if parsed >= 0 else None


def _section(cfg: Dict[str, object], key: str) -> Dict[str, object]:
    value = cfg.get(key)
    return value if isinstance(value, dict) else {}


@dataclass
class ConfidencePolicy:
    high_min_samples: int = 20
    medium_min_samples: int = 5

    def __post_init__(self) -> None:
        if self.medium_min_samples < 1 or self.high_min_samples <= self.medium_min_samples:
            raise ConfigError(
                "confidence thresholds must satisfy 1 <= medium_min_samples < high_min_samples"
            )


@dataclass
class RetentionPolicy:
    max_age_days: Optional[float] = None
    max_samples_per_tool: Optional[int] = None

    @property
    def enabled(self) -> bool:
        return self.max_age_days is not None or self.max_samples_per_tool is not None


@dataclass
class EngineConfig:
    factory_timeout_ms: int = DEFAULT_FACTORY_TIMEOUT_MS
    store_path: Optional[Path] = None
    history_window: int = 20
    lookback_days: Optional[float] = 7.0
    min_factor: float = 0.1
    min_preset_score: float = 0.5
    max_presets: Optional[int] = None
    confidence: ConfidencePolicy = field(default_factory=ConfidencePolicy)
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    catalog_dir: Path = DEFAULT_CATALOG_DIR

    @classmethod
    def from_config(cls, cfg: Dict[str, object], base_dir: Optional[Path] = None) -> "EngineConfig":
        confidence_cfg = _section(cfg, "confidence")
        presets_cfg = _section(cfg, "presets")
        retention_cfg = _section(cfg, "retention")
        conf = cls(
            factory_timeout_ms=max(
                0, _safe_int(cfg.get("factory_timeout_ms"), DEFAULT_FACTORY_TIMEOUT_MS)
            ),
            history_window=max(1, _safe_int(cfg.get("history_window"), 20)),
            lookback_days=_optional_float(cfg.get("lookback_days", 7.0)),
            min_factor=max(0.0, _safe_float(cfg.get("min_factor"), 0.1)),
            min_preset_score=_safe_float(presets_cfg.get("min_score"), 0.5),
            max_presets=_optional_int(presets_cfg.get("max_results")),
            confidence=ConfidencePolicy(
                high_min_samples=_safe_int(confidence_cfg.get("high_min_samples"), 20),
                medium_min_samples=_safe_int(confidence_cfg.get("medium_min_samples"), 5),
            ),
            retention=RetentionPolicy(
                max_age_days=_optional_float(retention_cfg.get("max_age_days")),
                max_samples_per_tool=_optional_int(retention_cfg.get("max_samples_per_tool")),
            ),
        )
        store_value = cfg.get("store_path")
        if isinstance(store_value, str) and store_value:
            conf.store_path = _resolve(Path(store_value), base_dir)
        catalog_value = cfg.get("catalog_dir")
        if isinstance(catalog_value, str) and catalog_value:
            conf.catalog_dir = _resolve(Path(catalog_value), base_dir)
        return conf


def _resolve(path: Path, base_dir: Optional[Path]) -> Path:
    path = path.expanduser()
    if base_dir is not None and not path.is_absolute():
        return base_dir / path
    return path


def load_engine_config(path: Optional[Path] = None) -> EngineConfig:
    """Load engine settings from YAML.

    Falls back to ``$TOOL_METADATA_CONFIG`` when no path is given, and to the
    built-in defaults when neither names an existing file.
    """
    if path is None:
        env_value = os.environ.get(CONFIG_ENV_VAR)
        path = Path(env_value) if env_value else None
    if path is None or not path.exists():
        return EngineConfig()
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read engine config {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"engine config {path} must be a mapping")
    return EngineConfig.from_config(raw, base_dir=path.parent)
