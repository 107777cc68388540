"""Configuration loading and validation."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/safecheck/config.yaml")
DEFAULT_ROOT_DIR = Path("~/.local/lib/safecheck")
DEFAULT_LOG_LEVEL = "info"

SIGNALS = (
    "domain_mismatch",
    "urgency_keywords",
    "suspicious_links",
    "spf_fail",
    "dkim_fail",
    "dmarc_fail",
)
DEFAULT_WEIGHTS: Mapping[str, int] = MappingProxyType(
    {
        "domain_mismatch": 30,
        "urgency_keywords": 15,
        "suspicious_links": 25,
        "spf_fail": 5,
        "dkim_fail": 5,
        "dmarc_fail": 0,
    }
)
DEFAULT_URGENCY_KEYWORDS = (
    "urgent",
    "immediate",
    "asap",
    "final notice",
    "act now",
    "expires",
    "limited time",
)
DEFAULT_SUSPICIOUS_LINK_MARKERS = (".xyz", ".tk", "bit.ly", "tinyurl")


class ConfigError(ValueError):
    """Raised when configuration is invalid or missing."""


@dataclass(frozen=True)
class LoggingConfig:
    """Logging-related configuration."""

    level: str = DEFAULT_LOG_LEVEL
    debug_file: bool = False


@dataclass(frozen=True)
class Thresholds:
    """Minimum scores for each non-legit verdict."""

    phishing: int = 70
    fraud: int = 50
    suspicious: int = 20


@dataclass(frozen=True)
class ScoringConfig:
    """Weights and calibration used by the threat scorer."""

    weights: Mapping[str, int] = field(default_factory=lambda: DEFAULT_WEIGHTS)
    thresholds: Thresholds = field(default_factory=Thresholds)
    confidence_midpoint: float = 50.0
    confidence_scale: float = 10.0
    min_latency_ms: float = 1.0


@dataclass(frozen=True)
class ExtractionConfig:
    """Fixed vocabularies consulted by the feature extractor."""

    urgency_keywords: tuple[str, ...] = DEFAULT_URGENCY_KEYWORDS
    suspicious_link_markers: tuple[str, ...] = DEFAULT_SUSPICIOUS_LINK_MARKERS


@dataclass(frozen=True)
class GeneratorConfig:
    """Batching behaviour of the synthetic dataset generator."""

    batch_size: int = 50
    shuffle_interval: int = 200


@dataclass(frozen=True)
class HistoryConfig:
    """Result window used for running metrics."""

    size: int = 100
    latency_target_ms: float = 300.0


@dataclass(frozen=True)
class Config:
    """Fully parsed configuration."""

    root_dir: Path = DEFAULT_ROOT_DIR.expanduser()
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: Path | str | None = None) -> Config:
    """Load and validate configuration from YAML.

    An explicit path (argument or ``$SAFECHECK_CONFIG``) must exist. When the
    default location is missing the built-in defaults are used.
    """

    config_path, explicit = _resolve_config_path(path)
    if not config_path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {config_path}")
        LOGGER.debug("No config at %s; using built-in defaults", config_path)
        return Config()

    with config_path.open("r", encoding="utf-8") as handle:
        try:
            raw = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("Configuration root must be a mapping.")

    return _parse_config(raw)


def _resolve_config_path(explicit: Path | str | None) -> tuple[Path, bool]:
    if explicit:
        return Path(explicit).expanduser(), True
    env_path = os.environ.get("SAFECHECK_CONFIG")
    if env_path:
        return Path(env_path).expanduser(), True
    return DEFAULT_CONFIG_PATH.expanduser(), False


def _parse_config(raw: dict[str, Any]) -> Config:
    root_dir = Path(raw.get("rootdir") or raw.get("root_dir") or DEFAULT_ROOT_DIR).expanduser()
    return Config(
        root_dir=root_dir,
        scoring=_parse_scoring(raw.get("scoring")),
        extraction=_parse_extraction(raw.get("extraction")),
        generator=_parse_generator(raw.get("generator")),
        history=_parse_history(raw.get("history")),
        logging=_parse_logging(raw.get("logging")),
    )


def _parse_scoring(value: Any) -> ScoringConfig:
    section = _section(value, "scoring")
    weights = _parse_weights(section.get("weights"))
    thresholds = _parse_thresholds(section.get("thresholds"))
    confidence = _section(section.get("confidence"), "scoring.confidence")
    midpoint = _number(confidence.get("midpoint", 50.0), "scoring.confidence.midpoint")
    scale = _number(confidence.get("scale", 10.0), "scoring.confidence.scale")
    if scale <= 0:
        raise ConfigError("scoring.confidence.scale must be positive.")
    min_latency = _number(section.get("min_latency_ms", 1.0), "scoring.min_latency_ms")
    if min_latency <= 0:
        raise ConfigError("scoring.min_latency_ms must be positive.")
    return ScoringConfig(
        weights=weights,
        thresholds=thresholds,
        confidence_midpoint=midpoint,
        confidence_scale=scale,
        min_latency_ms=min_latency,
    )


def _parse_weights(value: Any) -> Mapping[str, int]:
    if value is None:
        return DEFAULT_WEIGHTS
    if not isinstance(value, dict):
        raise ConfigError("scoring.weights must be a mapping of signal name to points.")
    weights = dict(DEFAULT_WEIGHTS)
    for name, points in value.items():
        if name not in SIGNALS:
            raise ConfigError(f"Unknown scoring signal '{name}'.")
        if isinstance(points, bool) or not isinstance(points, int):
            raise ConfigError(f"scoring.weights.{name} must be an integer.")
        if points < 0:
            raise ConfigError(f"scoring.weights.{name} cannot be negative.")
        weights[name] = points
    return MappingProxyType(weights)


def _parse_thresholds(value: Any) -> Thresholds:
    section = _section(value, "scoring.thresholds")
    defaults = Thresholds()
    parsed: dict[str, int] = {}
    for name in ("phishing", "fraud", "suspicious"):
        raw = section.get(name, getattr(defaults, name))
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ConfigError(f"scoring.thresholds.{name} must be an integer.")
        parsed[name] = raw
    if not parsed["phishing"] > parsed["fraud"] > parsed["suspicious"] >= 0:
        raise ConfigError("scoring.thresholds must satisfy phishing > fraud > suspicious >= 0.")
    return Thresholds(**parsed)


def _parse_extraction(value: Any) -> ExtractionConfig:
    section = _section(value, "extraction")
    keywords = _string_list(
        section.get("urgency_keywords"), "extraction.urgency_keywords", DEFAULT_URGENCY_KEYWORDS
    )
    markers = _string_list(
        section.get("suspicious_link_markers"),
        "extraction.suspicious_link_markers",
        DEFAULT_SUSPICIOUS_LINK_MARKERS,
    )
    return ExtractionConfig(urgency_keywords=keywords, suspicious_link_markers=markers)


def _parse_generator(value: Any) -> GeneratorConfig:
    section = _section(value, "generator")
    batch_size = _positive_int(section.get("batch_size", 50), "generator.batch_size")
    interval = _positive_int(section.get("shuffle_interval", 200), "generator.shuffle_interval")
    return GeneratorConfig(batch_size=batch_size, shuffle_interval=interval)


def _parse_history(value: Any) -> HistoryConfig:
    section = _section(value, "history")
    size = _positive_int(section.get("size", 100), "history.size")
    target = _number(section.get("latency_target_ms", 300.0), "history.latency_target_ms")
    if target <= 0:
        raise ConfigError("history.latency_target_ms must be positive.")
    return HistoryConfig(size=size, latency_target_ms=target)


def _parse_logging(value: Any) -> LoggingConfig:
    if value is None:
        return LoggingConfig()
    if not isinstance(value, dict):
        raise ConfigError("logging must be a mapping.")
    level = str(value.get("level", DEFAULT_LOG_LEVEL)).lower()
    debug_file = bool(value.get("debug_file", False))
    return LoggingConfig(level=level, debug_file=debug_file)


def _section(value: Any, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{field_name} must be a mapping.")
    return value


def _number(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{field_name} must be a number.")
    return float(value)


def _positive_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{field_name} must be a positive integer.")
    return value


def _string_list(value: Any, field_name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list.")
    entries: list[str] = []
    for idx, entry in enumerate(value, start=1):
        if not isinstance(entry, str) or not entry.strip():
            raise ConfigError(f"{field_name}[{idx}] must be a non-empty string.")
        entries.append(entry.strip().lower())
    if not entries:
        raise ConfigError(f"{field_name} cannot be empty.")
    return tuple(entries)


__all__ = [
    "Config",
    "ConfigError",
    "ExtractionConfig",
    "GeneratorConfig",
    "HistoryConfig",
    "LoggingConfig",
    "ScoringConfig",
    "Thresholds",
    "SIGNALS",
    "DEFAULT_WEIGHTS",
    "load_config",
]
