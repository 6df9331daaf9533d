"""Tunable constants for the face analysis pipeline, loadable from YAML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from burstface.io_utils import load_yaml

LOGGER = logging.getLogger("burstface.config")


@dataclass
class EyeConfig:
    min_points: int = 6
    min_horizontal_distance: float = 0.001
    neutral_ear: float = 0.5
    # (avg EAR lower bound, threshold) bands checked top-down; last entry is the floor
    threshold_bands: Tuple[Tuple[float, float], ...] = (
        (0.30, 0.21),
        (0.20, 0.18),
        (0.12, 0.15),
    )
    threshold_floor: float = 0.12


@dataclass
class ExpressionConfig:
    lip_weight: float = 0.6
    eye_weight: float = 0.25
    cheek_weight: float = 0.15
    crease_weight: float = 0.4
    lip_symmetry_weight: float = 0.3
    cheek_definition_weight: float = 0.3
    posed_curvature: float = 0.8
    posed_crease: float = 0.3
    posed_penalty: float = 0.8
    coordination_range: Tuple[float, float] = (0.2, 3.0)
    coordination_bonus: float = 1.1


@dataclass
class ScoringConfig:
    capture_weight: float = 0.30
    eyes_weight: float = 0.25
    expression_weight: float = 0.20
    sharpness_weight: float = 0.15
    pose_weight: float = 0.10
    non_optimal_pose_score: float = 0.5
    sharpness_base: float = 0.3
    # (normalized face area lower bound, bonus) checked top-down
    sharpness_area_bands: Tuple[Tuple[float, float], ...] = (
        (0.10, 0.4),
        (0.05, 0.2),
        (0.02, 0.1),
    )
    edge_bonus: float = 0.2


@dataclass
class MatchingConfig:
    embedding_weight: float = 0.7
    pose_weight: float = 0.2
    feature_weight: float = 0.1
    min_candidate_similarity: float = 0.2
    strong_similarity: float = 0.6
    strong_confidence: float = 0.5
    medium_similarity: float = 0.4
    medium_checks_required: int = 2
    max_center_distance: float = 0.4
    max_time_gap_seconds: float = 300.0
    area_ratio_range: Tuple[float, float] = (0.5, 2.0)
    fallback_center_distance: float = 0.3
    fallback_width_delta: float = 0.5
    yaw_normalizer: float = 90.0
    pitch_normalizer: float = 90.0
    roll_normalizer: float = 180.0


@dataclass
class AggregationConfig:
    min_faces: int = 2
    min_improvement: float = 0.2


@dataclass
class EligibilityConfig:
    min_photos: int = 2
    min_overall_improvement: float = 0.3
    no_people_confidence: float = 0.9
    no_variation_confidence: float = 0.8


@dataclass
class CacheConfig:
    ttl_seconds: Optional[float] = None


@dataclass
class AnalysisConfig:
    eyes: EyeConfig = field(default_factory=EyeConfig)
    expression: ExpressionConfig = field(default_factory=ExpressionConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    eligibility: EligibilityConfig = field(default_factory=EligibilityConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    workers: int = 4
    progress: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AnalysisConfig":
        data = dict(data or {})
        sections = {
            "eyes": EyeConfig,
            "expression": ExpressionConfig,
            "scoring": ScoringConfig,
            "matching": MatchingConfig,
            "aggregation": AggregationConfig,
            "eligibility": EligibilityConfig,
            "cache": CacheConfig,
        }
        kwargs: Dict[str, Any] = {}
        for name, section_cls in sections.items():
            raw = data.pop(name, None)
            if raw is None:
                continue
            if not isinstance(raw, dict):
                raise ValueError(f"Config section '{name}' must be a mapping, got {type(raw).__name__}")
            kwargs[name] = _build_section(section_cls, name, raw)
        for key in ("workers", "progress"):
            if key in data:
                kwargs[key] = data.pop(key)
        if data:
            raise ValueError(f"Unknown config keys: {sorted(data)}")
        config = cls(**kwargs)
        config.workers = max(1, int(config.workers))
        return config


def _build_section(section_cls: type, name: str, raw: Dict[str, Any]) -> Any:
    known = {f.name for f in fields(section_cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown keys in config section '{name}': {unknown}")
    values: Dict[str, Any] = {}
    for key, value in raw.items():
        # YAML yields lists; range and band settings are stored as tuples
        if isinstance(value, list):
            value = tuple(tuple(item) if isinstance(item, list) else item for item in value)
        values[key] = value
    return section_cls(**values)


def load_config(path: Optional[Path]) -> AnalysisConfig:
    """Load an AnalysisConfig from YAML, or return defaults when no path is given."""
    if path is None:
        return AnalysisConfig()
    data = load_yaml(Path(path))
    config = AnalysisConfig.from_dict(data)
    LOGGER.info("Loaded analysis config %s (workers=%d)", path, config.workers)
    return config
