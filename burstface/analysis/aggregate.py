"""Person-level aggregation of resolved face records."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

import numpy as np

from burstface.config import AggregationConfig
from burstface.types import PersonFaceQualityAnalysis, PersonIdentity

LOGGER = logging.getLogger("burstface.analysis.aggregate")


def analyze_person(
    identity: PersonIdentity,
    config: Optional[AggregationConfig] = None,
) -> Optional[PersonFaceQualityAnalysis]:
    """Best/worst face and improvement potential, or None when not worth replacing."""
    config = config or AggregationConfig()
    if len(identity.faces) < config.min_faces:
        return None
    ranked = sorted(identity.faces, key=lambda face: face.score, reverse=True)
    best, worst = ranked[0], ranked[-1]
    potential = max(0.0, best.score - worst.score)
    if potential <= config.min_improvement:
        LOGGER.debug("Skipping %s: improvement %.3f below %.2f", identity.person_id, potential, config.min_improvement)
        return None
    return PersonFaceQualityAnalysis(
        person_id=identity.person_id,
        all_faces=tuple(ranked),
        best_face=best,
        worst_face=worst,
        improvement_potential=potential,
    )


def aggregate_persons(
    identities: Iterable[PersonIdentity],
    config: Optional[AggregationConfig] = None,
) -> Dict[str, PersonFaceQualityAnalysis]:
    analyses: Dict[str, PersonFaceQualityAnalysis] = {}
    for identity in identities:
        analysis = analyze_person(identity, config)
        if analysis is not None:
            analyses[identity.person_id] = analysis
    return analyses


def overall_improvement(analyses: Dict[str, PersonFaceQualityAnalysis]) -> float:
    """Mean improvement potential across persons; 0 when there are none."""
    if not analyses:
        return 0.0
    return float(np.mean([a.improvement_potential for a in analyses.values()]))
