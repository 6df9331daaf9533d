"""Decides whether a cluster is worth compositing."""

from __future__ import annotations

import logging
from typing import Optional

from burstface.config import EligibilityConfig
from burstface.types import (
    ClusterFaceAnalysis,
    EligibilityReason,
    EligibilityResult,
    ImprovementType,
    PersonImprovement,
)

LOGGER = logging.getLogger("burstface.analysis.eligibility")


class EligibilityEvaluator:
    def __init__(self, config: Optional[EligibilityConfig] = None) -> None:
        self.config = config or EligibilityConfig()

    def evaluate(self, photo_count: int, analysis: Optional[ClusterFaceAnalysis]) -> EligibilityResult:
        cfg = self.config
        if photo_count < cfg.min_photos:
            return EligibilityResult(False, EligibilityReason.INSUFFICIENT_PHOTOS, 1.0)
        if analysis is None or not analysis.person_analyses:
            return EligibilityResult(False, EligibilityReason.NO_FACE_VARIATIONS, cfg.no_people_confidence)

        overall = analysis.overall_improvement_potential
        if overall <= cfg.min_overall_improvement:
            return EligibilityResult(False, EligibilityReason.NO_FACE_VARIATIONS, cfg.no_variation_confidence)

        improvements = tuple(
            PersonImprovement(
                person_id=person_id,
                source_photo_id=person.best_face.photo_id,
                improvement_type=ImprovementType.from_issue(person.worst_face.primary_issue),
                confidence=person.improvement_potential,
            )
            for person_id, person in sorted(analysis.person_analyses.items())
        )
        LOGGER.info(
            "Cluster %s eligible: overall=%.3f improvements=%d",
            analysis.cluster_id,
            overall,
            len(improvements),
        )
        return EligibilityResult(True, EligibilityReason.ELIGIBLE, overall, improvements)
