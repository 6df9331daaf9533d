"""Cross-photo identity resolution for faces within one cluster run."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from burstface.config import MatchingConfig
from burstface.recognition.embedding import euclidean_distance
from burstface.types import (
    Descriptor,
    FaceQualityRecord,
    PersonIdentity,
    bbox_area,
    bbox_center,
    bbox_width,
    clamp01,
    point_distance,
)

LOGGER = logging.getLogger("burstface.recognition.resolver")

DistanceFn = Callable[[Descriptor, Descriptor], float]

STRONG = "strong"
MEDIUM = "medium"
FALLBACK = "fallback"
NEW = "new"


@dataclass(frozen=True)
class IdentityMatch:
    """Aggregated similarity of one face against one identity."""

    identity: PersonIdentity
    similarity: float
    confidence: float


@dataclass(frozen=True)
class Assignment:
    face: FaceQualityRecord
    person_id: str
    decision: str
    similarity: float = 0.0
    confidence: float = 0.0


def canonical_order(faces: Iterable[FaceQualityRecord]) -> List[FaceQualityRecord]:
    """Order faces by photo timestamp, then photo id, then detector order."""
    return sorted(faces, key=lambda f: (f.photo.timestamp, f.photo.photo_id, f.face_index))


def _angle_similarity(delta: float, normalizer: float) -> float:
    return max(0.0, 1.0 - abs(delta) / normalizer)


class IdentityResolver:
    """Sequential fold assigning each face to an existing identity or a new one.

    Identities are scoped to a single ``resolve`` call. Faces are processed in
    canonical order regardless of input order, so assignments are stable under
    re-ordering of the input list.
    """

    def __init__(self, config: Optional[MatchingConfig] = None, distance: Optional[DistanceFn] = None) -> None:
        self.config = config or MatchingConfig()
        self.distance = distance or euclidean_distance

    def pose_similarity(self, face: FaceQualityRecord, other: FaceQualityRecord) -> float:
        cfg = self.config
        yaw = _angle_similarity(face.pose.yaw - other.pose.yaw, cfg.yaw_normalizer)
        pitch = _angle_similarity(face.pose.pitch - other.pose.pitch, cfg.pitch_normalizer)
        roll = _angle_similarity(face.pose.roll - other.pose.roll, cfg.roll_normalizer)
        return yaw * 0.5 + pitch * 0.3 + roll * 0.2

    @staticmethod
    def feature_consistency(face: FaceQualityRecord, other: FaceQualityRecord) -> float:
        consistency = 0.5
        if face.eye_state.both_open == other.eye_state.both_open:
            consistency += 0.2
        if abs(face.expression.intensity - other.expression.intensity) < 0.3:
            consistency += 0.2
        if face.pose.is_compatible_for_alignment(other.pose):
            consistency += 0.1
        return min(1.0, consistency)

    def embedding_similarity(self, first: Descriptor, second: Descriptor) -> float:
        try:
            distance = self.distance(first, second)
        except (ValueError, TypeError, ArithmeticError) as exc:
            LOGGER.debug("Descriptor distance failed: %s", exc)
            return 0.0
        return max(0.0, 1.0 - distance / 2.0)

    def pair_scores(self, face: FaceQualityRecord, other: FaceQualityRecord) -> Tuple[float, float]:
        """Return (similarity, confidence) for two faces that both carry descriptors."""
        cfg = self.config
        embedding_sim = self.embedding_similarity(face.descriptor, other.descriptor)
        similarity = (
            embedding_sim * cfg.embedding_weight
            + self.pose_similarity(face, other) * cfg.pose_weight
            + self.feature_consistency(face, other) * cfg.feature_weight
        )
        quality_factor = (face.score + other.score) / 2.0
        # Detector confidence stands in for descriptor confidence
        descriptor_confidence = min(face.capture_quality, other.capture_quality)
        confidence = clamp01(embedding_sim * 0.5 + quality_factor * 0.3 + descriptor_confidence * 0.2)
        return similarity, confidence

    def match_identity(self, face: FaceQualityRecord, identity: PersonIdentity) -> IdentityMatch:
        similarities: List[float] = []
        confidences: List[float] = []
        for other in identity.faces:
            if other.descriptor is None:
                continue
            similarity, confidence = self.pair_scores(face, other)
            similarities.append(similarity)
            confidences.append(confidence)
        if not similarities:
            return IdentityMatch(identity=identity, similarity=0.0, confidence=0.0)
        aggregate = float(np.mean(similarities)) * 0.7 + max(similarities) * 0.3
        return IdentityMatch(identity=identity, similarity=aggregate, confidence=float(np.mean(confidences)))

    def best_match(self, face: FaceQualityRecord, identities: Sequence[PersonIdentity]) -> Optional[IdentityMatch]:
        best: Optional[IdentityMatch] = None
        for identity in identities:
            match = self.match_identity(face, identity)
            if match.similarity <= self.config.min_candidate_similarity:
                continue
            # Strict comparison keeps the earliest identity on ties
            if best is None or match.similarity > best.similarity:
                best = match
        return best

    def classify(self, similarity: float, confidence: float) -> Optional[str]:
        """Return the acceptance tier for a similarity/confidence pair."""
        cfg = self.config
        if similarity >= cfg.strong_similarity and confidence >= cfg.strong_confidence:
            return STRONG
        if similarity >= cfg.medium_similarity:
            return MEDIUM
        return None

    def secondary_checks(self, face: FaceQualityRecord, identity: PersonIdentity) -> int:
        """Count position, timing and size checks that some member of the identity passes."""
        cfg = self.config
        center = bbox_center(face.bbox)
        area = bbox_area(face.bbox)
        low, high = cfg.area_ratio_range
        position = any(
            point_distance(center, bbox_center(other.bbox)) < cfg.max_center_distance for other in identity.faces
        )
        temporal = any(
            abs((face.photo.timestamp - other.photo.timestamp).total_seconds()) < cfg.max_time_gap_seconds
            for other in identity.faces
        )
        size = any(
            bbox_area(other.bbox) > 0 and low <= area / bbox_area(other.bbox) <= high for other in identity.faces
        )
        return int(position) + int(temporal) + int(size)

    def fallback_match(self, face: FaceQualityRecord, identities: Sequence[PersonIdentity]) -> Optional[PersonIdentity]:
        cfg = self.config
        center = bbox_center(face.bbox)
        width = bbox_width(face.bbox)
        for identity in identities:
            for other in identity.faces:
                if (
                    point_distance(center, bbox_center(other.bbox)) < cfg.fallback_center_distance
                    and abs(width - bbox_width(other.bbox)) < cfg.fallback_width_delta
                ):
                    return identity
        return None

    def assign(self, face: FaceQualityRecord, identities: List[PersonIdentity]) -> Assignment:
        """Assign one face, appending it to an existing identity or a new one."""
        if face.descriptor is not None:
            match = self.best_match(face, identities)
            if match is not None:
                tier = self.classify(match.similarity, match.confidence)
                accepted = tier == STRONG or (
                    tier == MEDIUM
                    and self.secondary_checks(face, match.identity) >= self.config.medium_checks_required
                )
                if accepted:
                    match.identity.add_face(face)
                    return Assignment(face, match.identity.person_id, tier, match.similarity, match.confidence)

        identity = self.fallback_match(face, identities)
        if identity is not None:
            identity.add_face(face)
            return Assignment(face, identity.person_id, FALLBACK)

        identity = PersonIdentity(person_id=f"person_{len(identities):04d}")
        identity.add_face(face)
        identities.append(identity)
        return Assignment(face, identity.person_id, NEW)

    def resolve(self, faces: Iterable[FaceQualityRecord]) -> Tuple[List[PersonIdentity], List[Assignment]]:
        identities: List[PersonIdentity] = []
        assignments: List[Assignment] = []
        for face in canonical_order(faces):
            assignment = self.assign(face, identities)
            LOGGER.debug(
                "Face %s#%d -> %s (%s sim=%.3f conf=%.3f)",
                face.photo_id,
                face.face_index,
                assignment.person_id,
                assignment.decision,
                assignment.similarity,
                assignment.confidence,
            )
            assignments.append(assignment)
        LOGGER.info("Resolved %d faces into %d identities", len(assignments), len(identities))
        return identities, assignments
