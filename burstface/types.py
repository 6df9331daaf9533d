"""Common dataclasses, enums and geometry helpers used across the burstface package."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

# Bounding box order: x1, y1, x2, y2 (normalized image coordinates)
BBox = Tuple[float, float, float, float]
# Landmark points are normalized to the face box with y increasing upward
Point = Tuple[float, float]
Descriptor = np.ndarray


def clamp01(value: float) -> float:
    """Clamp a value to the unit interval."""
    return float(min(1.0, max(0.0, value)))


def point_distance(a: Point, b: Point) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def bbox_center(box: BBox) -> Point:
    x1, y1, x2, y2 = box
    return ((x1 + x2) / 2.0, (y1 + y2) / 2.0)


def bbox_width(box: BBox) -> float:
    return max(0.0, box[2] - box[0])


def bbox_area(box: BBox) -> float:
    """Compute area of a bounding box."""
    x1, y1, x2, y2 = box
    return max(0.0, (x2 - x1)) * max(0.0, (y2 - y1))


def l2_normalize(vec: np.ndarray, eps: float = 1e-6) -> np.ndarray:
    """L2-normalize the input vector."""
    norm = np.linalg.norm(vec)
    if norm < eps:
        return vec
    return vec / norm


class FaceIssue(str, Enum):
    EYES_CLOSED = "eyes_closed"
    POOR_EXPRESSION = "poor_expression"
    UNFLATTERING_ANGLE = "unflattering_angle"
    BLURRED_FACE = "blurred_face"
    AWKWARD_POSE = "awkward_pose"
    NONE = "none"

    @property
    def severity(self) -> float:
        return _ISSUE_SEVERITY[self]


_ISSUE_SEVERITY: Dict[FaceIssue, float] = {
    FaceIssue.EYES_CLOSED: 1.0,
    FaceIssue.BLURRED_FACE: 0.9,
    FaceIssue.POOR_EXPRESSION: 0.8,
    FaceIssue.AWKWARD_POSE: 0.7,
    FaceIssue.UNFLATTERING_ANGLE: 0.6,
    FaceIssue.NONE: 0.0,
}


class ImprovementType(str, Enum):
    EYES_CLOSED = "eyes_closed"
    POOR_EXPRESSION = "poor_expression"
    AWKWARD_POSE = "awkward_pose"
    BLURRED_FACE = "blurred_face"
    UNFLATTERING_ANGLE = "unflattering_angle"

    @property
    def description(self) -> str:
        return _IMPROVEMENT_DESCRIPTIONS[self]

    @classmethod
    def from_issue(cls, issue: FaceIssue) -> "ImprovementType":
        """Map a face issue to the improvement that would fix it."""
        if issue is FaceIssue.NONE:
            return cls.POOR_EXPRESSION
        return cls(issue.value)


_IMPROVEMENT_DESCRIPTIONS: Dict[ImprovementType, str] = {
    ImprovementType.EYES_CLOSED: "Open closed eyes",
    ImprovementType.POOR_EXPRESSION: "Improve facial expression",
    ImprovementType.AWKWARD_POSE: "Better head pose",
    ImprovementType.BLURRED_FACE: "Sharper face",
    ImprovementType.UNFLATTERING_ANGLE: "Better angle",
}


class EligibilityReason(str, Enum):
    ELIGIBLE = "eligible"
    INSUFFICIENT_PHOTOS = "insufficient_photos"
    NO_FACE_VARIATIONS = "no_face_variations"
    INCONSISTENT_PEOPLE = "inconsistent_people"
    LOW_QUALITY_PHOTOS = "low_quality_photos"
    PROCESSING_ERROR = "processing_error"

    @property
    def user_message(self) -> str:
        return _ELIGIBILITY_MESSAGES[self]


_ELIGIBILITY_MESSAGES: Dict[EligibilityReason, str] = {
    EligibilityReason.ELIGIBLE: "Ready to create a better group photo",
    EligibilityReason.INSUFFICIENT_PHOTOS: "Need at least 2 photos of the same moment",
    EligibilityReason.NO_FACE_VARIATIONS: "All faces already look their best",
    EligibilityReason.INCONSISTENT_PEOPLE: "Different people appear across the photos",
    EligibilityReason.LOW_QUALITY_PHOTOS: "Photo quality is too low for combining",
    EligibilityReason.PROCESSING_ERROR: "Unable to analyze these photos",
}


@dataclass(frozen=True)
class Photo:
    """A single image within a burst, identified by its asset id."""

    photo_id: str
    timestamp: datetime
    path: Optional[Path] = None
    overall_score: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class FaceAngle:
    """Head pose in degrees."""

    pitch: float = 0.0
    yaw: float = 0.0
    roll: float = 0.0

    @property
    def is_optimal(self) -> bool:
        return abs(self.pitch) < 15.0 and abs(self.yaw) < 20.0 and abs(self.roll) < 10.0

    def is_compatible_for_alignment(self, other: "FaceAngle") -> bool:
        return (
            abs(self.pitch - other.pitch) < 25.0
            and abs(self.yaw - other.yaw) < 30.0
            and abs(self.roll - other.roll) < 20.0
        )


@dataclass(frozen=True)
class FaceLandmarks:
    """Landmark regions of one face; any region may be missing."""

    left_eye: Optional[Sequence[Point]] = None
    right_eye: Optional[Sequence[Point]] = None
    outer_lips: Optional[Sequence[Point]] = None
    inner_lips: Optional[Sequence[Point]] = None
    face_contour: Optional[Sequence[Point]] = None


@dataclass(frozen=True)
class DetectedFace:
    """Face reported by a detector for one photo."""

    bbox: BBox
    landmarks: Optional[FaceLandmarks] = None
    capture_quality: float = 0.0
    pose: Optional[FaceAngle] = None
    face_index: int = 0
    # Five alignment keypoints (eyes, nose, mouth corners) in normalized image coordinates
    keypoints: Optional[Tuple[Point, ...]] = None


@dataclass(frozen=True)
class EyeState:
    left_open: bool
    right_open: bool
    confidence: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", clamp01(self.confidence))

    @property
    def both_open(self) -> bool:
        return self.left_open and self.right_open

    @property
    def either_open(self) -> bool:
        return self.left_open or self.right_open


@dataclass(frozen=True)
class ExpressionQuality:
    intensity: float
    naturalness: float
    confidence: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "intensity", clamp01(self.intensity))
        object.__setattr__(self, "naturalness", clamp01(self.naturalness))
        object.__setattr__(self, "confidence", clamp01(self.confidence))

    @property
    def overall_quality(self) -> float:
        return self.intensity * 0.4 + self.naturalness * 0.6

    @property
    def is_good_smile(self) -> bool:
        return self.overall_quality > 0.6 and self.confidence > 0.5


@dataclass(frozen=True)
class FaceQualityRecord:
    """Scored face; immutable once the scorer has produced it."""

    photo: Photo
    face_index: int
    bbox: BBox
    eye_state: EyeState
    expression: ExpressionQuality
    pose: FaceAngle
    sharpness: float
    capture_quality: float
    score: float
    # Embedding is attached after the scan and never serialized
    descriptor: Optional[Descriptor] = field(default=None, compare=False, repr=False)
    keypoints: Optional[Tuple[Point, ...]] = field(default=None, compare=False, repr=False)

    @property
    def photo_id(self) -> str:
        return self.photo.photo_id

    @property
    def identified_issues(self) -> List[FaceIssue]:
        issues: List[FaceIssue] = []
        if not self.eye_state.both_open:
            issues.append(FaceIssue.EYES_CLOSED)
        if self.expression.overall_quality < 0.5:
            issues.append(FaceIssue.POOR_EXPRESSION)
        if not self.pose.is_optimal:
            issues.append(FaceIssue.UNFLATTERING_ANGLE)
        if self.sharpness < 0.6:
            issues.append(FaceIssue.BLURRED_FACE)
        if self.capture_quality < 0.5:
            issues.append(FaceIssue.AWKWARD_POSE)
        return issues or [FaceIssue.NONE]

    @property
    def primary_issue(self) -> FaceIssue:
        return max(self.identified_issues, key=lambda issue: issue.severity)

    def to_dict(self) -> Dict:
        return {
            "photo_id": self.photo_id,
            "face_index": self.face_index,
            "bbox": list(self.bbox),
            "score": self.score,
            "capture_quality": self.capture_quality,
            "sharpness": self.sharpness,
            "left_eye_open": self.eye_state.left_open,
            "right_eye_open": self.eye_state.right_open,
            "eye_confidence": self.eye_state.confidence,
            "smile_intensity": self.expression.intensity,
            "smile_naturalness": self.expression.naturalness,
            "expression_confidence": self.expression.confidence,
            "pitch": self.pose.pitch,
            "yaw": self.pose.yaw,
            "roll": self.pose.roll,
            "primary_issue": self.primary_issue.value,
        }


@dataclass
class PersonIdentity:
    """Run-scoped identity; grows by appending faces, never merges."""

    person_id: str
    faces: List[FaceQualityRecord] = field(default_factory=list)

    def add_face(self, face: FaceQualityRecord) -> None:
        self.faces.append(face)

    def frozen(self) -> PersonIdentity:
        """Copy holding the faces as a tuple; used once resolution is finished."""
        return replace(self, faces=tuple(self.faces))


@dataclass(frozen=True)
class PersonFaceQualityAnalysis:
    person_id: str
    all_faces: Tuple[FaceQualityRecord, ...]
    best_face: FaceQualityRecord
    worst_face: FaceQualityRecord
    improvement_potential: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "improvement_potential", clamp01(self.improvement_potential))

    @property
    def quality_gain(self) -> float:
        return self.best_face.score - self.worst_face.score

    @property
    def should_replace(self) -> bool:
        return self.improvement_potential > 0.4 and self.quality_gain > 0.2

    @property
    def issues_fixed(self) -> List[FaceIssue]:
        best_issues = set(self.best_face.identified_issues)
        return [issue for issue in self.worst_face.identified_issues if issue not in best_issues]

    def to_dict(self) -> Dict:
        return {
            "person_id": self.person_id,
            "face_count": len(self.all_faces),
            "best_photo_id": self.best_face.photo_id,
            "best_score": self.best_face.score,
            "worst_photo_id": self.worst_face.photo_id,
            "worst_score": self.worst_face.score,
            "improvement_potential": self.improvement_potential,
            "should_replace": self.should_replace,
            "issues_fixed": [issue.value for issue in self.issues_fixed],
        }


@dataclass(frozen=True)
class PhotoCandidate:
    photo: Photo
    suitability_score: float
    aesthetic_score: float
    technical_quality: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "suitability_score", clamp01(self.suitability_score))
        object.__setattr__(self, "aesthetic_score", clamp01(self.aesthetic_score))
        object.__setattr__(self, "technical_quality", clamp01(self.technical_quality))

    @property
    def overall_score(self) -> float:
        return self.suitability_score * 0.4 + self.aesthetic_score * 0.3 + self.technical_quality * 0.3


@dataclass(frozen=True)
class ClusterFaceAnalysis:
    cluster_id: str
    person_analyses: Mapping[str, PersonFaceQualityAnalysis]
    base_photo_candidate: Optional[PhotoCandidate]
    overall_improvement_potential: float
    identities: Tuple[PersonIdentity, ...] = ()
    photo_count: int = 0
    # Photos that survived loading and detection; photo_count counts every input photo
    scanned_photo_count: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "overall_improvement_potential", clamp01(self.overall_improvement_potential)
        )
        # Read-only views of the resolved state
        object.__setattr__(self, "person_analyses", MappingProxyType(dict(self.person_analyses)))
        object.__setattr__(self, "identities", tuple(identity.frozen() for identity in self.identities))

    @property
    def person_count(self) -> int:
        return len(self.person_analyses)

    @property
    def people_with_improvements(self) -> List[PersonFaceQualityAnalysis]:
        return [
            analysis
            for analysis in self.person_analyses.values()
            if analysis.improvement_potential > 0.3
        ]

    @property
    def estimated_processing_time(self) -> float:
        return 5.0 + self.person_count * 2.0 + len(self.people_with_improvements) * 3.0

    def to_dict(self) -> Dict:
        base = self.base_photo_candidate
        return {
            "cluster_id": self.cluster_id,
            "photo_count": self.photo_count,
            "scanned_photo_count": self.scanned_photo_count,
            "identity_count": len(self.identities),
            "person_count": self.person_count,
            "overall_improvement_potential": self.overall_improvement_potential,
            "estimated_processing_time": self.estimated_processing_time,
            "base_photo_id": base.photo.photo_id if base is not None else None,
            "base_photo_score": base.overall_score if base is not None else None,
            "persons": [
                self.person_analyses[person_id].to_dict()
                for person_id in sorted(self.person_analyses)
            ],
        }


@dataclass(frozen=True)
class PersonImprovement:
    person_id: str
    source_photo_id: str
    improvement_type: ImprovementType
    confidence: float


@dataclass(frozen=True)
class EligibilityResult:
    is_eligible: bool
    reason: EligibilityReason
    confidence: float
    improvements: Tuple[PersonImprovement, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "is_eligible": self.is_eligible,
            "reason": self.reason.value,
            "message": self.reason.user_message,
            "confidence": self.confidence,
            "improvements": [
                {
                    "person_id": item.person_id,
                    "source_photo_id": item.source_photo_id,
                    "improvement_type": item.improvement_type.value,
                    "description": item.improvement_type.description,
                    "confidence": item.confidence,
                }
                for item in self.improvements
            ],
        }
