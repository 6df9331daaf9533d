"""Tabular reports of ranked faces and per-person improvements."""

from __future__ import annotations

from typing import Dict, List, Optional

import pandas as pd

from burstface.types import ClusterFaceAnalysis, FaceQualityRecord

FACE_COLUMNS = [
    "photo_id",
    "face_index",
    "rank",
    "person_id",
    "score",
    "capture_quality",
    "sharpness",
    "left_eye_open",
    "right_eye_open",
    "eye_confidence",
    "smile_intensity",
    "smile_naturalness",
    "expression_confidence",
    "pitch",
    "yaw",
    "roll",
    "primary_issue",
]

PERSON_COLUMNS = [
    "person_id",
    "face_count",
    "best_photo_id",
    "best_score",
    "worst_photo_id",
    "worst_score",
    "improvement_potential",
    "should_replace",
    "issues_fixed",
]


def person_lookup(analysis: ClusterFaceAnalysis) -> Dict[tuple, str]:
    """Map (photo_id, face_index) to the resolved person id."""
    lookup: Dict[tuple, str] = {}
    for identity in analysis.identities:
        for face in identity.faces:
            lookup[(face.photo_id, face.face_index)] = identity.person_id
    return lookup


def faces_to_frame(
    rankings: Dict[str, List[FaceQualityRecord]],
    analysis: Optional[ClusterFaceAnalysis] = None,
) -> pd.DataFrame:
    lookup = person_lookup(analysis) if analysis is not None else {}
    rows = []
    for photo_id in sorted(rankings):
        for rank, face in enumerate(rankings[photo_id], start=1):
            row = face.to_dict()
            row.pop("bbox")
            row["rank"] = rank
            row["person_id"] = lookup.get((face.photo_id, face.face_index))
            rows.append(row)
    if not rows:
        return pd.DataFrame(columns=FACE_COLUMNS)
    return pd.DataFrame(rows)[FACE_COLUMNS]


def person_summary_frame(analysis: ClusterFaceAnalysis) -> pd.DataFrame:
    rows = []
    for person_id in sorted(analysis.person_analyses):
        row = analysis.person_analyses[person_id].to_dict()
        row["issues_fixed"] = ",".join(row["issues_fixed"])
        rows.append(row)
    if not rows:
        return pd.DataFrame(columns=PERSON_COLUMNS)
    df = pd.DataFrame(rows)[PERSON_COLUMNS]
    return df.sort_values("improvement_potential", ascending=False).reset_index(drop=True)

