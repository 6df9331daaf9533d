from datetime import datetime

import numpy as np
import pytest

from burstface.config import AnalysisConfig
from burstface.scoring.scorer import FaceScorer
from burstface.types import DetectedFace, FaceAngle, FaceIssue, FaceLandmarks, Photo

PHOTO = Photo(photo_id="IMG_0001", timestamp=datetime(2024, 6, 1, 12, 0, 0))


def open_eye(x0: float):
    return [(x0, 0.6), (x0 + 0.07, 0.635), (x0 + 0.13, 0.635), (x0 + 0.2, 0.6), (x0 + 0.13, 0.565), (x0 + 0.07, 0.565)]


def closed_eye(x0: float):
    return [(x0, 0.6), (x0 + 0.07, 0.602), (x0 + 0.13, 0.602), (x0 + 0.2, 0.6), (x0 + 0.13, 0.598), (x0 + 0.07, 0.598)]


def test_composite_weights():
    scorer = FaceScorer(edge_filter=None)
    assert scorer.composite(1.0, True, 1.0, 1.0, FaceAngle()) == pytest.approx(1.0)
    assert scorer.composite(0.8, False, 0.5, 0.6, FaceAngle(yaw=30.0)) == pytest.approx(
        0.8 * 0.30 + 0.0 + 0.5 * 0.20 + 0.6 * 0.15 + 0.5 * 0.10
    )


def test_sharpness_area_bands_without_pixels():
    scorer = FaceScorer(edge_filter=None)
    large = DetectedFace(bbox=(0.1, 0.1, 0.5, 0.5))  # area 0.16
    medium = DetectedFace(bbox=(0.1, 0.1, 0.35, 0.35))  # area 0.0625
    small = DetectedFace(bbox=(0.1, 0.1, 0.25, 0.25))  # area 0.0225
    tiny = DetectedFace(bbox=(0.1, 0.1, 0.12, 0.12))
    assert scorer.estimate_sharpness(large) == pytest.approx(0.7)
    assert scorer.estimate_sharpness(medium) == pytest.approx(0.5)
    assert scorer.estimate_sharpness(small) == pytest.approx(0.4)
    assert scorer.estimate_sharpness(tiny) == pytest.approx(0.3)


def test_edge_response_adds_bonus():
    calls = []

    def edge_filter(crop):
        calls.append(crop.shape)
        return 12.5

    scorer = FaceScorer(edge_filter=edge_filter)
    image = np.zeros((100, 200, 3), dtype=np.uint8)
    face = DetectedFace(bbox=(0.1, 0.1, 0.5, 0.5))
    assert scorer.estimate_sharpness(face, image) == pytest.approx(0.9)
    assert calls == [(40, 80, 3)]


def test_laplacian_edge_filter_on_real_pixels():
    scorer = FaceScorer()
    image = np.zeros((64, 64, 3), dtype=np.uint8)
    image[:, 32:] = 255
    face = DetectedFace(bbox=(0.0, 0.0, 1.0, 1.0))
    assert scorer.estimate_sharpness(face, image) == pytest.approx(0.9)


def test_score_face_without_landmarks_uses_neutral_signals():
    scorer = FaceScorer(edge_filter=None)
    detected = DetectedFace(bbox=(0.1, 0.1, 0.5, 0.5), capture_quality=0.9, face_index=2)
    record = scorer.score_face(PHOTO, detected)
    assert record.face_index == 2
    assert record.eye_state.both_open
    assert record.expression.overall_quality == pytest.approx(0.5)
    assert record.pose == FaceAngle()
    assert record.score == pytest.approx(0.9 * 0.30 + 0.25 + 0.5 * 0.20 + 0.7 * 0.15 + 0.10)


def test_closed_eyes_lower_score_and_primary_issue():
    scorer = FaceScorer(edge_filter=None)
    bbox = (0.1, 0.1, 0.5, 0.5)
    open_face = DetectedFace(
        bbox=bbox, landmarks=FaceLandmarks(left_eye=open_eye(0.55), right_eye=open_eye(0.2)), capture_quality=0.9
    )
    closed_face = DetectedFace(
        bbox=bbox, landmarks=FaceLandmarks(left_eye=closed_eye(0.55), right_eye=closed_eye(0.2)), capture_quality=0.9
    )
    open_record = scorer.score_face(PHOTO, open_face)
    closed_record = scorer.score_face(PHOTO, closed_face)
    assert open_record.eye_state.both_open
    assert not closed_record.eye_state.both_open
    assert open_record.score > closed_record.score
    assert closed_record.primary_issue is FaceIssue.EYES_CLOSED


def test_issue_list_for_clean_face():
    scorer = FaceScorer(AnalysisConfig(), edge_filter=lambda crop: 1.0)
    image = np.zeros((10, 10, 3), dtype=np.uint8)
    detected = DetectedFace(bbox=(0.0, 0.0, 1.0, 1.0), capture_quality=0.95, pose=FaceAngle(5.0, -5.0, 2.0))
    record = scorer.score_face(PHOTO, detected, image)
    # neutral expression overall is 0.5, which is not below the poor-expression cut-off
    assert record.identified_issues == [FaceIssue.NONE]
    assert record.primary_issue is FaceIssue.NONE
