from datetime import datetime, timedelta

import pytest

from burstface.analysis.aggregate import aggregate_persons, analyze_person, overall_improvement
from burstface.analysis.base_photo import select_base_photo, suitability, technical_quality
from burstface.types import (
    ClusterFaceAnalysis,
    EyeState,
    ExpressionQuality,
    FaceAngle,
    FaceIssue,
    FaceQualityRecord,
    PersonIdentity,
    Photo,
)

BASE_TIME = datetime(2024, 6, 1, 12, 0, 0)


def make_face(photo_id, score, eyes_open=True, seconds=0):
    return FaceQualityRecord(
        photo=Photo(photo_id=photo_id, timestamp=BASE_TIME + timedelta(seconds=seconds)),
        face_index=0,
        bbox=(0.1, 0.1, 0.4, 0.4),
        eye_state=EyeState(eyes_open, eyes_open, 1.0),
        expression=ExpressionQuality(0.6, 0.7, 0.8),
        pose=FaceAngle(),
        sharpness=0.9,
        capture_quality=0.9,
        score=score,
    )


def identity(person_id, *scores):
    person = PersonIdentity(person_id=person_id)
    for index, score in enumerate(scores):
        person.add_face(make_face(f"IMG_{index}", score, eyes_open=score >= 0.5, seconds=index))
    return person


def test_large_spread_is_materialized():
    analysis = analyze_person(identity("person_0000", 0.9, 0.3))
    assert analysis is not None
    assert analysis.improvement_potential == pytest.approx(0.6)
    assert analysis.best_face.score == 0.9
    assert analysis.worst_face.score == 0.3
    assert analysis.should_replace
    assert analysis.issues_fixed == [FaceIssue.EYES_CLOSED]


def test_small_spread_is_noise():
    assert analyze_person(identity("person_0000", 0.5, 0.45)) is None


def test_singletons_are_skipped():
    assert analyze_person(identity("person_0000", 0.9)) is None


def test_best_and_worst_from_many_faces():
    analysis = analyze_person(identity("person_0001", 0.4, 0.95, 0.2, 0.6))
    assert analysis.best_face.photo_id == "IMG_1"
    assert analysis.worst_face.photo_id == "IMG_2"
    assert [face.score for face in analysis.all_faces] == [0.95, 0.6, 0.4, 0.2]


def test_aggregate_and_overall_mean():
    analyses = aggregate_persons(
        [identity("person_0000", 0.9, 0.3), identity("person_0001", 0.8, 0.5), identity("person_0002", 0.7, 0.69)]
    )
    assert sorted(analyses) == ["person_0000", "person_0001"]
    assert overall_improvement(analyses) == pytest.approx((0.6 + 0.3) / 2)
    assert overall_improvement({}) == 0.0


def test_cluster_derived_properties():
    analyses = aggregate_persons([identity("person_0000", 0.9, 0.3), identity("person_0001", 0.8, 0.55)])
    cluster = ClusterFaceAnalysis(
        cluster_id="c1",
        person_analyses=analyses,
        base_photo_candidate=None,
        overall_improvement_potential=overall_improvement(analyses),
    )
    assert cluster.person_count == 2
    assert [a.person_id for a in cluster.people_with_improvements] == ["person_0000"]
    assert cluster.estimated_processing_time == pytest.approx(5 + 2 * 2 + 3 * 1)


def test_base_photo_prefers_upstream_score_then_resolution():
    hi_res = Photo("big", BASE_TIME, width=3000, height=2000)
    lo_res = Photo("small", BASE_TIME, width=800, height=600)
    assert suitability(hi_res) == pytest.approx(1.0)
    assert suitability(lo_res) == pytest.approx(0.7)
    assert technical_quality(hi_res) == pytest.approx(1.0)

    candidate = select_base_photo([lo_res, hi_res])
    assert candidate.photo.photo_id == "big"
    assert candidate.suitability_score == pytest.approx(1.0)
    assert candidate.aesthetic_score == pytest.approx(0.6)
    assert candidate.technical_quality == pytest.approx(0.4)

    scored = Photo("scored", BASE_TIME, overall_score=0.0, width=3000, height=2000)
    assert select_base_photo([scored, lo_res]).photo.photo_id == "small"
    assert select_base_photo([]) is None


def test_base_photo_first_wins_ties():
    first = Photo("first", BASE_TIME, width=1000, height=1000)
    second = Photo("second", BASE_TIME, width=1000, height=1000)
    assert select_base_photo([first, second]).photo.photo_id == "first"
