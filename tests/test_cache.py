import threading
from dataclasses import FrozenInstanceError
from datetime import datetime

import pytest

from burstface.cache import AnalysisCache, PhotoScan
from burstface.types import (
    ClusterFaceAnalysis,
    EyeState,
    ExpressionQuality,
    FaceAngle,
    FaceQualityRecord,
    PersonFaceQualityAnalysis,
    PersonIdentity,
    Photo,
)

PHOTO = Photo(photo_id="IMG_0001", timestamp=datetime(2024, 6, 1, 12, 0, 0))


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_scan(photo=PHOTO, faces=2):
    records = tuple(
        FaceQualityRecord(
            photo=photo,
            face_index=i,
            bbox=(0.1, 0.1, 0.2, 0.2),
            eye_state=EyeState(True, True, 1.0),
            expression=ExpressionQuality(0.5, 0.5, 0.5),
            pose=FaceAngle(),
            sharpness=0.5,
            capture_quality=0.9,
            score=0.7,
        )
        for i in range(faces)
    )
    return PhotoScan(photo=photo, image_size=(640, 480), faces=records)


def make_analysis(cluster_id="c1"):
    return ClusterFaceAnalysis(cluster_id, {}, None, 0.0, photo_count=3)


def test_cluster_roundtrip_and_photo_count_invalidation():
    cache = AnalysisCache()
    analysis = make_analysis()
    cache.set_cluster("c1", analysis, photo_count=3)
    assert cache.get_cluster("c1", photo_count=3) is analysis
    assert cache.get_cluster("c1") is analysis
    assert cache.get_cluster("c1", photo_count=4) is None
    # mismatch evicts the entry
    assert cache.get_cluster("c1", photo_count=3) is None
    assert cache.stats.evictions == 1


def test_ttl_expiry_uses_injected_clock():
    clock = _Clock()
    cache = AnalysisCache(ttl_seconds=10.0, clock=clock)
    cache.set_cluster("c1", make_analysis(), photo_count=3)
    cache.set_photo(PHOTO.photo_id, make_scan())
    clock.now = 9.0
    assert cache.get_cluster("c1") is not None
    assert cache.get_photo(PHOTO.photo_id) is not None
    clock.now = 10.5
    assert cache.get_cluster("c1") is None
    assert cache.get_photo(PHOTO.photo_id) is None


def test_statistics_and_clear():
    cache = AnalysisCache()
    cache.set_cluster("c1", make_analysis("c1"), 3)
    cache.set_cluster("c2", make_analysis("c2"), 3)
    cache.set_photo("IMG_0001", make_scan(faces=2))
    cache.set_photo("IMG_0002", make_scan(Photo("IMG_0002", PHOTO.timestamp), faces=3))
    assert cache.statistics() == (2, 5)

    cache.clear("c1")
    assert cache.statistics() == (1, 5)
    cache.clear()
    assert cache.statistics() == (0, 0)


def test_concurrent_writers_do_not_lose_entries():
    cache = AnalysisCache()

    def writer(offset):
        for i in range(200):
            photo = Photo(f"IMG_{offset}_{i}", PHOTO.timestamp)
            cache.set_photo(photo.photo_id, make_scan(photo, faces=1))
            cache.get_photo(photo.photo_id)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert cache.statistics() == (0, 1600)


def test_cached_cluster_cannot_be_mutated_by_callers():
    faces = list(make_scan().faces)
    identity = PersonIdentity("person_0000", faces)
    person = PersonFaceQualityAnalysis("person_0000", tuple(faces), faces[0], faces[1], 0.5)
    persons = {"person_0000": person}
    analysis = ClusterFaceAnalysis("c1", persons, None, 0.5, identities=(identity,), photo_count=1)

    # later changes to the builder objects do not leak into the result
    identity.add_face(faces[0])
    persons.clear()
    assert len(analysis.identities[0].faces) == 2
    assert list(analysis.person_analyses) == ["person_0000"]

    cache = AnalysisCache()
    cache.set_cluster("c1", analysis, photo_count=1)
    cached = cache.get_cluster("c1", photo_count=1)
    with pytest.raises(TypeError):
        cached.person_analyses["person_0001"] = person
    with pytest.raises(AttributeError):
        cached.identities[0].faces.append(faces[0])
    with pytest.raises(FrozenInstanceError):
        cached.photo_count = 5
    again = cache.get_cluster("c1", photo_count=1)
    assert list(again.person_analyses) == ["person_0000"]
    assert len(again.identities[0].faces) == 2
