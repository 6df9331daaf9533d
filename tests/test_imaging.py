import os
from datetime import datetime

import numpy as np
import pytest
from PIL import Image

from burstface.detectors.face_retina import normalize_bbox, normalize_points, regions_from_68
from burstface.imaging import (
    ARCFACE_TEMPLATE,
    OpenCVImageLoader,
    align_face,
    crop_face,
    laplacian_response,
    photo_from_path,
)
from burstface.signals.eyes import detect_eye_state
from burstface.types import Photo


def test_photo_from_path_reads_exif_capture_time(tmp_path):
    path = tmp_path / "IMG_0001.jpg"
    image = Image.new("RGB", (64, 48), color=(120, 80, 40))
    exif = Image.Exif()
    exif[306] = "2024:06:01 12:00:05"
    image.save(path, exif=exif)

    photo = photo_from_path(path)
    assert photo.photo_id == "IMG_0001.jpg"
    assert photo.timestamp == datetime(2024, 6, 1, 12, 0, 5)
    assert (photo.width, photo.height) == (64, 48)


def test_photo_from_path_falls_back_to_mtime(tmp_path):
    path = tmp_path / "plain.png"
    Image.new("RGB", (10, 10)).save(path)
    os.utime(path, (1_700_000_000, 1_700_000_000))
    photo = photo_from_path(path, overall_score=0.7)
    assert photo.timestamp == datetime.fromtimestamp(1_700_000_000)
    assert photo.overall_score == 0.7


def test_loader_errors(tmp_path):
    loader = OpenCVImageLoader()
    with pytest.raises(FileNotFoundError):
        loader.load(Photo("missing", datetime.now(), path=tmp_path / "missing.jpg"))
    with pytest.raises(FileNotFoundError):
        loader.load(Photo("nopath", datetime.now()))
    broken = tmp_path / "broken.jpg"
    broken.write_bytes(b"not an image")
    with pytest.raises(OSError):
        loader.load(Photo("broken", datetime.now(), path=broken))


def test_loader_reads_pixels(tmp_path):
    path = tmp_path / "frame.png"
    Image.new("RGB", (20, 10), color=(255, 0, 0)).save(path)
    image = OpenCVImageLoader().load(Photo("frame", datetime.now(), path=path))
    assert image.shape == (10, 20, 3)
    assert tuple(image[0, 0]) == (0, 0, 255)


def test_crop_and_laplacian():
    image = np.zeros((100, 200, 3), dtype=np.uint8)
    assert crop_face(image, (0.1, 0.1, 0.5, 0.5)).shape == (40, 80, 3)
    assert crop_face(image, (0.5, 0.5, 0.5, 0.5)).size == 0
    assert laplacian_response(crop_face(image, (0.5, 0.5, 0.5, 0.5))) is None
    assert laplacian_response(image) == pytest.approx(0.0)


def _dlib_like_points(bbox, eye_gap):
    x1, y1, x2, y2 = bbox
    w, h = x2 - x1, y2 - y1
    pts = np.zeros((68, 2))
    for i in range(17):
        pts[i] = (x1 + w * i / 16, y1 + h * (0.4 + 0.5 * np.sin(np.pi * i / 16)))
    for start, cx in ((36, 0.3), (42, 0.7)):
        ex = x1 + w * cx
        ey = y1 + h * 0.4
        ew = w * 0.16
        gap = h * eye_gap
        pts[start:start + 6] = [
            (ex - ew / 2, ey),
            (ex - ew / 6, ey - gap / 2),
            (ex + ew / 6, ey - gap / 2),
            (ex + ew / 2, ey),
            (ex + ew / 6, ey + gap / 2),
            (ex - ew / 6, ey + gap / 2),
        ]
    for i in range(12):
        angle = 2 * np.pi * i / 12
        pts[48 + i] = (x1 + w * (0.5 - 0.2 * np.cos(angle)), y1 + h * (0.75 - 0.05 * np.sin(angle)))
    for i in range(8):
        angle = 2 * np.pi * i / 8
        pts[60 + i] = (x1 + w * (0.5 - 0.15 * np.cos(angle)), y1 + h * (0.75 - 0.02 * np.sin(angle)))
    return pts


def test_regions_from_68_are_face_relative_and_y_up():
    bbox = (100.0, 50.0, 300.0, 300.0)
    landmarks = regions_from_68(_dlib_like_points(bbox, eye_gap=0.06), bbox)
    assert len(landmarks.left_eye) == 6
    assert len(landmarks.outer_lips) == 12
    assert len(landmarks.inner_lips) == 8
    assert len(landmarks.face_contour) == 17
    # top lip centre sits above the bottom lip centre once y points up
    assert landmarks.outer_lips[3][1] > landmarks.outer_lips[9][1]
    assert all(0.0 <= x <= 1.0 and 0.0 <= y <= 1.0 for x, y in landmarks.face_contour)

    open_state = detect_eye_state(landmarks)
    closed_state = detect_eye_state(regions_from_68(_dlib_like_points(bbox, eye_gap=0.005), bbox))
    assert open_state.both_open
    assert not closed_state.both_open


def test_regions_from_68_rejects_bad_input():
    assert regions_from_68(np.zeros((5, 2)), (0, 0, 10, 10)) is None
    assert regions_from_68(np.zeros((68, 2)), (10, 10, 10, 20)) is None


def test_normalize_bbox_clips_to_image():
    assert normalize_bbox((-10.0, 20.0, 220.0, 60.0), (100, 200, 3)) == (0.0, 0.2, 1.0, 0.6)


def _gradient(size=112):
    image = np.zeros((size, size, 3), dtype=np.uint8)
    ramp = np.arange(size, dtype=np.uint8) * 2
    image[:, :, 0] = ramp[None, :]
    image[:, :, 1] = ramp[:, None]
    return image


def test_align_face_warps_keypoints_onto_template():
    image = _gradient()
    keypoints = [(float(x) / 112.0, float(y) / 112.0) for x, y in ARCFACE_TEMPLATE]
    aligned = align_face(image, (0.0, 0.0, 1.0, 1.0), keypoints)
    assert aligned.shape == (112, 112, 3)
    diff = np.abs(aligned.astype(int) - image.astype(int))[4:-4, 4:-4]
    assert diff.max() <= 2


def test_align_face_falls_back_to_bbox_crop():
    image = np.zeros((100, 200, 3), dtype=np.uint8)
    assert align_face(image, (0.1, 0.1, 0.5, 0.5)).shape == (112, 112, 3)
    assert align_face(image, (0.1, 0.1, 0.5, 0.5), keypoints=[(0.2, 0.2)]).shape == (112, 112, 3)
    assert align_face(image, (0.5, 0.5, 0.5, 0.5)).size == 0


def test_normalize_points_scales_to_image():
    points = np.array([[50.0, 25.0], [150.0, 75.0]])
    assert normalize_points(points, (100, 200, 3)) == ((0.25, 0.25), (0.75, 0.75))
