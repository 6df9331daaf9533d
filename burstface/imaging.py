"""Image loading, photo metadata and pixel helpers backed by OpenCV and Pillow."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from burstface.types import BBox, Photo, Point

LOGGER = logging.getLogger("burstface.imaging")

EXIF_IFD_POINTER = 0x8769
EXIF_DATETIME_ORIGINAL = 36867
EXIF_DATETIME = 306
EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


class OpenCVImageLoader:
    """Loads photo pixels from disk in OpenCV's native BGR order."""

    def load(self, photo: Photo) -> np.ndarray:
        if photo.path is None:
            raise FileNotFoundError(f"Photo {photo.photo_id} has no path")
        path = Path(photo.path)
        if not path.exists():
            raise FileNotFoundError(str(path))
        image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if image is None:
            raise OSError(f"Unable to decode image {path}")
        return image


def _exif_timestamp(image: Image.Image) -> Optional[datetime]:
    exif = image.getexif()
    raw = exif.get_ifd(EXIF_IFD_POINTER).get(EXIF_DATETIME_ORIGINAL) or exif.get(EXIF_DATETIME)
    if not raw:
        return None
    try:
        return datetime.strptime(str(raw).strip("\x00 "), EXIF_DATETIME_FORMAT)
    except ValueError:
        LOGGER.debug("Ignoring malformed EXIF timestamp %r", raw)
        return None


def photo_from_path(path: Path, overall_score: Optional[float] = None) -> Photo:
    """Build a Photo from an image file using EXIF capture time, else file mtime."""
    path = Path(path)
    timestamp: Optional[datetime] = None
    width: Optional[int] = None
    height: Optional[int] = None
    try:
        with Image.open(path) as image:
            width, height = image.size
            timestamp = _exif_timestamp(image)
    except (UnidentifiedImageError, OSError) as exc:
        LOGGER.warning("Could not read metadata for %s: %s", path, exc)
    if timestamp is None:
        timestamp = datetime.fromtimestamp(path.stat().st_mtime)
    return Photo(
        photo_id=path.name,
        timestamp=timestamp,
        path=path,
        overall_score=overall_score,
        width=width,
        height=height,
    )


def image_size(image: np.ndarray) -> Tuple[int, int]:
    """Return (width, height) of an image array."""
    height, width = image.shape[:2]
    return int(width), int(height)


def crop_face(image: np.ndarray, bbox: BBox, padding: float = 0.0) -> np.ndarray:
    """Crop a normalized bbox (optionally padded by a fraction of its size) from pixels."""
    width, height = image_size(image)
    x1, y1, x2, y2 = bbox
    pad_x = (x2 - x1) * padding
    pad_y = (y2 - y1) * padding
    px1 = int(round(max(0.0, x1 - pad_x) * width))
    py1 = int(round(max(0.0, y1 - pad_y) * height))
    px2 = int(round(min(1.0, x2 + pad_x) * width))
    py2 = int(round(min(1.0, y2 + pad_y) * height))
    if px2 <= px1 or py2 <= py1:
        return image[0:0, 0:0]
    return image[py1:py2, px1:px2]


def laplacian_response(crop: np.ndarray) -> Optional[float]:
    """Variance of the Laplacian over a face crop; None when there are no pixels."""
    if crop is None or crop.size == 0:
        return None
    if crop.ndim == 3:
        gray = cv2.cvtColor(crop, cv2.COLOR_BGR2GRAY)
    else:
        gray = crop
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


def resize_face(crop: np.ndarray, size: Tuple[int, int] = (112, 112)) -> np.ndarray:
    return cv2.resize(crop, size, interpolation=cv2.INTER_LINEAR)


# ArcFace reference positions of the five keypoints in a 112x112 crop
ARCFACE_TEMPLATE = np.array(
    [
        [38.2946, 51.6963],
        [73.5318, 51.5014],
        [56.0252, 71.7366],
        [41.5493, 92.3655],
        [70.7299, 92.2041],
    ],
    dtype=np.float32,
)


def align_face(
    image: np.ndarray,
    bbox: BBox,
    keypoints: Optional[Sequence[Point]] = None,
    padding: float = 0.0,
    size: Tuple[int, int] = (112, 112),
) -> np.ndarray:
    """Warp a face onto the ArcFace template using five keypoints, else crop and resize."""
    if keypoints is not None and len(keypoints) == 5:
        width, height = image_size(image)
        dst = np.array([[x * width, y * height] for x, y in keypoints], dtype=np.float32)
        template = ARCFACE_TEMPLATE * np.array([size[0] / 112.0, size[1] / 112.0], dtype=np.float32)
        trans = cv2.estimateAffinePartial2D(dst, template, method=cv2.LMEDS)[0]
        if trans is not None:
            return cv2.warpAffine(image, trans, size, borderValue=0.0)
        LOGGER.debug("Keypoint alignment failed; falling back to bbox crop")
    crop = crop_face(image, bbox, padding=padding)
    if crop.size == 0:
        return crop
    return resize_face(crop, size)
