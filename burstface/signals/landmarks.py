"""Landmark region quality metrics shared by the eye and expression extractors."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np

from burstface.types import Point, point_distance


def _as_array(points: Sequence[Point]) -> np.ndarray:
    return np.asarray(points, dtype=np.float64).reshape(-1, 2)


def region_bounds(points: Sequence[Point]) -> Tuple[float, float, float, float]:
    """Return (min_x, min_y, max_x, max_y) of a point set."""
    arr = _as_array(points)
    return float(arr[:, 0].min()), float(arr[:, 1].min()), float(arr[:, 0].max()), float(arr[:, 1].max())


def point_spread(points: Sequence[Point]) -> float:
    """Mean distance of points from their centroid."""
    if not points:
        return 0.0
    arr = _as_array(points)
    centroid = arr.mean(axis=0)
    return float(np.linalg.norm(arr - centroid, axis=1).mean())


def has_outliers(points: Sequence[Point]) -> bool:
    """True when a point lies farther than twice the region size from its centre."""
    if len(points) < 3:
        return False
    min_x, min_y, max_x, max_y = region_bounds(points)
    center = ((min_x + max_x) / 2.0, (min_y + max_y) / 2.0)
    limit = max(max_x - min_x, max_y - min_y) * 2.0
    return any(point_distance(p, center) > limit for p in points)


def _aspect_score(aspect: float, low: float, high: float) -> float:
    return 1.0 if low < aspect < high else 0.6


def eye_region_quality(points: Optional[Sequence[Point]]) -> float:
    if not points or len(points) < 6:
        return 0.0
    width = abs(points[3][0] - points[0][0])
    aspect = abs(points[1][1] - points[5][1]) / width if width > 0 else 0.0
    return _aspect_score(aspect, 0.1, 0.8) * min(1.0, point_spread(points) * 15.0)


def lip_region_quality(points: Optional[Sequence[Point]]) -> float:
    if not points or len(points) < 12:
        return 0.0
    width = abs(points[6][0] - points[0][0])
    aspect = abs(points[3][1] - points[9][1]) / width if width > 0 else 0.0
    quality = _aspect_score(aspect, 0.05, 0.5) * min(1.0, point_spread(points) * 20.0)
    if has_outliers(points):
        quality *= 0.8
    return quality


def contour_region_quality(points: Optional[Sequence[Point]]) -> float:
    if not points or len(points) < 10:
        return 0.0
    min_x, min_y, max_x, max_y = region_bounds(points)
    width = max_x - min_x
    aspect = (max_y - min_y) / width if width > 0 else 0.0
    return _aspect_score(aspect, 0.8, 2.0) * min(1.0, point_spread(points) * 5.0)
