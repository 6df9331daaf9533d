"""Base photo selection for the downstream composite."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from burstface.types import Photo, PhotoCandidate

LOGGER = logging.getLogger("burstface.analysis.base_photo")

TARGET_PIXELS = 4_000_000


def suitability(photo: Photo) -> float:
    if photo.overall_score is not None:
        return float(photo.overall_score)
    score = 0.5
    if photo.width and photo.height:
        pixels = photo.width * photo.height
        if pixels > 2_000_000:
            score += 0.3
        elif pixels > 1_000_000:
            score += 0.2
        aspect = photo.width / photo.height
        if 0.75 <= aspect <= 1.5:
            score += 0.2
    return min(1.0, score)


def technical_quality(photo: Photo) -> float:
    if not photo.width or not photo.height:
        return 0.0
    return min(1.0, photo.width * photo.height / TARGET_PIXELS)


def select_base_photo(photos: Sequence[Photo]) -> Optional[PhotoCandidate]:
    """Pick the photo with the highest blended suitability; first wins on ties."""
    best_photo: Optional[Photo] = None
    best_score = 0.0
    for photo in photos:
        score = suitability(photo) * 0.6 + technical_quality(photo) * 0.4
        if best_photo is None or score > best_score:
            best_photo = photo
            best_score = score
    if best_photo is None:
        return None
    LOGGER.debug("Base photo %s score=%.3f", best_photo.photo_id, best_score)
    return PhotoCandidate(
        photo=best_photo,
        suitability_score=best_score,
        aesthetic_score=best_score * 0.6,
        technical_quality=best_score * 0.4,
    )
