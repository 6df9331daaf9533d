"""Thread-safe memoization of cluster analyses and per-photo scans."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from burstface.types import ClusterFaceAnalysis, FaceQualityRecord, Photo

LOGGER = logging.getLogger("burstface.cache")


@dataclass(frozen=True)
class PhotoScan:
    """Scored faces of one photo plus the pixel size they were measured on."""

    photo: Photo
    image_size: Tuple[int, int]
    faces: Tuple[FaceQualityRecord, ...] = ()


@dataclass
class _ClusterEntry:
    analysis: ClusterFaceAnalysis
    photo_count: int
    stored_at: float


@dataclass
class _PhotoEntry:
    scan: PhotoScan
    stored_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0


class AnalysisCache:
    """Single owner of the cluster and photo stores.

    Every read and write goes through one lock, which is only held for
    dictionary access; no detector, embedder or loader runs under it.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._clusters: Dict[str, _ClusterEntry] = {}
        self._photos: Dict[str, _PhotoEntry] = {}
        self.stats = CacheStats()

    def _expired(self, stored_at: float) -> bool:
        if self.ttl_seconds is None:
            return False
        return (self._clock() - stored_at) > self.ttl_seconds

    def get_cluster(self, cluster_id: str, photo_count: Optional[int] = None) -> Optional[ClusterFaceAnalysis]:
        with self._lock:
            entry = self._clusters.get(cluster_id)
            if entry is None:
                self.stats.misses += 1
                return None
            if self._expired(entry.stored_at):
                del self._clusters[cluster_id]
                self.stats.evictions += 1
                self.stats.misses += 1
                LOGGER.debug("Cluster %s expired", cluster_id)
                return None
            if photo_count is not None and entry.photo_count != photo_count:
                del self._clusters[cluster_id]
                self.stats.evictions += 1
                self.stats.misses += 1
                LOGGER.debug(
                    "Cluster %s photo count changed %d -> %d", cluster_id, entry.photo_count, photo_count
                )
                return None
            self.stats.hits += 1
            return entry.analysis

    def set_cluster(self, cluster_id: str, analysis: ClusterFaceAnalysis, photo_count: int) -> None:
        with self._lock:
            self._clusters[cluster_id] = _ClusterEntry(analysis, photo_count, self._clock())

    def get_photo(self, photo_id: str) -> Optional[PhotoScan]:
        with self._lock:
            entry = self._photos.get(photo_id)
            if entry is None:
                self.stats.misses += 1
                return None
            if self._expired(entry.stored_at):
                del self._photos[photo_id]
                self.stats.evictions += 1
                self.stats.misses += 1
                return None
            self.stats.hits += 1
            return entry.scan

    def set_photo(self, photo_id: str, scan: PhotoScan) -> None:
        with self._lock:
            self._photos[photo_id] = _PhotoEntry(scan, self._clock())

    def clear(self, cluster_id: Optional[str] = None) -> None:
        """Drop one cluster entry, or everything when no id is given."""
        with self._lock:
            if cluster_id is None:
                self._clusters.clear()
                self._photos.clear()
                LOGGER.debug("Cleared analysis cache")
            else:
                self._clusters.pop(cluster_id, None)

    def statistics(self) -> Tuple[int, int]:
        """Return (cached clusters, cached faces across photos)."""
        with self._lock:
            face_count = sum(len(entry.scan.faces) for entry in self._photos.values())
            return len(self._clusters), face_count
