"""Cluster analysis orchestration."""

from __future__ import annotations

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

import numpy as np
from tqdm import tqdm

from burstface.analysis.aggregate import aggregate_persons, overall_improvement
from burstface.analysis.base_photo import select_base_photo
from burstface.analysis.eligibility import EligibilityEvaluator
from burstface.cache import AnalysisCache, PhotoScan
from burstface.config import AnalysisConfig
from burstface.detectors.base import DetectionError, FaceDetector
from burstface.imaging import OpenCVImageLoader, align_face, image_size, laplacian_response
from burstface.recognition.embedding import EmbeddingGenerator
from burstface.recognition.resolver import IdentityResolver
from burstface.scoring.scorer import EdgeFilter, FaceScorer
from burstface.types import ClusterFaceAnalysis, EligibilityResult, FaceQualityRecord, Photo

LOGGER = logging.getLogger("burstface.pipeline")

EMBED_CROP_PADDING = 0.1


class ImageLoader(Protocol):
    def load(self, photo: Photo) -> np.ndarray:
        ...


def default_cluster_id(photos: Iterable[Photo]) -> str:
    """Stable id derived from the set of photo ids."""
    joined = "|".join(sorted(photo.photo_id for photo in photos))
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()[:12]


def unique_photos(photos: Iterable[Photo]) -> List[Photo]:
    seen = set()
    unique: List[Photo] = []
    for photo in photos:
        if photo.photo_id in seen:
            LOGGER.debug("Ignoring duplicate photo %s", photo.photo_id)
            continue
        seen.add(photo.photo_id)
        unique.append(photo)
    return unique


class FaceAnalysisRunner:
    """Scans photos in parallel, then resolves identities and aggregates per person."""

    def __init__(
        self,
        face_detector: FaceDetector,
        embedder: Optional[EmbeddingGenerator] = None,
        image_loader: Optional[ImageLoader] = None,
        config: Optional[AnalysisConfig] = None,
        cache: Optional[AnalysisCache] = None,
        edge_filter: Optional[EdgeFilter] = laplacian_response,
    ) -> None:
        self.config = config or AnalysisConfig()
        self.face_detector = face_detector
        self.embedder = embedder
        self.image_loader = image_loader or OpenCVImageLoader()
        self.cache = cache if cache is not None else AnalysisCache(ttl_seconds=self.config.cache.ttl_seconds)
        self.scorer = FaceScorer(self.config, edge_filter=edge_filter)
        distance = embedder.distance if embedder is not None else None
        self.resolver = IdentityResolver(self.config.matching, distance)
        self.evaluator = EligibilityEvaluator(self.config.eligibility)
        if embedder is None:
            LOGGER.warning("No embedder configured; identities will use position and size heuristics only.")

    def _attach_descriptor(self, record: FaceQualityRecord, image: np.ndarray) -> FaceQualityRecord:
        face = align_face(image, record.bbox, record.keypoints, padding=EMBED_CROP_PADDING)
        try:
            descriptor = self.embedder.embed(face)
        except Exception as exc:  # noqa: BLE001 - any embedder failure degrades to the fallback match
            LOGGER.warning("Embedding failed for %s#%d: %s", record.photo_id, record.face_index, exc)
            descriptor = None
        return replace(record, descriptor=descriptor)

    def scan_photo(self, photo: Photo) -> Optional[PhotoScan]:
        """Load, detect, score and embed one photo; None when the photo is dropped."""
        cached = self.cache.get_photo(photo.photo_id)
        if cached is not None:
            return cached
        try:
            image = self.image_loader.load(photo)
        except (FileNotFoundError, OSError) as exc:
            LOGGER.warning("Skipping photo %s: unable to load (%s)", photo.photo_id, exc)
            return None
        try:
            detections = self.face_detector.detect(image)
        except DetectionError as exc:
            LOGGER.warning("Skipping photo %s: detection failed (%s)", photo.photo_id, exc)
            return None

        width, height = image_size(image)
        if photo.width is None or photo.height is None:
            photo = replace(photo, width=width, height=height)
        records = self.scorer.score_faces(photo, detections, image)
        if self.embedder is not None:
            records = [self._attach_descriptor(record, image) for record in records]
        scan = PhotoScan(photo=photo, image_size=(width, height), faces=tuple(records))
        self.cache.set_photo(photo.photo_id, scan)
        LOGGER.debug("Scanned %s: %d faces", photo.photo_id, len(records))
        return scan

    def scan_photos(self, photos: List[Photo]) -> List[PhotoScan]:
        """Scan photos on a bounded worker pool; results keep the input order."""
        if not photos:
            return []
        results: Dict[str, Optional[PhotoScan]] = {}
        workers = max(1, min(self.config.workers, len(photos)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(self.scan_photo, photo): photo for photo in photos}
            completed = as_completed(futures)
            if self.config.progress:
                completed = tqdm(completed, total=len(futures), desc="Scanning photos", unit="photo")
            for future in completed:
                results[futures[future].photo_id] = future.result()
        scans = [results[photo.photo_id] for photo in photos]
        dropped = sum(1 for scan in scans if scan is None)
        if dropped:
            LOGGER.warning("Dropped %d of %d photos during scan", dropped, len(photos))
        return [scan for scan in scans if scan is not None]

    def analyze_cluster(self, photos: Iterable[Photo], cluster_id: Optional[str] = None) -> ClusterFaceAnalysis:
        photos = unique_photos(photos)
        cluster_id = cluster_id or default_cluster_id(photos)
        cached = self.cache.get_cluster(cluster_id, photo_count=len(photos))
        if cached is not None:
            LOGGER.debug("Cluster %s served from cache", cluster_id)
            return cached

        scans = self.scan_photos(photos)
        faces = [face for scan in scans for face in scan.faces]
        identities, _ = self.resolver.resolve(faces)
        analyses = aggregate_persons(identities, self.config.aggregation)
        ordered_photos = sorted((scan.photo for scan in scans), key=lambda p: (p.timestamp, p.photo_id))
        analysis = ClusterFaceAnalysis(
            cluster_id=cluster_id,
            person_analyses=analyses,
            base_photo_candidate=select_base_photo(ordered_photos),
            overall_improvement_potential=overall_improvement(analyses),
            identities=tuple(identities),
            photo_count=len(photos),
            scanned_photo_count=len(scans),
        )
        self.cache.set_cluster(cluster_id, analysis, len(photos))
        LOGGER.info(
            "Cluster %s: photos=%d scanned=%d faces=%d identities=%d improvable=%d overall=%.3f",
            cluster_id,
            len(photos),
            len(scans),
            len(faces),
            len(identities),
            len(analyses),
            analysis.overall_improvement_potential,
        )
        return analysis

    def rank_faces(self, photos: Iterable[Photo]) -> Dict[str, List[FaceQualityRecord]]:
        """Faces per photo, best composite score first."""
        rankings: Dict[str, List[FaceQualityRecord]] = {}
        for scan in self.scan_photos(unique_photos(photos)):
            rankings[scan.photo.photo_id] = sorted(scan.faces, key=lambda face: face.score, reverse=True)
        return rankings

    def assess_eligibility(self, photos: Iterable[Photo], cluster_id: Optional[str] = None) -> EligibilityResult:
        photos = unique_photos(photos)
        if len(photos) < self.config.eligibility.min_photos:
            return self.evaluator.evaluate(len(photos), None)
        analysis = self.analyze_cluster(photos, cluster_id)
        return self.evaluator.evaluate(analysis.scanned_photo_count, analysis)

    def clear_cache(self, cluster_id: Optional[str] = None) -> None:
        self.cache.clear(cluster_id)

    def cache_statistics(self) -> Tuple[int, int]:
        return self.cache.statistics()
