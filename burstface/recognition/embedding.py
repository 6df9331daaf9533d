"""Face descriptor generation with InsightFace ArcFace models."""

from __future__ import annotations

import logging
import os
import platform
from pathlib import Path
from typing import Optional, Protocol, Sequence, Tuple

import numpy as np

from burstface.imaging import resize_face
from burstface.types import Descriptor, l2_normalize

LOGGER = logging.getLogger("burstface.recognition.embed")


class EmbeddingGenerator(Protocol):
    def embed(self, face_region: np.ndarray) -> Optional[Descriptor]:
        ...

    def distance(self, first: Descriptor, second: Descriptor) -> float:
        ...


def euclidean_distance(first: Descriptor, second: Descriptor) -> float:
    """Distance between L2-normalized descriptors, in [0, 2]."""
    a = l2_normalize(np.asarray(first, dtype=np.float32).reshape(-1))
    b = l2_normalize(np.asarray(second, dtype=np.float32).reshape(-1))
    if a.shape != b.shape:
        raise ValueError("Descriptor shapes do not match")
    return float(np.linalg.norm(a - b))


def _default_providers() -> Tuple[str, ...]:
    """Choose default ONNX providers based on platform."""
    system = platform.system()
    machine = platform.machine().lower()
    if system == "Darwin" and machine in {"arm64", "aarch64"}:
        return ("CoreMLExecutionProvider", "CPUExecutionProvider")
    return ("CPUExecutionProvider",)


class ArcFaceEmbedder:
    """Loads an ArcFace ONNX model via InsightFace for descriptor extraction."""

    def __init__(self, model_path: Optional[str] = None, providers: Optional[Sequence[str]] = None) -> None:
        os.environ.setdefault("OMP_NUM_THREADS", "2")
        os.environ.setdefault("MKL_NUM_THREADS", "2")
        os.environ.setdefault("ORT_INTRA_OP_NUM_THREADS", "2")
        try:
            from insightface.model_zoo import get_model
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "insightface is required for ArcFaceEmbedder. "
                "Install it via `pip install burstface-analyzer[models]`."
            ) from exc

        resolved = str(Path(model_path).expanduser()) if model_path else "arcface_r100_v1"
        provider_list: Tuple[str, ...]
        if providers is None:
            provider_list = _default_providers()
        else:
            provider_list = tuple(providers)
        LOGGER.info("Loading ArcFace model %s providers=%s", resolved, provider_list)
        model = get_model(resolved, download=True, providers=list(provider_list))
        if model is None:
            LOGGER.info("Falling back to FaceAnalysis recognition model")
            from insightface.app import FaceAnalysis

            analysis = FaceAnalysis(name="buffalo_l", allowed_modules=["detection", "recognition"], providers=list(provider_list))
            analysis.prepare(ctx_id=0)
            model = analysis.models.get("recognition")
            if model is None:
                raise RuntimeError("Unable to load ArcFace recognition model via insightface FaceAnalysis")
        if hasattr(model, "prepare"):
            model.prepare(ctx_id=0)
        self.model = model
        self.providers = provider_list

    def embed(self, face_region: np.ndarray) -> Optional[Descriptor]:
        """Compute an L2-normalized descriptor for an aligned face; None for empty input."""
        if face_region is None or face_region.size == 0:
            return None
        aligned = face_region
        if aligned.shape[:2] != (112, 112):
            aligned = resize_face(aligned, (112, 112))
        feat = self.model.get_feat(aligned)
        return l2_normalize(np.asarray(feat, dtype=np.float32).reshape(-1))

    def distance(self, first: Descriptor, second: Descriptor) -> float:
        return euclidean_distance(first, second)
