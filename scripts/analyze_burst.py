#!/usr/bin/env python3
"""CLI for ranking faces and assessing composite eligibility over a burst of photos."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from burstface.config import AnalysisConfig, load_config
from burstface.imaging import photo_from_path
from burstface.io_utils import dump_json, ensure_dir, list_images, setup_logging
from burstface.pipeline import FaceAnalysisRunner
from burstface.report import faces_to_frame, person_summary_frame
from burstface.types import Photo

LOGGER = logging.getLogger("scripts.analyze_burst")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rank faces across a burst and estimate composite improvement")
    parser.add_argument("image_dir", type=Path, help="Directory containing the burst photos")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to analysis configuration YAML (defaults are used when unset)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for analysis outputs (defaults to <image_dir>/analysis)",
    )
    parser.add_argument("--cluster-id", type=str, default=None, help="Override the derived cluster id")
    parser.add_argument("--workers", type=int, default=None, help="Override the number of scan workers")
    parser.add_argument(
        "--providers",
        nargs="+",
        default=None,
        help="ONNX execution providers for the InsightFace models",
    )
    parser.add_argument("--det-thresh", type=float, default=0.45, help="Face detection confidence threshold")
    parser.add_argument("--rank-only", action="store_true", help="Only rank faces; skip identity and eligibility")
    parser.add_argument(
        "--no-embeddings",
        action="store_true",
        help="Skip ArcFace descriptors and match identities by position and size only",
    )
    parser.add_argument("--progress", action="store_true", help="Show a progress bar while scanning")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def build_photos(image_dir: Path) -> List[Photo]:
    photos = [photo_from_path(path) for path in list_images(image_dir)]
    LOGGER.info("Found %d photos in %s", len(photos), image_dir)
    return photos


def resolve_config(args: argparse.Namespace) -> AnalysisConfig:
    config = load_config(args.config)
    if args.workers is not None:
        config.workers = max(1, int(args.workers))
    if args.progress:
        config.progress = True
    return config


def build_runner(args: argparse.Namespace, config: AnalysisConfig) -> FaceAnalysisRunner:
    from burstface.detectors.face_retina import RetinaFaceDetector

    detector = RetinaFaceDetector(providers=args.providers, det_thresh=args.det_thresh)
    embedder = None
    if not args.no_embeddings and not args.rank_only:
        from burstface.recognition.embedding import ArcFaceEmbedder

        try:
            embedder = ArcFaceEmbedder(providers=args.providers)
        except RuntimeError as exc:
            LOGGER.warning("ArcFace embedder unavailable (%s); matching identities without descriptors.", exc)
    return FaceAnalysisRunner(face_detector=detector, embedder=embedder, config=config)


def run_analysis(
    runner: FaceAnalysisRunner,
    photos: Sequence[Photo],
    output_dir: Path,
    rank_only: bool = False,
    cluster_id: Optional[str] = None,
) -> Dict[str, Path]:
    """Run the analysis and write outputs; returns the written paths by name."""
    ensure_dir(output_dir)
    outputs: Dict[str, Path] = {}

    rankings = runner.rank_faces(photos)
    analysis = None
    if not rank_only:
        analysis = runner.analyze_cluster(photos, cluster_id)
        eligibility = runner.assess_eligibility(photos, cluster_id)

        outputs["analysis"] = output_dir / "analysis.json"
        dump_json(outputs["analysis"], analysis.to_dict())
        outputs["eligibility"] = output_dir / "eligibility.json"
        dump_json(outputs["eligibility"], eligibility.to_dict())
        outputs["persons"] = output_dir / "persons.csv"
        person_summary_frame(analysis).to_csv(outputs["persons"], index=False)
        LOGGER.info(
            "Eligibility: %s (%s) confidence=%.2f",
            eligibility.is_eligible,
            eligibility.reason.value,
            eligibility.confidence,
        )

    outputs["faces"] = output_dir / "faces.csv"
    faces_to_frame(rankings, analysis).to_csv(outputs["faces"], index=False)
    for name, path in outputs.items():
        LOGGER.info("Wrote %s -> %s", name, path)
    return outputs


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    if not args.image_dir.is_dir():
        raise SystemExit(f"Image directory not found: {args.image_dir}")
    photos = build_photos(args.image_dir)
    if not photos:
        raise SystemExit(f"No images found in {args.image_dir}")

    config = resolve_config(args)
    runner = build_runner(args, config)
    output_dir = args.output_dir or args.image_dir / "analysis"
    run_analysis(runner, photos, output_dir, rank_only=args.rank_only, cluster_id=args.cluster_id)


if __name__ == "__main__":
    main()
