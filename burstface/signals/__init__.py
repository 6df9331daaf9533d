"""Geometric signal extractors computed from landmark point sets."""

from burstface.signals.eyes import adaptive_threshold, detect_eye_state, eye_aspect_ratio
from burstface.signals.expression import analyze_expression

__all__ = ["adaptive_threshold", "analyze_expression", "detect_eye_state", "eye_aspect_ratio"]
