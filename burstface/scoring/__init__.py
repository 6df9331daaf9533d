from burstface.scoring.scorer import FaceScorer

__all__ = ["FaceScorer"]
