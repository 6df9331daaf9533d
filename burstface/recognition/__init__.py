"""Face descriptors and cross-photo identity resolution."""

from burstface.recognition.resolver import Assignment, IdentityResolver, canonical_order

__all__ = ["Assignment", "IdentityResolver", "canonical_order"]
