"""
Core package init for the Burst Face Analyzer.

Makes the `burstface` modules importable without requiring an editable install.
"""

__all__ = [
    "analysis",
    "cache",
    "config",
    "detectors",
    "imaging",
    "io_utils",
    "pipeline",
    "recognition",
    "report",
    "scoring",
    "signals",
    "types",
]
