"""
Utility modules for the visibility engine
"""

from .batching import run_in_batches

__all__ = [
    "run_in_batches",
]
