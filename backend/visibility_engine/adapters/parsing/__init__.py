"""
Response Parsing Adapters
"""

from .citation_classifier import CitationClassifier, build_domain_hints

__all__ = [
    "CitationClassifier",
    "build_domain_hints",
]
