"""Query classification and routing."""

from .classifier import QueryClassifier, fallback_classification, KNOWN_SIMPLE, KNOWN_COMPLEX

__all__ = ["QueryClassifier", "fallback_classification", "KNOWN_SIMPLE", "KNOWN_COMPLEX"]
