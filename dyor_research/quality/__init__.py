"""Quality gate pipeline."""

from .gates import QualityGatePipeline

__all__ = ["QualityGatePipeline"]
