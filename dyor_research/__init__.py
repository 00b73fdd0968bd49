"""
DYOR Research - resilient multi-source research orchestration for games, tokens and projects
"""

__version__ = "1.0.0"
__author__ = "DYOR Research Team"

__all__ = [
    "ResearchOrchestrator",
    "BatchCoordinator",
    "Settings",
    "__version__",
    "__author__",
]

def __getattr__(name: str):
    """Lazy import to avoid import-time side effects."""
    if name == "ResearchOrchestrator":
        from .orchestrator import ResearchOrchestrator
        return ResearchOrchestrator
    elif name == "BatchCoordinator":
        from .batch import BatchCoordinator
        return BatchCoordinator
    elif name == "Settings":
        from dyor_research.config.settings import Settings
        return Settings
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
