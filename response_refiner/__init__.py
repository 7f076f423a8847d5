"""Multi-step refinement of generated chat messages."""

__version__ = "0.1.0"
