"""Video generation queue, cost estimation and asset download engine."""

__version__ = "0.1.0"
