"""Task Router — constraint-based next-task recommendation for spec-driven agents."""

__version__ = "0.1.0"
