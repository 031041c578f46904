"""adpivot — ad performance pivot engine."""

__version__ = "0.1.0"
