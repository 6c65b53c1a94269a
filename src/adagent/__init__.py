"""adagent - goal-aware question answering over video ad performance data."""

__version__ = "0.1.0"
