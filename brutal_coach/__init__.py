"""Discord accountability coach: timed goal sessions judged by an LLM."""

__version__ = "0.1.0"
