"""News Digest Agent: feed aggregation, LLM tool-calling and webhook publishing."""

__version__ = "0.1.0"
