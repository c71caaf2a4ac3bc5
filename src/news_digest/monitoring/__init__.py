"""Logging setup for news-digest."""
