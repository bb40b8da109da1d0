"""Matzip-Log: a photo log of restaurants, with a public feed and moderation."""

__version__ = "1.0.0"
