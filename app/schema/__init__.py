"""Database table definitions."""

from .jobs import UsageEvent, VideoJob

__all__ = ["UsageEvent", "VideoJob"]
