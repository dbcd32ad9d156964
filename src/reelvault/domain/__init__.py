"""
Domain layer - persisted catalog records.
"""

from .entities import Comic, Video

__all__ = ["Comic", "Video"]
