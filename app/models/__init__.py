"""Models package."""

__all__ = [
    "base",
    "user",
    "session",
]
