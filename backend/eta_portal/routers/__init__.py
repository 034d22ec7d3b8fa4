from . import applications, health, submissions

__all__ = [
    "applications",
    "health",
    "submissions",
]
