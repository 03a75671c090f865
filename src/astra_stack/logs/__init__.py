"""Component log following."""

from .follower import LogFileChangeHandler, LogFollower

__all__ = [
    "LogFileChangeHandler",
    "LogFollower",
]
