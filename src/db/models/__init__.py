# SQLAlchemy models
from .base import Base
from .storage import (
    ExerciseRecord,
    ProgressRecord,
    SessionRecord,
)

__all__ = [
    "Base",
    "ExerciseRecord",
    "ProgressRecord",
    "SessionRecord",
]
