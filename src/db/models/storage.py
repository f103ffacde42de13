"""
Bulk storage tables for the session store's database backend.

Implements:
- ExerciseRecord: archived exercise definitions, one row per exercise id
- SessionRecord: completed sessions with their final score
- ProgressRecord: generic {key, data, timestamp} rows for large payloads

The key-value contract of the other backends is served by ProgressRecord;
the other two tables are written by SessionStore.archive_exercise and
SessionStore.archive_session.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Float, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ExerciseRecord(Base):
    __tablename__ = "exercises"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    exercise_type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(Text)
    question_count: Mapped[int] = mapped_column(Integer, default=0)

    # Full definition as authored (camelCase keys preserved)
    definition: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=func.now())
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())


class SessionRecord(Base):
    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    exercise_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    # Final score summary
    total_score: Mapped[int] = mapped_column(Integer, default=0)
    accuracy: Mapped[int] = mapped_column(Integer, default=0)  # percent
    grade: Mapped[str | None] = mapped_column(Text)
    total_time: Mapped[float] = mapped_column(Float, default=0.0)  # ms

    result: Mapped[dict] = mapped_column(JSON, nullable=False)

    completed_at: Mapped[datetime] = mapped_column(default=func.now())


class ProgressRecord(Base):
    __tablename__ = "progress"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    data: Mapped[Any] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)  # epoch ms
