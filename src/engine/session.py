"""
Exercise session engine.

Orchestrates one exercise at a time:

    load_exercise -> start -> (submit_answer / next_question / get_hint)* -> complete

Collaborators arrive through an EngineContext (settings, scheduler, store,
validator); the engine owns its event bus, status tracker, score calculator,
dual timer and auto-saver.

Errors:
- wrong answers, unknown types, exhausted hints and time limits are data
- calling operations out of sequence raises a QuizEngineError subclass
- any other exception inside an operation marks the engine failed,
  publishes engine:error and propagates; reload the exercise to recover
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

from loguru import logger

from config import Settings, get_settings

from .autosave import AutoSaver
from .errors import (
    AlreadyStarted,
    EngineDestroyed,
    EngineFailed,
    ExerciseNotActive,
    MissingExerciseData,
    NoCurrentQuestion,
    QuizEngineError,
)
from .events import (
    AnswerSubmitted,
    BookmarkChanged,
    BookmarksCleared,
    EngineError,
    Event,
    EventBus,
    EventType,
    HintUsed,
    Listener,
    QuestionChanged,
    SessionChanged,
    Subscription,
)
from .models import (
    AnswerRecord,
    CompletionResult,
    ExerciseConfig,
    ExerciseDefinition,
    HintUse,
    Question,
)
from .scheduler import AsyncioScheduler, Scheduler, epoch_ms
from .scoring import ScoreBreakdown, ScoreCalculator, round_half_up
from .session_store import SessionStore
from .status import SessionStatus, StatusTracker, parse_status
from .timer import DualTimer
from .validators import AnswerValidator
from .validators.base import ValidationResult, to_json_native

NO_HINT = "No hint available for this question."
NO_MORE_HINTS = "No more hints available for this question."


def phrase_hint(hint: str, level: int) -> str:
    """Progressively stronger wording of a question's single hint."""
    if level == 1:
        return f"Hint: {hint}"
    if level == 2:
        return f"Stronger Hint: {hint} Think about the key concept."
    if level == 3:
        return f"Final Hint: {hint} Focus on the most important part."
    return hint


def snapshot_key(exercise_id: str | None) -> str:
    """Logical store key for an exercise's snapshot (the store adds the namespace)."""
    return f"quiz-state-{exercise_id}" if exercise_id else "quiz-state"


@dataclass
class EngineContext:
    """Everything a SessionEngine needs from the outside world."""

    settings: Settings
    scheduler: Scheduler
    store: SessionStore
    validator: AnswerValidator
    owns_store: bool = False  # store was built here; the engine closes it on destroy

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        scheduler: Scheduler | None = None,
        store: SessionStore | None = None,
        validator: AnswerValidator | None = None,
    ) -> "EngineContext":
        settings = settings or get_settings()
        scheduler = scheduler or AsyncioScheduler()
        return cls(
            settings=settings,
            scheduler=scheduler,
            store=store or SessionStore.from_settings(settings, scheduler),
            validator=validator or AnswerValidator(),
            owns_store=store is None,
        )


@dataclass
class SubmissionResult:
    validation: ValidationResult
    score_data: ScoreBreakdown
    can_proceed: bool

    def to_dict(self) -> dict:
        return {
            "validation": self.validation.to_dict(),
            "score_data": self.score_data.to_dict(),
            "can_proceed": self.can_proceed,
        }


@dataclass
class HintResponse:
    """level is 0 when the question has no hint and -1 once the cap is reached."""

    hint: str
    level: int
    remaining: int = 0
    total_used: int = 0

    def to_dict(self) -> dict:
        return {"hint": self.hint, "level": self.level, "remaining": self.remaining, "total_used": self.total_used}


class SessionEngine:
    """
    Runs one exercise session.

    Usage:
        engine = SessionEngine(EngineContext.create())
        await engine.initialize()
        await engine.load_exercise(definition)
        await engine.start()
        result = await engine.submit_answer(1)
        await engine.next_question()
        ...
        completion = await engine.complete()
        await engine.destroy()
    """

    def __init__(self, context: EngineContext | None = None):
        self.id = f"engine_{uuid.uuid4().hex[:12]}"
        self.context = context or EngineContext.create()
        self.settings = self.context.settings
        self.store = self.context.store
        self.validator = self.context.validator
        self._scheduler = self.context.scheduler

        self.events = EventBus()
        self.status_tracker = StatusTracker()
        self.definition: ExerciseDefinition | None = None
        self.config = ExerciseConfig.from_settings(self.settings)
        self.scorer = ScoreCalculator(self.config.scoring)
        self.timer = DualTimer(
            self._scheduler,
            self.events,
            tick_interval=self.settings.tick_interval_ms,
            global_limit=self.config.global_time_limit,
            question_limit=self.config.question_time_limit,
            warning_threshold=self.config.warning_threshold,
        )
        self.autosaver = AutoSaver(
            self.events,
            self.store,
            self._scheduler,
            snapshot=self.get_state,
            key=lambda: self.storage_key,
            interval=self.config.auto_save_frequency,
        )

        self.current_question_index = 0
        self.answers: dict[int, AnswerRecord] = {}
        self.hints: dict[int, list[HintUse]] = {}
        self.bookmarks: set[int] = set()
        self.score = 0
        self.start_time: int | None = None
        self.end_time: int | None = None
        self.last_auto_save: int | None = None
        self.is_ready = False
        self._completion: CompletionResult | None = None
        self._destroyed = False

        self.events.subscribe(self._on_auto_saved, EventType.AUTO_SAVED)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def status(self) -> SessionStatus:
        return self.status_tracker.status

    @property
    def exercise_id(self) -> str | None:
        return self.definition.id if self.definition else None

    @property
    def exercise_type(self) -> str | None:
        return self.definition.type if self.definition else None

    @property
    def questions(self) -> list[Question]:
        return self.definition.questions if self.definition else []

    @property
    def storage_key(self) -> str:
        return snapshot_key(self.exercise_id)

    @property
    def is_started(self) -> bool:
        return self.start_time is not None

    @property
    def is_paused(self) -> bool:
        return self.status is SessionStatus.PAUSED

    @property
    def is_completed(self) -> bool:
        return self.status is SessionStatus.COMPLETED

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> bool:
        self._ensure_not_destroyed()
        try:
            self.timer.reset()
            if not self.store.available_strategies():
                logger.warning("No storage backend available; session snapshots will not persist")
            self.is_ready = True
        except Exception as e:  # Intentionally broad - initialization failure is reported, not raised
            self._fail("initialization", e)
            return False
        self.events.publish(EventType.ENGINE_INITIALIZED, None)
        logger.info("Engine {} initialized", self.id)
        return True

    async def load_exercise(
        self,
        definition: ExerciseDefinition | dict | None,
        config: ExerciseConfig | dict | None = None,
    ) -> dict:
        """
        Load an exercise and reset every piece of per-session state.

        Raises:
            MissingExerciseData: definition is None or empty
            pydantic.ValidationError: definition or config is malformed
        """
        self._ensure_not_destroyed()
        if not definition:
            raise MissingExerciseData()
        definition, merged = self._prepare(definition, config)

        with self._guard("load_exercise"):
            self._apply_exercise(definition, merged)
            self._reset_session_state(clear_bookmarks=True)
            logger.info(
                "Loaded exercise {} ({}, {} questions)",
                definition.id,
                definition.type,
                len(definition.questions),
            )
            self._publish_session(EventType.EXERCISE_LOADED)
            await self._persist()
        return self.get_state()

    async def start(self) -> dict:
        """
        Start the session clock.

        Raises:
            AlreadyStarted: start() was already called for this exercise
            MissingExerciseData: no exercise loaded
        """
        self._ensure_usable()
        if self.definition is None:
            raise MissingExerciseData()
        if self.is_started:
            raise AlreadyStarted()

        with self._guard("start"):
            self.start_time = epoch_ms()
            self.timer.start_global()
            if self.questions:
                self.timer.start_question(self.current_question_index)
            self.status_tracker.transition_to(SessionStatus.IN_PROGRESS)
            if self.config.auto_save:
                self.autosaver.start()
            logger.info("Exercise {} started", self.exercise_id)
            self._publish_session(EventType.EXERCISE_STARTED)
            await self._persist()
        return self.get_state()

    async def submit_answer(self, answer: Any) -> SubmissionResult:
        """
        Judge and price an answer for the current question.

        Raises:
            ExerciseNotActive: the exercise is completed or paused
            NoCurrentQuestion: nothing to answer
        """
        self._ensure_usable()
        if self.is_completed:
            raise ExerciseNotActive("completed")
        if self.is_paused:
            raise ExerciseNotActive("paused")
        question = self.get_current_question()
        if question is None:
            raise NoCurrentQuestion()

        with self._guard("submit_answer"):
            index = self.current_question_index
            validation = self.validator.validate(answer, question, self.exercise_type)
            hints_used = len(self.hints.get(index, []))
            time_to_answer = self.timer.get_question_time(index)

            answer = to_json_native(answer)
            record = AnswerRecord(
                question_index=index,
                answer=answer,
                validation=validation,
                time_to_answer=time_to_answer,
                hints_used=hints_used,
                difficulty=question.difficulty,
            )
            streak = self.scorer.streak_length_at({**self.answers, index: record}, index)
            score_data = self.scorer.calculate_score(
                validation,
                time_to_answer=time_to_answer,
                difficulty=question.difficulty,
                hints_used=hints_used,
                streak_length=streak,
            )

            self.answers[index] = record
            self.score += score_data.points
            can_proceed = validation.is_correct or self.config.allow_incorrect_progression

            logger.debug(
                "Q{} answered ({}), +{} points, streak {}",
                index,
                "correct" if validation.is_correct else "incorrect",
                score_data.points,
                streak,
            )
            self.events.publish(
                EventType.ANSWER_SUBMITTED,
                AnswerSubmitted(
                    question_index=index,
                    answer=answer,
                    validation=validation,
                    score=score_data,
                    total_score=self.score,
                    can_proceed=can_proceed,
                ),
            )
            await self._persist()
        return SubmissionResult(validation=validation, score_data=score_data, can_proceed=can_proceed)

    async def complete(self) -> CompletionResult:
        """Finish the session. Calling it again returns the first result unchanged."""
        self._ensure_usable()
        if self._completion is not None:
            return self._completion
        if self.definition is None:
            raise MissingExerciseData()

        with self._guard("complete"):
            self.end_time = epoch_ms()
            self.timer.stop_all()
            self.autosaver.stop()
            result = self._build_completion()
            self.score = result.final_score.total
            self._walk_to(SessionStatus.COMPLETED)
            self._completion = result

            logger.info(
                "Exercise {} completed: score {} ({}%, grade {})",
                self.exercise_id,
                result.final_score.total,
                result.final_score.accuracy,
                result.final_score.grade,
            )
            self.events.publish(EventType.EXERCISE_COMPLETED, result)
            await self._persist()
            await self.store.archive_session(result.exercise_id, result.to_dict())
        return result

    def pause(self) -> bool:
        """Pause a running session. Returns False when there is nothing to pause."""
        self._ensure_usable()
        if self.status is not SessionStatus.IN_PROGRESS:
            return False
        with self._guard("pause"):
            self.timer.pause()
            self.autosaver.stop()
            self.status_tracker.transition_to(SessionStatus.PAUSED)
            self._publish_session(EventType.EXERCISE_PAUSED)
            self._enqueue_snapshot()
        return True

    def resume(self) -> bool:
        """Resume a paused session. Returns False when not paused."""
        self._ensure_usable()
        if self.status is not SessionStatus.PAUSED:
            return False
        with self._guard("resume"):
            self.timer.resume()
            self.status_tracker.transition_to(SessionStatus.IN_PROGRESS)
            if self.config.auto_save:
                self.autosaver.start()
            self._publish_session(EventType.EXERCISE_RESUMED)
        return True

    def reset(self) -> dict:
        """Restart the loaded exercise from scratch. Bookmarks are kept."""
        self._ensure_usable()
        with self._guard("reset"):
            self.autosaver.stop()
            self.timer.reset()
            self._reset_session_state(clear_bookmarks=False)
            self.status_tracker.reset(self.exercise_id)
            self._publish_session(EventType.EXERCISE_RESET)
            self._enqueue_snapshot()
        return self.get_state()

    async def destroy(self) -> bool:
        """
        Tear the engine down.

        Every scheduled callback is cancelled before the final snapshot is
        written, so nothing fires after this returns. Later calls raise
        EngineDestroyed.
        """
        if self._destroyed:
            return False

        self.timer.pause()
        self.timer.destroy()
        self.autosaver.detach()
        self.store.cancel_pending()
        self.store.flush()

        if self.definition is not None and self.config.persist_snapshots:
            await self.store.save(self.storage_key, self.get_state(), immediate=True)

        if self.context.owns_store:
            self.store.close()

        self.events.publish(EventType.ENGINE_DESTROYED, None)
        self.events.clear()
        self.is_ready = False
        self._destroyed = True
        logger.info("Engine {} destroyed", self.id)
        return True

    # =========================================================================
    # Navigation
    # =========================================================================

    async def next_question(self) -> Question | None:
        """Advance; past the last question the session completes instead."""
        self._ensure_usable()
        if self.has_next_question():
            with self._guard("next_question"):
                self._move_to(self.current_question_index + 1)
        else:
            await self.complete()
        return self.get_current_question()

    async def previous_question(self) -> Question | None:
        self._ensure_usable()
        if self.has_previous_question():
            with self._guard("previous_question"):
                self._move_to(self.current_question_index - 1)
        return self.get_current_question()

    def has_next_question(self) -> bool:
        return self.current_question_index < len(self.questions) - 1

    def has_previous_question(self) -> bool:
        return self.current_question_index > 0

    can_go_next = has_next_question
    can_go_previous = has_previous_question

    def _move_to(self, index: int) -> None:
        previous = self.current_question_index
        self.current_question_index = index
        if self.is_started and not self.is_completed:
            self.timer.start_question(index)
        question = self.get_current_question()
        self.events.publish(
            EventType.QUESTION_CHANGED,
            QuestionChanged(index=index, previous_index=previous, question=question.to_dict() if question else None),
        )

    # =========================================================================
    # Hints
    # =========================================================================

    def get_hint(self, level: int = 1) -> HintResponse:
        """
        Return the current question's hint at the requested strength.

        Each call counts against max_hints for the question. Once the cap is
        reached the sentinel response (level -1) is returned and nothing is
        recorded.
        """
        self._ensure_usable()
        question = self.get_current_question()
        index = self.current_question_index
        used = self.hints.get(index, [])

        if question is None or not question.hint:
            return HintResponse(NO_HINT, level=0, remaining=0, total_used=len(used))
        if len(used) >= self.config.max_hints:
            return HintResponse(NO_MORE_HINTS, level=-1, remaining=0, total_used=len(used))

        text = phrase_hint(question.hint, level)
        used = self.hints.setdefault(index, [])
        used.append(HintUse(level=level, hint=text))
        self.events.publish(
            EventType.HINT_USED,
            HintUsed(question_index=index, level=level, hint=text, hints_used=len(used)),
        )
        return HintResponse(text, level=level, remaining=self.config.max_hints - len(used), total_used=len(used))

    def get_hints_used(self, question_index: int | None = None) -> list[HintUse]:
        index = self.current_question_index if question_index is None else question_index
        return list(self.hints.get(index, []))

    def get_total_hints_used(self) -> int:
        return sum(len(used) for used in self.hints.values())

    # =========================================================================
    # Bookmarks
    # =========================================================================

    def bookmark_question(self, question_index: int | None = None) -> bool:
        """Toggle a bookmark. Returns True when the question is now bookmarked."""
        self._ensure_usable()
        index = self.current_question_index if question_index is None else question_index
        if index in self.bookmarks:
            self.bookmarks.discard(index)
            self._publish_bookmark(EventType.BOOKMARK_REMOVED, index)
            return False
        self.bookmarks.add(index)
        self._publish_bookmark(EventType.BOOKMARK_ADDED, index)
        return True

    def is_bookmarked(self, question_index: int | None = None) -> bool:
        index = self.current_question_index if question_index is None else question_index
        return index in self.bookmarks

    def get_bookmarked_questions(self) -> list[int]:
        return sorted(self.bookmarks)

    def remove_bookmark(self, question_index: int) -> bool:
        self._ensure_usable()
        if question_index not in self.bookmarks:
            return False
        self.bookmarks.discard(question_index)
        self._publish_bookmark(EventType.BOOKMARK_REMOVED, question_index)
        return True

    def clear_all_bookmarks(self) -> int:
        self._ensure_usable()
        count = len(self.bookmarks)
        self.bookmarks.clear()
        self.events.publish(EventType.BOOKMARKS_CLEARED, BookmarksCleared(count=count))
        return count

    def _publish_bookmark(self, event_type: EventType, index: int) -> None:
        self.events.publish(event_type, BookmarkChanged(question_index=index, bookmarks=tuple(sorted(self.bookmarks))))

    # =========================================================================
    # Queries
    # =========================================================================

    def get_current_question(self) -> Question | None:
        if 0 <= self.current_question_index < len(self.questions):
            return self.questions[self.current_question_index]
        return None

    def get_answer(self, question_index: int | None = None) -> AnswerRecord | None:
        index = self.current_question_index if question_index is None else question_index
        return self.answers.get(index)

    def get_all_answers(self) -> list[dict]:
        return [
            {**record.to_dict(), "question": self.questions[index].to_dict() if index < len(self.questions) else None}
            for index, record in sorted(self.answers.items())
        ]

    def get_total_time(self) -> float:
        return self.timer.get_total_time()

    def get_progress(self) -> dict:
        total = len(self.questions)
        current = self.current_question_index + 1 if total else 0
        return {
            "current": current,
            "total": total,
            "percentage": round_half_up(current / total * 100) if total else 0,
            "answered": len(self.answers),
            "remaining": total - len(self.answers),
        }

    def get_score(self) -> dict:
        count = len(self.questions)
        return {
            "current": self.score,
            "maximum": self.scorer.get_maximum_possible_score(count),
            "percentage": self.scorer.get_score_percentage(self.score, count),
        }

    def get_statistics(self) -> dict:
        answered = list(self.answers.values())
        correct = [a for a in answered if a.validation.is_correct]
        last_index = max(self.answers) if self.answers else 0
        return {
            "questions_answered": len(answered),
            "correct_answers": len(correct),
            "accuracy": len(correct) / len(answered) * 100 if answered else 0.0,
            "current_score": self.score,
            "total_time": self.get_total_time(),
            "average_time_per_question": (
                sum(a.time_to_answer for a in answered) / len(answered) if answered else 0.0
            ),
            "hints_used": self.get_total_hints_used(),
            "bookmarks_count": len(self.bookmarks),
            "current_streak": self.scorer.streak_length_at(self.answers, last_index),
            "auto_save_enabled": self.autosaver.running,
            "last_auto_save": self.last_auto_save,
            "progress": self.get_progress(),
            "is_paused": self.is_paused,
            "is_completed": self.is_completed,
        }

    def get_state(self) -> dict:
        """JSON-serializable snapshot; restore() accepts it back."""
        return {
            "engine_id": self.id,
            "exercise_id": self.exercise_id,
            "type": self.exercise_type,
            "status": self.status.value,
            "current_question_index": self.current_question_index,
            "answers": [[index, record.to_dict()] for index, record in sorted(self.answers.items())],
            "hints": [[index, [h.to_dict() for h in used]] for index, used in sorted(self.hints.items())],
            "bookmarks": sorted(self.bookmarks),
            "score": self.score,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "is_completed": self.is_completed,
            "is_paused": self.is_paused,
            "timer": self.timer.get_state(),
            "progress": self.get_progress(),
            "config": self.config.model_dump(mode="json"),
            "saved_at": epoch_ms(),
        }

    def subscribe(self, listener: Listener, *types: EventType | str) -> Subscription:
        return self.events.subscribe(listener, *types)

    # =========================================================================
    # Snapshots
    # =========================================================================

    async def restore(
        self,
        definition: ExerciseDefinition | dict,
        snapshot: dict,
        config: ExerciseConfig | dict | None = None,
    ) -> dict:
        """
        Resume a session from a get_state() snapshot.

        A session that was running comes back paused; call resume() to
        continue. A completed session comes back completed with its
        completion result rebuilt.

        Raises:
            MissingExerciseData: definition is None or empty
            ValueError: snapshot belongs to a different exercise
        """
        self._ensure_not_destroyed()
        if not definition:
            raise MissingExerciseData()
        definition, merged = self._prepare(definition, config or snapshot.get("config"))
        saved_id = snapshot.get("exercise_id")
        if saved_id is not None and str(saved_id) != definition.id:
            raise ValueError(f"Snapshot is for exercise {saved_id}, not {definition.id}")

        with self._guard("restore"):
            self._apply_exercise(definition, merged)
            self._reset_session_state(clear_bookmarks=True)

            count = len(definition.questions)
            index = int(snapshot.get("current_question_index", 0))
            self.current_question_index = min(max(index, 0), max(count - 1, 0))
            self.answers = {int(i): AnswerRecord.from_dict(r) for i, r in snapshot.get("answers") or []}
            self.hints = {int(i): [HintUse.from_dict(h) for h in used] for i, used in snapshot.get("hints") or []}
            self.bookmarks = {int(i) for i in snapshot.get("bookmarks") or []}
            self.score = int(snapshot.get("score", 0))
            self.start_time = snapshot.get("start_time")
            self.end_time = snapshot.get("end_time")
            self.timer.restore(snapshot.get("timer") or {})

            saved_status = parse_status(snapshot.get("status", SessionStatus.READY))
            if saved_status is SessionStatus.COMPLETED:
                self.status_tracker.force(SessionStatus.COMPLETED)
                self._completion = self._build_completion()
            elif self.is_started:
                self.status_tracker.force(SessionStatus.PAUSED)
                self.timer.pause()
            else:
                self.status_tracker.force(SessionStatus.READY)

            logger.info(
                "Restored exercise {} at question {} ({})",
                definition.id,
                self.current_question_index,
                self.status.value,
            )
            self._publish_session(EventType.EXERCISE_LOADED)
            await self._persist()
        return self.get_state()

    async def resume_from_store(
        self, definition: ExerciseDefinition | dict, config: ExerciseConfig | dict | None = None
    ) -> dict | None:
        """Restore the stored snapshot for definition, or return None when there is none."""
        self._ensure_not_destroyed()
        if not definition:
            raise MissingExerciseData()
        if isinstance(definition, dict):
            definition = ExerciseDefinition.model_validate(definition)
        snapshot = await self.store.load(snapshot_key(definition.id))
        if not isinstance(snapshot, dict):
            return None
        return await self.restore(definition, snapshot, config)

    # =========================================================================
    # Internals
    # =========================================================================

    def _prepare(
        self, definition: ExerciseDefinition | dict, config: ExerciseConfig | dict | None
    ) -> tuple[ExerciseDefinition, ExerciseConfig]:
        if isinstance(definition, dict):
            definition = ExerciseDefinition.model_validate(definition)
        merged = ExerciseConfig.from_settings(self.settings).merged(config)
        if not self.validator.has_validator(definition.type):
            logger.warning("Exercise {} has unknown type '{}'; answers will not validate", definition.id, definition.type)
        return definition, merged

    def _apply_exercise(self, definition: ExerciseDefinition, config: ExerciseConfig) -> None:
        self.definition = definition
        self.config = config
        self.scorer = ScoreCalculator(config.scoring)
        self.autosaver.stop()
        self.autosaver.interval = config.auto_save_frequency
        self.timer.reset()
        self.timer.update_limits(
            global_limit=config.global_time_limit,
            question_limit=config.question_time_limit,
            warning_threshold=config.warning_threshold,
        )
        self.status_tracker.reset(definition.id)

    def _reset_session_state(self, clear_bookmarks: bool) -> None:
        self.current_question_index = 0
        self.answers = {}
        self.hints = {}
        if clear_bookmarks:
            self.bookmarks = set()
        self.score = 0
        self.start_time = None
        self.end_time = None
        self._completion = None

    def _build_completion(self) -> CompletionResult:
        total_time = self.timer.get_total_time()
        final = self.scorer.calculate_final_score(self.answers, total_time, len(self.questions))
        return CompletionResult(
            exercise_id=self.exercise_id or "",
            final_score=final,
            total_time=total_time,
            answers_count=len(self.answers),
            questions_count=len(self.questions),
        )

    def _walk_to(self, target: SessionStatus) -> None:
        """Reach target through legal transitions (ready/paused pass through in_progress)."""
        if self.status in (SessionStatus.READY, SessionStatus.PAUSED):
            self.status_tracker.transition_to(SessionStatus.IN_PROGRESS)
        self.status_tracker.transition_to(target)

    def _publish_session(self, event_type: EventType) -> None:
        self.events.publish(
            event_type,
            SessionChanged(
                exercise_id=self.exercise_id,
                status=self.status.value,
                question_index=self.current_question_index,
                questions_count=len(self.questions),
            ),
        )

    async def _persist(self) -> None:
        if self.definition is None or not self.config.persist_snapshots:
            return
        await self.store.save(self.storage_key, self.get_state())

    def _enqueue_snapshot(self) -> None:
        if self.definition is None or not self.config.persist_snapshots:
            return
        self.store.enqueue(self.storage_key, self.get_state())

    def _on_auto_saved(self, event: Event) -> None:
        self.last_auto_save = event.payload.timestamp

    def _ensure_not_destroyed(self) -> None:
        if self._destroyed:
            raise EngineDestroyed()

    def _ensure_usable(self) -> None:
        self._ensure_not_destroyed()
        if self.status is SessionStatus.FAILED:
            raise EngineFailed()

    @contextmanager
    def _guard(self, stage: str) -> Iterator[None]:
        try:
            yield
        except QuizEngineError:
            raise
        except Exception as e:  # Intentionally broad - any unexpected error fails the session
            self._fail(stage, e)
            raise

    def _fail(self, stage: str, error: BaseException) -> None:
        logger.opt(exception=error).error("Engine failure during {}: {}", stage, error)
        self.timer.pause()
        self.autosaver.stop()
        self.status_tracker.fail()
        self.events.publish(EventType.ENGINE_ERROR, EngineError(stage=stage, error=str(error)))
