# ============================================================================
# Answer Session Schemas
# ============================================================================
from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime, timedelta

from quizstats.core.exceptions import AlreadyCompleted, InvalidInput

# Anti-gaming window for averaging (inclusive on both ends)
VALID_MIN_MS = 5_000
VALID_MAX_MS = 600_000

ONE_MS = timedelta(milliseconds=1)

def elapsed_ms(start: datetime, end: datetime) -> int:
    """Whole milliseconds between two instants"""
    return (end - start) // ONE_MS

class AnswerSession(BaseModel):
    """One timed attempt by one user at one question.

    Values are immutable: completing a session or attaching the identity
    assigned by the store returns a new value.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    user_id: int
    question_id: int
    selected_answer: Optional[str] = None
    is_correct: bool = False
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None

    @classmethod
    def start(cls, user_id: int, question_id: int, now: datetime) -> "AnswerSession":
        session = cls(user_id=user_id, question_id=question_id, started_at=now)
        session.check_invariants()
        return session

    def with_id(self, new_id: int) -> "AnswerSession":
        return self.model_copy(update={"id": new_id})

    def complete(self, answer: str, is_correct: bool, now: datetime) -> "AnswerSession":
        if self.is_completed:
            raise AlreadyCompleted(self.id)

        completed = self.model_copy(update={
            "selected_answer": answer,
            "is_correct": is_correct,
            "completed_at": now,
            "duration_ms": elapsed_ms(self.started_at, now),
        })
        completed.check_invariants()
        return completed

    # ==================== State ====================

    @property
    def is_completed(self) -> bool:
        return (
            self.selected_answer is not None
            and self.completed_at is not None
            and self.duration_ms is not None
        )

    @property
    def is_in_progress(self) -> bool:
        return self.completed_at is None

    @property
    def duration(self) -> Optional[timedelta]:
        if self.duration_ms is None:
            return None
        return timedelta(milliseconds=self.duration_ms)

    @property
    def duration_seconds(self) -> int:
        return (self.duration_ms or 0) // 1000

    def is_valid_within(self, min_ms: int, max_ms: int) -> bool:
        if not self.is_completed:
            return False
        return min_ms <= self.duration_ms <= max_ms

    @property
    def is_valid(self) -> bool:
        """Completed in a plausible time: not instant, not forgotten"""
        return self.is_valid_within(VALID_MIN_MS, VALID_MAX_MS)

    def check_invariants(self) -> None:
        if self.user_id is None:
            raise InvalidInput("user_id must not be null")
        if self.question_id is None:
            raise InvalidInput("question_id must not be null")
        if self.started_at is None:
            raise InvalidInput("started_at must not be null")

        markers = (self.selected_answer, self.completed_at, self.duration_ms)
        if any(m is None for m in markers) and any(m is not None for m in markers):
            raise InvalidInput(
                "selected_answer, completed_at and duration must be set together"
            )

        if self.is_completed:
            if not self.selected_answer.strip():
                raise InvalidInput("selected_answer must not be empty")
            if self.completed_at < self.started_at:
                raise InvalidInput("completed_at must not be before started_at")
            if self.duration_ms < 0:
                raise InvalidInput("duration must not be negative")

class AnswerResult(BaseModel):
    """Outcome of answering a question in one call"""
    model_config = ConfigDict(frozen=True)

    session_id: int
    user_id: int
    question_id: int
    selected_answer: str
    is_correct: bool
    duration_ms: int
    explanation: Optional[str] = None
    correct_answer: Optional[str] = None
