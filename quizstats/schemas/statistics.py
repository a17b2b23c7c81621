# ============================================================================
# Statistics Schemas
# ============================================================================
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Optional
from datetime import datetime, timedelta
from enum import Enum

from quizstats.core.exceptions import InvalidInput
from quizstats.schemas.question import Difficulty

GOOD_PERFORMANCE_PERCENT = 70.0
FAVORITE_TOPIC_MIN_QUESTIONS = 5
BEGINNER_BELOW = 10
ADVANCED_FROM = 50
ACCURACY_TOLERANCE = 0.01

def accuracy_percent(correct: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return correct / total * 100.0

def format_duration(duration_ms: int) -> str:
    """Render whole seconds as '42s' or '1m 5s'"""
    if not duration_ms:
        return "0s"
    seconds = duration_ms // 1000
    if seconds < 60:
        return f"{seconds}s"
    return f"{seconds // 60}m {seconds % 60}s"

class UserLevel(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"

class RankingKind(str, Enum):
    ACCURACY = "accuracy"
    VOLUME = "volume"
    DURATION = "duration"

# ============================================================================
# Group breakdowns
# ============================================================================
class GroupStats(BaseModel):
    """Counts and averages for one slice of a user's completed sessions"""
    model_config = ConfigDict(frozen=True)

    total: int = 0
    correct: int = 0
    accuracy_percent: float = 0.0
    average_duration_ms: int = 0

    @property
    def has_data(self) -> bool:
        return self.total > 0

    @property
    def incorrect(self) -> int:
        return self.total - self.correct

    @property
    def is_good_performance(self) -> bool:
        return self.accuracy_percent >= GOOD_PERFORMANCE_PERCENT

    @property
    def average_duration_seconds(self) -> int:
        return self.average_duration_ms // 1000

    def format_average_duration(self) -> str:
        return format_duration(self.average_duration_ms)

class DifficultyStats(GroupStats):
    difficulty: Difficulty

    @classmethod
    def from_counts(cls, difficulty: Difficulty, total: int, correct: int, average_duration_ms: int):
        return cls(
            difficulty=difficulty,
            total=total,
            correct=correct,
            accuracy_percent=accuracy_percent(correct, total),
            average_duration_ms=average_duration_ms,
        )

    @classmethod
    def empty(cls, difficulty: Difficulty) -> "DifficultyStats":
        return cls(difficulty=difficulty)

class TopicStats(GroupStats):
    topic: str

    @classmethod
    def from_counts(cls, topic: str, total: int, correct: int, average_duration_ms: int):
        return cls(
            topic=topic,
            total=total,
            correct=correct,
            accuracy_percent=accuracy_percent(correct, total),
            average_duration_ms=average_duration_ms,
        )

    @classmethod
    def empty(cls, topic: str) -> "TopicStats":
        return cls(topic=topic)

    @property
    def is_favorite(self) -> bool:
        return self.total >= FAVORITE_TOPIC_MIN_QUESTIONS and self.is_good_performance

# ============================================================================
# User aggregate
# ============================================================================
class UserStatistics(BaseModel):
    """Aggregate of one user's completed sessions, replaced on every recompute"""
    model_config = ConfigDict(frozen=True)

    user_id: int
    total_questions: int = 0
    correct_answers: int = 0
    accuracy_percent: float = 0.0
    average_duration_ms: int = 0
    per_difficulty: Dict[Difficulty, DifficultyStats] = Field(default_factory=dict)
    per_topic: Dict[str, TopicStats] = Field(default_factory=dict)
    last_recomputed_at: datetime

    @field_validator("per_difficulty")
    @classmethod
    def _order_difficulties(cls, value: Dict[Difficulty, DifficultyStats]):
        return {d: value[d] for d in Difficulty if d in value}

    @field_validator("per_topic")
    @classmethod
    def _order_topics(cls, value: Dict[str, TopicStats]):
        return {topic: value[topic] for topic in sorted(value)}

    @classmethod
    def empty(cls, user_id: int, now: datetime) -> "UserStatistics":
        return cls(user_id=user_id, last_recomputed_at=now)

    # ==================== Derived ====================

    @property
    def incorrect_answers(self) -> int:
        return self.total_questions - self.correct_answers

    @property
    def has_activity(self) -> bool:
        return self.total_questions > 0

    @property
    def has_good_performance(self) -> bool:
        return self.accuracy_percent >= GOOD_PERFORMANCE_PERCENT

    @property
    def is_beginner(self) -> bool:
        return self.total_questions < BEGINNER_BELOW

    @property
    def is_experienced(self) -> bool:
        return self.total_questions >= ADVANCED_FROM

    @property
    def level(self) -> UserLevel:
        if self.is_beginner:
            return UserLevel.BEGINNER
        if self.is_experienced:
            return UserLevel.ADVANCED
        return UserLevel.INTERMEDIATE

    @property
    def average_duration_seconds(self) -> int:
        return self.average_duration_ms // 1000

    def format_average_duration(self) -> str:
        return format_duration(self.average_duration_ms)

    def calculated_accuracy(self) -> float:
        return accuracy_percent(self.correct_answers, self.total_questions)

    def best_difficulty(self) -> Optional[Difficulty]:
        """Highest accuracy among difficulties with data; ties keep enum order"""
        best = None
        for difficulty, stats in self.per_difficulty.items():
            if not stats.has_data:
                continue
            if best is None or stats.accuracy_percent > self.per_difficulty[best].accuracy_percent:
                best = difficulty
        return best

    def best_topic(self) -> Optional[str]:
        """Highest accuracy among topics with data; ties keep alphabetical order"""
        best = None
        for topic, stats in self.per_topic.items():
            if not stats.has_data:
                continue
            if best is None or stats.accuracy_percent > self.per_topic[best].accuracy_percent:
                best = topic
        return best

    def favorite_topics(self) -> List[str]:
        return [topic for topic, stats in self.per_topic.items() if stats.is_favorite]

    def favorite_difficulties(self) -> List[Difficulty]:
        return [d for d, stats in self.per_difficulty.items() if stats.has_data and stats.is_good_performance]

    def is_fresh(self, now: datetime, max_age: timedelta) -> bool:
        return now - self.last_recomputed_at <= max_age

    def check_invariants(self) -> None:
        if self.user_id is None:
            raise InvalidInput("user_id must not be null")
        if self.total_questions < 0:
            raise InvalidInput("total_questions must not be negative")
        if self.correct_answers < 0:
            raise InvalidInput("correct_answers must not be negative")
        if self.correct_answers > self.total_questions:
            raise InvalidInput("correct_answers must not exceed total_questions")
        if not 0.0 <= self.accuracy_percent <= 100.0:
            raise InvalidInput("accuracy_percent must be between 0 and 100")
        if self.average_duration_ms < 0:
            raise InvalidInput("average_duration must not be negative")
        if self.last_recomputed_at is None:
            raise InvalidInput("last_recomputed_at must not be null")
        if abs(self.accuracy_percent - self.calculated_accuracy()) > ACCURACY_TOLERANCE:
            raise InvalidInput("accuracy_percent is inconsistent with the answer counts")

# ============================================================================
# Read models
# ============================================================================
class ProgressSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    total_questions: int
    correct_answers: int
    accuracy_percent: float
    average_duration: str
    level: UserLevel
    best_difficulty: Optional[Difficulty] = None
    best_topic: Optional[str] = None
    good_performance: bool

class ComparativeStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    global_average_accuracy: float
    global_average_duration_ms: int
    rank: int
    total_users: int
    exceeds_average: bool

    @classmethod
    def degenerate(cls) -> "ComparativeStats":
        """Nobody has statistics yet"""
        return cls(
            global_average_accuracy=0.0,
            global_average_duration_ms=0,
            rank=1,
            total_users=1,
            exceeds_average=False,
        )

class GlobalRanking(BaseModel):
    model_config = ConfigDict(frozen=True)

    by_accuracy: List[UserStatistics]
    by_volume: List[UserStatistics]
    by_duration: List[UserStatistics]
