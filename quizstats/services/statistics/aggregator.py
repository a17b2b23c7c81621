# ============================================================================
# Statistics Aggregation Service
# ============================================================================
"""
Rebuilds a user's performance aggregate from their completed answer sessions
and serves the freshness-checked read path.

Recompute rules:
- every completed session counts towards totals and accuracy
- only sessions inside the validity window (5 s to 10 min, inclusive) count
  towards average durations
- sessions are grouped by the question's difficulty and normalized primary
  topic; questions that no longer resolve fall into the GroupingFallback
  buckets instead of being dropped
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncContextManager, Callable, Dict, List, Optional
import logging

from quizstats.config import Settings, get_settings
from quizstats.core.clock import Clock, SystemClock
from quizstats.core.exceptions import (
    InvalidInput,
    NotFound,
    QuizStatsException,
    require,
    require_positive,
    upstream,
)
from quizstats.core.locks import KeyedLockRegistry, recompute_locks
from quizstats.repositories.base import (
    QuestionLookup,
    SessionRepository,
    StatisticsRepository,
    UserDirectory,
)
from quizstats.schemas.question import NO_TOPIC, Difficulty, QuestionInfo, normalize_topic
from quizstats.schemas.session import AnswerSession
from quizstats.schemas.statistics import (
    DifficultyStats,
    TopicStats,
    UserStatistics,
    accuracy_percent,
)

logger = logging.getLogger(__name__)

# Factory for the scope a recompute runs in, e.g. ``db.begin_nested``
Isolation = Callable[[], AsyncContextManager]

@asynccontextmanager
async def no_isolation():
    yield


# ============================================================================
# Policies
# ============================================================================
@dataclass(frozen=True)
class ValidityWindow:
    """Inclusive duration bounds for a session to count towards averages"""
    min_ms: int = 5_000
    max_ms: int = 600_000

    @classmethod
    def from_settings(cls, settings: Settings) -> "ValidityWindow":
        return cls(
            min_ms=settings.VALID_ANSWER_MIN_SECONDS * 1000,
            max_ms=settings.VALID_ANSWER_MAX_SECONDS * 1000,
        )

    def contains(self, session: AnswerSession) -> bool:
        return session.is_valid_within(self.min_ms, self.max_ms)


@dataclass(frozen=True)
class FreshnessPolicy:
    max_age: timedelta = timedelta(hours=1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "FreshnessPolicy":
        return cls(max_age=timedelta(minutes=settings.STATISTICS_MAX_AGE_MINUTES))

    def is_fresh(self, stats: UserStatistics, now: datetime) -> bool:
        return stats.is_fresh(now, self.max_age)

    def stale_before(self, now: datetime) -> datetime:
        return now - self.max_age


@dataclass(frozen=True)
class GroupingFallback:
    """Buckets used when a session's question cannot be resolved"""
    difficulty: Difficulty = Difficulty.EASY
    topic: str = NO_TOPIC

    def difficulty_for(self, question: Optional[QuestionInfo]) -> Difficulty:
        if question is None or question.difficulty is None:
            return self.difficulty
        return question.difficulty

    def topic_for(self, question: Optional[QuestionInfo]) -> str:
        if question is None or not question.primary_topic:
            return self.topic
        return normalize_topic(question.primary_topic)


# ============================================================================
# Accumulation
# ============================================================================
class _Tally:
    """Running counts for one group while a recompute is in flight"""

    def __init__(self):
        self.total = 0
        self.correct = 0
        self.valid_durations: List[int] = []

    def add(self, session: AnswerSession, valid: bool) -> None:
        self.total += 1
        if session.is_correct:
            self.correct += 1
        if valid:
            self.valid_durations.append(session.duration_ms)

    @property
    def average_duration_ms(self) -> int:
        if not self.valid_durations:
            return 0
        return sum(self.valid_durations) // len(self.valid_durations)


# ============================================================================
# Aggregator
# ============================================================================
class StatisticsAggregator:
    """Recomputes and serves per-user statistics"""

    def __init__(
        self,
        sessions: SessionRepository,
        statistics: StatisticsRepository,
        questions: QuestionLookup,
        users: UserDirectory,
        clock: Clock = None,
        settings: Settings = None,
        fallback: GroupingFallback = None,
        locks: KeyedLockRegistry = None,
        isolation: Isolation = None,
    ):
        settings = settings or get_settings()
        self.sessions = sessions
        self.statistics = statistics
        self.questions = questions
        self.users = users
        self.clock = clock or SystemClock()
        self.validity = ValidityWindow.from_settings(settings)
        self.freshness = FreshnessPolicy.from_settings(settings)
        self.fallback = fallback or GroupingFallback()
        self.locks = locks or recompute_locks
        self.isolation = isolation or no_isolation

    # ==================== Recompute ====================

    async def recompute(self, user_id: int) -> UserStatistics:
        """Rebuild and persist the aggregate for one user"""
        require(user_id, "user_id")

        async with self.locks.hold(user_id):
            with upstream("recompute statistics"):
                if not await self.users.exists(user_id):
                    raise NotFound("User", user_id)

                completed = await self.sessions.find_completed(user_id)
                now = self.clock.now()

                if not completed:
                    stats = UserStatistics.empty(user_id, now)
                else:
                    stats = await self._build(user_id, completed, now)

                stats.check_invariants()
                await self.statistics.save(stats)

        logger.info(
            f"Statistics recomputed for user {user_id}: "
            f"{stats.total_questions} answered, {stats.accuracy_percent:.1f}% accuracy"
        )
        return stats

    async def _build(self, user_id: int, completed: List[AnswerSession], now: datetime) -> UserStatistics:
        # One lookup per distinct question
        questions: Dict[int, Optional[QuestionInfo]] = {}
        for question_id in sorted({s.question_id for s in completed}):
            questions[question_id] = await self.questions.resolve(question_id)

        overall = _Tally()
        by_difficulty: Dict[Difficulty, _Tally] = {}
        by_topic: Dict[str, _Tally] = {}

        for session in completed:
            valid = self.validity.contains(session)
            question = questions.get(session.question_id)
            if question is None:
                logger.debug(f"Question {session.question_id} not found, using fallback groups")

            overall.add(session, valid)
            by_difficulty.setdefault(self.fallback.difficulty_for(question), _Tally()).add(session, valid)
            by_topic.setdefault(self.fallback.topic_for(question), _Tally()).add(session, valid)

        return UserStatistics(
            user_id=user_id,
            total_questions=overall.total,
            correct_answers=overall.correct,
            accuracy_percent=accuracy_percent(overall.correct, overall.total),
            average_duration_ms=overall.average_duration_ms,
            per_difficulty={
                difficulty: DifficultyStats.from_counts(
                    difficulty, tally.total, tally.correct, tally.average_duration_ms
                )
                for difficulty, tally in by_difficulty.items()
            },
            per_topic={
                topic: TopicStats.from_counts(
                    topic, tally.total, tally.correct, tally.average_duration_ms
                )
                for topic, tally in by_topic.items()
            },
            last_recomputed_at=now,
        )

    # ==================== Reads ====================

    async def get(self, user_id: int) -> UserStatistics:
        """Stored aggregate when fresh, otherwise a synchronous recompute"""
        require(user_id, "user_id")

        with upstream("load statistics"):
            stored = await self.statistics.find_by_user(user_id)

        if stored is not None and self.freshness.is_fresh(stored, self.clock.now()):
            return stored
        return await self.recompute(user_id)

    async def has_statistics(self, user_id: int) -> bool:
        require(user_id, "user_id")
        with upstream("load statistics"):
            return await self.statistics.find_by_user(user_id) is not None

    async def difficulty_breakdown(self, user_id: int) -> List[DifficultyStats]:
        stats = await self.get(user_id)
        return list(stats.per_difficulty.values())

    async def topic_breakdown(self, user_id: int) -> List[TopicStats]:
        stats = await self.get(user_id)
        return list(stats.per_topic.values())

    async def difficulty_stats(self, user_id: int, difficulty) -> DifficultyStats:
        difficulty = Difficulty.parse(difficulty)
        stats = await self.get(user_id)
        return stats.per_difficulty.get(difficulty) or DifficultyStats.empty(difficulty)

    async def topic_stats(self, user_id: int, topic: str) -> TopicStats:
        if topic is None or not topic.strip():
            raise InvalidInput("topic must not be empty")
        key = normalize_topic(topic)
        stats = await self.get(user_id)
        return stats.per_topic.get(key) or TopicStats.empty(key)

    async def topic_ranking(self, user_id: int) -> List[TopicStats]:
        """Topics with data, best accuracy first"""
        topics = [t for t in await self.topic_breakdown(user_id) if t.has_data]
        return sorted(topics, key=lambda t: (-t.accuracy_percent, -t.total, t.topic))

    # ==================== Maintenance ====================

    async def refresh_stale(self, limit: Optional[int] = None) -> int:
        """Recompute every stored aggregate older than the freshness window"""
        if limit is not None:
            require_positive(limit)

        cutoff = self.freshness.stale_before(self.clock.now())
        with upstream("find stale statistics"):
            stale = await self.statistics.find_stale(cutoff, limit)

        refreshed = 0
        failed = 0
        for stats in stale:
            try:
                # A failed user only rolls back its own scope
                async with self.isolation():
                    await self.recompute(stats.user_id)
                refreshed += 1
            except NotFound:
                logger.warning(f"Skipping stale statistics for missing user {stats.user_id}")
            except QuizStatsException as e:
                failed += 1
                logger.error(f"Stale statistics refresh failed for user {stats.user_id}: {e.detail}")

        logger.info(
            f"Refreshed {refreshed} stale statistics, {failed} failed "
            f"(cutoff {cutoff.isoformat()})"
        )
        return refreshed
