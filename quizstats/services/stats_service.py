# ============================================================================
# Answer Statistics Service
# ============================================================================
"""
Single entry point for the HTTP layer and the Celery tasks.

Wires the session tracker, the statistics aggregator and the ranking engine
over one set of repositories and delegates every upward operation to them.
"""
from typing import List, Optional

from quizstats.config import Settings, get_settings
from quizstats.core.clock import Clock, SystemClock
from quizstats.repositories.base import (
    QuestionLookup,
    SessionRepository,
    StatisticsRepository,
    UserDirectory,
)
from quizstats.schemas.question import Difficulty
from quizstats.schemas.session import AnswerResult, AnswerSession
from quizstats.schemas.statistics import (
    ComparativeStats,
    DifficultyStats,
    GlobalRanking,
    ProgressSummary,
    RankingKind,
    TopicStats,
    UserStatistics,
)
from quizstats.services.sessions.tracker import Isolation, SessionTracker
from quizstats.services.statistics.aggregator import StatisticsAggregator
from quizstats.services.statistics.rankings import RankingEngine

class AnswerStatsService:

    def __init__(
        self,
        sessions: SessionRepository,
        statistics: StatisticsRepository,
        questions: QuestionLookup,
        users: UserDirectory,
        clock: Clock = None,
        settings: Settings = None,
        isolation: Isolation = None,
    ):
        self.settings = settings or get_settings()
        clock = clock or SystemClock()

        self.aggregator = StatisticsAggregator(
            sessions, statistics, questions, users,
            clock=clock, settings=self.settings, isolation=isolation,
        )
        self.tracker = SessionTracker(
            sessions, self.aggregator, questions, users,
            clock=clock, settings=self.settings, isolation=isolation,
        )
        self.ranking_engine = RankingEngine(statistics, self.aggregator)

    # ==================== Sessions ====================

    async def start_session(self, user_id: int, question_id: int) -> AnswerSession:
        return await self.tracker.start(user_id, question_id)

    async def complete_session(self, session_id: int, selected_answer: str) -> AnswerSession:
        return await self.tracker.complete(session_id, selected_answer)

    async def answer_question(self, user_id: int, question_id: int, answer: str) -> AnswerResult:
        return await self.tracker.answer_question(user_id, question_id, answer)

    async def sweep_abandoned(self) -> int:
        return await self.tracker.sweep_abandoned()

    async def find_in_progress(self, user_id: int, question_id: int) -> Optional[AnswerSession]:
        return await self.tracker.find_in_progress(user_id, question_id)

    async def sessions_for_user(self, user_id: int) -> List[AnswerSession]:
        return await self.tracker.sessions_for_user(user_id)

    async def completed_sessions(self, user_id: int) -> List[AnswerSession]:
        return await self.tracker.completed_sessions(user_id)

    async def recent_sessions(self, user_id: int, limit: int = 10) -> List[AnswerSession]:
        return await self.tracker.recent_sessions(user_id, limit)

    async def has_in_progress(self, user_id: int) -> bool:
        return await self.tracker.has_in_progress(user_id)

    # ==================== Statistics ====================

    async def get_statistics(self, user_id: int) -> UserStatistics:
        return await self.aggregator.get(user_id)

    async def recompute_statistics(self, user_id: int) -> UserStatistics:
        return await self.aggregator.recompute(user_id)

    async def has_statistics(self, user_id: int) -> bool:
        return await self.aggregator.has_statistics(user_id)

    async def difficulty_breakdown(self, user_id: int) -> List[DifficultyStats]:
        return await self.aggregator.difficulty_breakdown(user_id)

    async def topic_breakdown(self, user_id: int) -> List[TopicStats]:
        return await self.aggregator.topic_breakdown(user_id)

    async def difficulty_stats(self, user_id: int, difficulty: Difficulty) -> DifficultyStats:
        return await self.aggregator.difficulty_stats(user_id, difficulty)

    async def topic_stats(self, user_id: int, topic: str) -> TopicStats:
        return await self.aggregator.topic_stats(user_id, topic)

    async def topic_ranking(self, user_id: int) -> List[TopicStats]:
        return await self.aggregator.topic_ranking(user_id)

    async def refresh_stale(self, limit: Optional[int] = None) -> int:
        return await self.aggregator.refresh_stale(limit)

    # ==================== Rankings ====================

    async def rankings(self, kind: RankingKind, limit: Optional[int] = None) -> List[UserStatistics]:
        return await self.ranking_engine.rank(kind, self._limit(limit))

    async def global_rankings(self, limit: Optional[int] = None) -> GlobalRanking:
        return await self.ranking_engine.global_rankings(self._limit(limit))

    async def comparative(self, user_id: int) -> ComparativeStats:
        return await self.ranking_engine.comparative(user_id)

    async def summary(self, user_id: int) -> ProgressSummary:
        return await self.ranking_engine.summary(user_id)

    def _limit(self, limit: Optional[int]) -> int:
        """Default when omitted, capped at MAX_RANKING_LIMIT; non-positive values pass through to be rejected"""
        if limit is None:
            return self.settings.DEFAULT_RANKING_LIMIT
        return min(limit, self.settings.MAX_RANKING_LIMIT)
