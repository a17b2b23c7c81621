# ============================================================================
# Ranking Service
# ============================================================================
from typing import List

from quizstats.core.exceptions import InvalidInput, require, require_positive, upstream
from quizstats.repositories.base import StatisticsRepository
from quizstats.schemas.statistics import (
    ComparativeStats,
    GlobalRanking,
    ProgressSummary,
    RankingKind,
    UserStatistics,
)
from quizstats.services.statistics.aggregator import StatisticsAggregator

class RankingEngine:
    """Leaderboards and per-user standing built from stored aggregates"""

    def __init__(self, statistics: StatisticsRepository, aggregator: StatisticsAggregator):
        self.statistics = statistics
        self.aggregator = aggregator

    async def rank(self, kind: RankingKind, limit: int) -> List[UserStatistics]:
        if kind is None:
            raise InvalidInput("ranking kind must not be null")
        try:
            kind = RankingKind(kind)
        except ValueError:
            raise InvalidInput(f"Invalid ranking kind: {kind}") from None

        if kind == RankingKind.ACCURACY:
            return await self.rank_by_accuracy(limit)
        elif kind == RankingKind.VOLUME:
            return await self.rank_by_volume(limit)
        return await self.rank_by_duration(limit)

    async def rank_by_accuracy(self, limit: int) -> List[UserStatistics]:
        """Accuracy desc, then volume desc, then user id"""
        require_positive(limit)
        with upstream("rank by accuracy"):
            return await self.statistics.top_by_accuracy(limit)

    async def rank_by_volume(self, limit: int) -> List[UserStatistics]:
        """Volume desc, then accuracy desc, then user id"""
        require_positive(limit)
        with upstream("rank by volume"):
            return await self.statistics.top_by_volume(limit)

    async def rank_by_duration(self, limit: int) -> List[UserStatistics]:
        """Fastest average first; users with no valid timed session are left out"""
        require_positive(limit)
        with upstream("rank by duration"):
            return await self.statistics.top_by_duration(limit)

    async def global_rankings(self, limit: int) -> GlobalRanking:
        require_positive(limit)
        return GlobalRanking(
            by_accuracy=await self.rank_by_accuracy(limit),
            by_volume=await self.rank_by_volume(limit),
            by_duration=await self.rank_by_duration(limit),
        )

    async def comparative(self, user_id: int) -> ComparativeStats:
        """Where a user stands against everyone with at least one answer"""
        require(user_id, "user_id")

        stats = await self.aggregator.get(user_id)
        with upstream("load active statistics"):
            active = await self.statistics.find_all_with_activity()

        if not active:
            return ComparativeStats.degenerate()

        global_accuracy = sum(s.accuracy_percent for s in active) / len(active)
        global_duration = sum(s.average_duration_ms for s in active) // len(active)

        with upstream("rank by accuracy"):
            ordering = await self.statistics.top_by_accuracy(len(active))
        position = next(
            (i for i, s in enumerate(ordering, 1) if s.user_id == user_id),
            len(ordering) + 1,
        )

        return ComparativeStats(
            global_average_accuracy=global_accuracy,
            global_average_duration_ms=global_duration,
            rank=position,
            total_users=len(active),
            exceeds_average=stats.accuracy_percent > global_accuracy,
        )

    async def summary(self, user_id: int) -> ProgressSummary:
        stats = await self.aggregator.get(user_id)
        return ProgressSummary(
            user_id=stats.user_id,
            total_questions=stats.total_questions,
            correct_answers=stats.correct_answers,
            accuracy_percent=stats.accuracy_percent,
            average_duration=stats.format_average_duration(),
            level=stats.level,
            best_difficulty=stats.best_difficulty(),
            best_topic=stats.best_topic(),
            good_performance=stats.has_good_performance,
        )
