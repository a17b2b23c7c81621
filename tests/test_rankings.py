# ============================================================================
# Ranking Tests
# ============================================================================
import pytest

from quizstats.core.exceptions import InvalidInput
from quizstats.schemas.question import Difficulty
from quizstats.schemas.statistics import (
    ComparativeStats,
    RankingKind,
    UserLevel,
    UserStatistics,
    accuracy_percent,
)

def make_stats(user_id, total, correct, average_ms, now):
    return UserStatistics(
        user_id=user_id,
        total_questions=total,
        correct_answers=correct,
        accuracy_percent=accuracy_percent(correct, total),
        average_duration_ms=average_ms,
        last_recomputed_at=now,
    )

@pytest.fixture
async def leaderboard(stats_repo, clock):
    """Three users at 90/90/80 % accuracy with 20/10/5 answers, plus one idle user"""
    now = clock.now()
    for stats in (
        make_stats(3, 5, 4, 20_000, now),
        make_stats(2, 10, 9, 8_000, now),
        make_stats(1, 20, 18, 0, now),
        make_stats(4, 0, 0, 0, now),
    ):
        await stats_repo.save(stats)
    return stats_repo

def ids(rows):
    return [s.user_id for s in rows]

class TestRankingOrder:
    """Tests for leaderboard ordering"""

    @pytest.mark.asyncio
    async def test_by_accuracy(self, service, leaderboard):
        ranking = await service.rankings(RankingKind.ACCURACY, 10)
        assert ids(ranking) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_by_volume(self, service, leaderboard):
        ranking = await service.rankings("volume", 10)
        assert ids(ranking) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_by_duration_skips_untimed_users(self, service, leaderboard):
        ranking = await service.rankings(RankingKind.DURATION, 10)
        assert ids(ranking) == [2, 3]

    @pytest.mark.asyncio
    async def test_full_ties_fall_back_to_user_id(self, service, stats_repo, clock):
        for user_id in (3, 1, 2):
            await stats_repo.save(make_stats(user_id, 4, 2, 10_000, clock.now()))

        for kind in RankingKind:
            assert ids(await service.rankings(kind, 10)) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_limit(self, service, leaderboard):
        assert ids(await service.rankings(RankingKind.ACCURACY, 2)) == [1, 2]

    @pytest.mark.asyncio
    async def test_limit_defaults_and_cap(self, service, leaderboard, settings):
        assert len(await service.rankings(RankingKind.ACCURACY)) == 3
        assert service._limit(None) == settings.DEFAULT_RANKING_LIMIT
        assert service._limit(10_000) == settings.MAX_RANKING_LIMIT

    @pytest.mark.parametrize("limit", [0, -1])
    @pytest.mark.asyncio
    async def test_non_positive_limit_rejected(self, service, limit):
        with pytest.raises(InvalidInput):
            await service.rankings(RankingKind.ACCURACY, limit)

    @pytest.mark.asyncio
    async def test_unknown_kind_rejected(self, service):
        with pytest.raises(InvalidInput) as exc_info:
            await service.rankings("speedrun", 5)

        # The enum lookup error is not chained onto the reported error
        assert exc_info.value.__cause__ is None
        assert exc_info.value.__suppress_context__

    @pytest.mark.asyncio
    async def test_global_rankings(self, service, leaderboard):
        ranking = await service.global_rankings(2)

        assert ids(ranking.by_accuracy) == [1, 2]
        assert ids(ranking.by_volume) == [1, 2]
        assert ids(ranking.by_duration) == [2, 3]

class TestComparative:
    """Tests for a user's standing against everyone else"""

    @pytest.mark.asyncio
    async def test_no_active_users_is_degenerate(self, service):
        result = await service.comparative(1)

        assert result == ComparativeStats.degenerate()
        assert result.rank == 1
        assert result.total_users == 1
        assert result.global_average_accuracy == 0.0
        assert not result.exceeds_average

    @pytest.mark.asyncio
    async def test_standing(self, service, answer):
        await answer(1, 10, "B", 10)
        await answer(1, 11, "A", 20)
        await answer(2, 10, "B", 30)
        await answer(2, 11, "wrong", 40)

        result = await service.comparative(2)

        assert result.total_users == 2
        assert result.rank == 2
        assert result.global_average_accuracy == pytest.approx(75.0)
        assert result.global_average_duration_ms == (15_000 + 35_000) // 2
        assert not result.exceeds_average
        assert (await service.comparative(1)).exceeds_average

    @pytest.mark.asyncio
    async def test_idle_user_ranks_after_everyone(self, service, answer):
        await answer(1, 10, "B", 10)

        result = await service.comparative(3)

        assert result.total_users == 1
        assert result.rank == 2

class TestSummary:
    """Tests for the progress summary"""

    @pytest.mark.asyncio
    async def test_summary(self, service, answer):
        await answer(1, 10, "B", 65)
        await answer(1, 11, "wrong", 65)
        await answer(1, 12, "C", 65)

        summary = await service.summary(1)

        assert summary.total_questions == 3
        assert summary.correct_answers == 2
        assert summary.average_duration == "1m 5s"
        assert summary.level == UserLevel.BEGINNER
        assert summary.best_difficulty == Difficulty.EASY
        assert summary.best_topic == "algebra"
        assert not summary.good_performance

    @pytest.mark.asyncio
    async def test_summary_for_new_user(self, service):
        summary = await service.summary(4)

        assert summary.total_questions == 0
        assert summary.average_duration == "0s"
        assert summary.best_difficulty is None
        assert summary.best_topic is None
