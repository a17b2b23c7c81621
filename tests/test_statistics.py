# ============================================================================
# Statistics Aggregation Tests
# ============================================================================
import asyncio
import logging
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from quizstats.core.exceptions import InvalidInput, NotFound, UpstreamFailure
from quizstats.core.locks import recompute_locks
from quizstats.schemas.question import NO_TOPIC, Difficulty, normalize_topic
from quizstats.schemas.session import AnswerSession
from quizstats.schemas.statistics import (
    DifficultyStats,
    TopicStats,
    UserLevel,
    UserStatistics,
    format_duration,
)
from quizstats.services.statistics.aggregator import FreshnessPolicy, GroupingFallback

NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

class TestUserStatisticsValue:
    """Tests for the aggregate value and its helpers"""

    @pytest.mark.parametrize("millis,text", [
        (0, "0s"),
        (42_000, "42s"),
        (42_999, "42s"),
        (65_000, "1m 5s"),
        (600_000, "10m 0s"),
    ])
    def test_format_duration(self, millis, text):
        assert format_duration(millis) == text

    @pytest.mark.parametrize("total,level", [
        (0, UserLevel.BEGINNER),
        (9, UserLevel.BEGINNER),
        (10, UserLevel.INTERMEDIATE),
        (49, UserLevel.INTERMEDIATE),
        (50, UserLevel.ADVANCED),
    ])
    def test_level(self, total, level):
        stats = UserStatistics(
            user_id=1, total_questions=total, correct_answers=0, last_recomputed_at=NOW
        )
        assert stats.level == level

    def test_empty(self):
        stats = UserStatistics.empty(5, NOW)

        assert stats.total_questions == 0
        assert stats.accuracy_percent == 0.0
        assert not stats.has_activity
        assert stats.best_difficulty() is None
        assert stats.best_topic() is None
        assert stats.format_average_duration() == "0s"
        stats.check_invariants()

    def test_best_groups_break_ties_by_order(self):
        stats = UserStatistics(
            user_id=1,
            total_questions=4,
            correct_answers=4,
            accuracy_percent=100.0,
            per_difficulty={
                Difficulty.HARD: DifficultyStats.from_counts(Difficulty.HARD, 2, 2, 0),
                Difficulty.MEDIUM: DifficultyStats.from_counts(Difficulty.MEDIUM, 2, 2, 0),
            },
            per_topic={
                "geometry": TopicStats.from_counts("geometry", 2, 2, 0),
                "algebra": TopicStats.from_counts("algebra", 2, 2, 0),
            },
            last_recomputed_at=NOW,
        )

        assert list(stats.per_difficulty) == [Difficulty.MEDIUM, Difficulty.HARD]
        assert list(stats.per_topic) == ["algebra", "geometry"]
        assert stats.best_difficulty() == Difficulty.MEDIUM
        assert stats.best_topic() == "algebra"

    def test_invariants_reject_inconsistent_accuracy(self):
        stats = UserStatistics(
            user_id=1, total_questions=3, correct_answers=2, accuracy_percent=50.0,
            last_recomputed_at=NOW,
        )
        with pytest.raises(InvalidInput):
            stats.check_invariants()

    def test_invariants_reject_more_correct_than_total(self):
        stats = UserStatistics(
            user_id=1, total_questions=1, correct_answers=2, accuracy_percent=100.0,
            last_recomputed_at=NOW,
        )
        with pytest.raises(InvalidInput):
            stats.check_invariants()

    def test_favorite_topic_needs_five_answers(self):
        few = TopicStats.from_counts("algebra", 4, 4, 0)
        enough = TopicStats.from_counts("algebra", 5, 4, 0)
        weak = TopicStats.from_counts("algebra", 10, 6, 0)

        assert not few.is_favorite
        assert enough.is_favorite
        assert not weak.is_favorite
        assert weak.incorrect == 4

    def test_topic_normalization(self):
        assert normalize_topic("  Álgebra ") == "algebra"
        assert normalize_topic("Programación") == "programacion"
        assert normalize_topic("   ") == NO_TOPIC
        assert normalize_topic(None) == NO_TOPIC

    def test_difficulty_parse(self):
        assert Difficulty.parse("HARD") == Difficulty.HARD
        assert Difficulty.parse(" medium ") == Difficulty.MEDIUM
        with pytest.raises(InvalidInput):
            Difficulty.parse("impossible")

class TestRecompute:
    """Tests for rebuilding a user's statistics"""

    @pytest.mark.asyncio
    async def test_empty_user(self, service, stats_repo, clock):
        stats = await service.recompute_statistics(1)

        assert stats.total_questions == 0
        assert stats.correct_answers == 0
        assert stats.accuracy_percent == 0.0
        assert stats.average_duration_ms == 0
        assert stats.per_difficulty == {}
        assert stats.per_topic == {}
        assert stats.last_recomputed_at == clock.now()
        assert await stats_repo.find_by_user(1) == stats

    @pytest.mark.asyncio
    async def test_single_valid_session(self, service, answer):
        await answer(1, 10, "B", 30)

        stats = await service.get_statistics(1)

        assert stats.total_questions == 1
        assert stats.correct_answers == 1
        assert stats.accuracy_percent == 100.0
        assert stats.average_duration_ms == 30_000
        assert stats.per_difficulty[Difficulty.EASY].total == 1
        assert stats.per_topic["algebra"].correct == 1
        assert stats.format_average_duration() == "30s"

    @pytest.mark.asyncio
    async def test_invalid_durations_count_for_totals_only(self, service, answer):
        await answer(1, 10, "B", 3)
        await answer(1, 11, "A", 30)
        await answer(1, 12, "X", 700)

        stats = await service.get_statistics(1)

        assert stats.total_questions == 3
        assert stats.correct_answers == 2
        assert stats.average_duration_ms == 30_000
        assert stats.per_difficulty[Difficulty.EASY].average_duration_ms == 0
        assert stats.per_difficulty[Difficulty.HARD].average_duration_ms == 0

    @pytest.mark.asyncio
    async def test_inclusive_validity_bounds(self, service, answer):
        await answer(1, 10, "B", 5)
        await answer(1, 11, "A", 600)

        stats = await service.get_statistics(1)
        assert stats.average_duration_ms == (5_000 + 600_000) // 2

    @pytest.mark.asyncio
    async def test_just_outside_validity_bounds(self, service, answer):
        await answer(1, 10, "B", 4.999)
        await answer(1, 11, "A", 600.001)

        stats = await service.get_statistics(1)
        assert stats.total_questions == 2
        assert stats.average_duration_ms == 0

    @pytest.mark.asyncio
    async def test_accuracy_consistency(self, service, answer):
        await answer(1, 10, "B", 10)
        await answer(1, 11, "A", 10)
        await answer(1, 12, "wrong", 10)

        stats = await service.get_statistics(1)

        assert stats.accuracy_percent == pytest.approx(200 / 3)
        assert abs(stats.accuracy_percent - stats.correct_answers / stats.total_questions * 100) <= 0.01
        stats.check_invariants()

    @pytest.mark.asyncio
    async def test_grouping_by_difficulty_and_topic(self, service, answer):
        await answer(1, 12, "C", 10)
        await answer(1, 11, "A", 20)
        await answer(1, 10, "x", 30)
        await answer(1, 13, "D", 40)

        stats = await service.get_statistics(1)

        assert list(stats.per_difficulty) == [Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD]
        assert stats.per_difficulty[Difficulty.HARD].total == 2
        assert stats.per_difficulty[Difficulty.HARD].average_duration_ms == 25_000
        # "Álgebra" and "algebra " share one bucket
        assert list(stats.per_topic) == ["algebra", "geometry", NO_TOPIC]
        assert stats.per_topic["algebra"].total == 2
        assert stats.per_topic["algebra"].correct == 1
        assert stats.per_topic["algebra"].accuracy_percent == 50.0

    @pytest.mark.asyncio
    async def test_recompute_is_idempotent(self, service, answer, clock):
        await answer(1, 10, "B", 10)
        await answer(1, 11, "C", 90)

        first = await service.recompute_statistics(1)
        clock.advance(minutes=5)
        second = await service.recompute_statistics(1)

        exclude = {"last_recomputed_at"}
        assert first.model_dump(exclude=exclude) == second.model_dump(exclude=exclude)
        assert second.last_recomputed_at > first.last_recomputed_at

    @pytest.mark.asyncio
    async def test_unresolved_question_uses_fallback(self, service, session_repo, clock):
        orphan = AnswerSession.start(1, 999, clock.now()).complete(
            "A", False, clock.now() + timedelta(seconds=10)
        )
        await session_repo.save(orphan)

        stats = await service.recompute_statistics(1)

        assert stats.total_questions == 1
        assert stats.per_difficulty[GroupingFallback.difficulty].total == 1
        assert stats.per_topic[NO_TOPIC].total == 1

    @pytest.mark.asyncio
    async def test_lookup_error_surfaces(self, service, question_lookup, answer):
        await answer(1, 10, "B", 10)
        question_lookup.resolve = AsyncMock(side_effect=RuntimeError("lookup offline"))

        with pytest.raises(UpstreamFailure) as exc_info:
            await service.recompute_statistics(1)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_unknown_user(self, service):
        with pytest.raises(NotFound):
            await service.recompute_statistics(99)

    @pytest.mark.asyncio
    async def test_missing_user_id(self, service):
        with pytest.raises(InvalidInput):
            await service.recompute_statistics(None)

    @pytest.mark.asyncio
    async def test_concurrent_recomputes_are_serialized(self, service, answer):
        await answer(1, 10, "B", 10)

        results = await asyncio.gather(
            service.recompute_statistics(1),
            service.recompute_statistics(1),
        )

        assert all(r.total_questions == 1 for r in results)
        assert not recompute_locks.is_held(1)
        assert len(recompute_locks) == 0

class TestFreshness:
    """Tests for the freshness-checked read path"""

    @pytest.mark.asyncio
    async def test_fresh_statistics_are_served_from_store(self, service, session_repo, clock):
        before = await service.get_statistics(1)
        await session_repo.save(
            AnswerSession.start(1, 10, clock.now()).complete("B", True, clock.now())
        )
        clock.advance(minutes=59)

        assert await service.get_statistics(1) == before

    @pytest.mark.asyncio
    async def test_stale_statistics_are_recomputed(self, service, session_repo, clock):
        await service.get_statistics(1)
        await session_repo.save(
            AnswerSession.start(1, 10, clock.now()).complete("B", True, clock.now() + timedelta(seconds=8))
        )
        clock.advance(minutes=61)

        stats = await service.get_statistics(1)

        assert stats.total_questions == 1
        assert stats.last_recomputed_at == clock.now()

    def test_freshness_policy_boundary(self):
        policy = FreshnessPolicy(max_age=timedelta(hours=1))
        stats = UserStatistics.empty(1, NOW)

        assert policy.is_fresh(stats, NOW + timedelta(hours=1))
        assert not policy.is_fresh(stats, NOW + timedelta(hours=1, seconds=1))

    @pytest.mark.asyncio
    async def test_refresh_stale(self, service, stats_repo, clock):
        await service.recompute_statistics(1)
        await service.recompute_statistics(2)
        clock.advance(minutes=30)
        await service.recompute_statistics(3)
        clock.advance(minutes=45)

        refreshed = await service.refresh_stale()

        assert refreshed == 2
        assert (await stats_repo.find_by_user(1)).last_recomputed_at == clock.now()
        assert (await stats_repo.find_by_user(3)).last_recomputed_at < clock.now()

    @pytest.mark.asyncio
    async def test_refresh_stale_continues_past_failing_user(
        self, service, stats_repo, question_lookup, answer, clock, caplog
    ):
        await answer(1, 10, "B", 10)
        await answer(2, 11, "A", 10)
        clock.advance(hours=2)

        resolve = question_lookup.resolve

        async def resolve_except_question_10(question_id):
            if question_id == 10:
                raise RuntimeError("lookup offline")
            return await resolve(question_id)

        question_lookup.resolve = AsyncMock(side_effect=resolve_except_question_10)

        with caplog.at_level(logging.ERROR):
            refreshed = await service.refresh_stale()

        assert refreshed == 1
        assert (await stats_repo.find_by_user(2)).last_recomputed_at == clock.now()
        assert (await stats_repo.find_by_user(1)).last_recomputed_at < clock.now()
        assert "user 1" in caplog.text

    @pytest.mark.asyncio
    async def test_refresh_stale_respects_limit(self, service, clock):
        for user_id in (1, 2, 3):
            await service.recompute_statistics(user_id)
        clock.advance(hours=2)

        assert await service.refresh_stale(limit=2) == 2
        assert await service.refresh_stale(limit=2) == 1

class TestBreakdowns:
    """Tests for per-difficulty and per-topic reads"""

    @pytest.mark.asyncio
    async def test_breakdowns(self, service, answer):
        await answer(1, 11, "A", 10)
        await answer(1, 10, "B", 10)

        difficulties = await service.difficulty_breakdown(1)
        topics = await service.topic_breakdown(1)

        assert [d.difficulty for d in difficulties] == [Difficulty.EASY, Difficulty.MEDIUM]
        assert [t.topic for t in topics] == ["algebra", "geometry"]

    @pytest.mark.asyncio
    async def test_absent_groups_are_empty(self, service, answer):
        await answer(1, 10, "B", 10)

        hard = await service.difficulty_stats(1, "hard")
        history = await service.topic_stats(1, "History")
        algebra = await service.topic_stats(1, "ÁLGEBRA")

        assert hard == DifficultyStats.empty(Difficulty.HARD)
        assert not history.has_data
        assert algebra.total == 1

    @pytest.mark.asyncio
    async def test_group_lookups_validate_input(self, service):
        with pytest.raises(InvalidInput):
            await service.difficulty_stats(1, None)
        with pytest.raises(InvalidInput):
            await service.topic_stats(1, "  ")

    @pytest.mark.asyncio
    async def test_topic_ranking(self, service, answer):
        await answer(1, 11, "A", 10)
        await answer(1, 10, "B", 10)
        await answer(1, 12, "wrong", 10)
        await answer(1, 13, "D", 10)

        ranking = await service.topic_ranking(1)

        assert [t.topic for t in ranking] == ["geometry", NO_TOPIC, "algebra"]

    @pytest.mark.asyncio
    async def test_has_statistics(self, service):
        assert not await service.has_statistics(1)
        await service.get_statistics(1)
        assert await service.has_statistics(1)
