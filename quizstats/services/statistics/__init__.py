from quizstats.services.statistics.aggregator import (
    StatisticsAggregator,
    FreshnessPolicy,
    GroupingFallback,
    ValidityWindow,
)
from quizstats.services.statistics.rankings import RankingEngine

__all__ = [
    "StatisticsAggregator", "FreshnessPolicy", "GroupingFallback",
    "ValidityWindow", "RankingEngine",
]
