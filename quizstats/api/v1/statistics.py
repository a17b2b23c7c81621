# ============================================================================
# Answer Session & Statistics Endpoints
# ============================================================================
from fastapi import APIRouter, Depends
from typing import Optional, List

from quizstats.api.deps import get_stats_service
from quizstats.schemas.requests import (
    AnswerQuestionRequest,
    CompleteSessionRequest,
    StartSessionRequest,
)
from quizstats.schemas.session import AnswerResult, AnswerSession
from quizstats.schemas.statistics import (
    ComparativeStats,
    DifficultyStats,
    GlobalRanking,
    ProgressSummary,
    TopicStats,
    UserStatistics,
)
from quizstats.services.stats_service import AnswerStatsService

router = APIRouter(prefix="/statistics", tags=["statistics"])

# ============================================================================
# Sessions
# ============================================================================
@router.post("/sessions", response_model=AnswerSession, status_code=201)
async def start_session(
    request: StartSessionRequest,
    service: AnswerStatsService = Depends(get_stats_service)
):
    """Start timing a question for a user"""
    return await service.start_session(request.user_id, request.question_id)

@router.post("/sessions/sweep")
async def sweep_abandoned_sessions(
    service: AnswerStatsService = Depends(get_stats_service)
):
    """Delete sessions left in progress past the idle limit"""
    deleted = await service.sweep_abandoned()
    return {"deleted": deleted}

@router.post("/sessions/{session_id}/complete", response_model=AnswerSession)
async def complete_session(
    session_id: int,
    request: CompleteSessionRequest,
    service: AnswerStatsService = Depends(get_stats_service)
):
    return await service.complete_session(session_id, request.selected_answer)

@router.post("/answers", response_model=AnswerResult)
async def answer_question(
    request: AnswerQuestionRequest,
    service: AnswerStatsService = Depends(get_stats_service)
):
    """Start (or resume) and complete a session in one call"""
    return await service.answer_question(request.user_id, request.question_id, request.answer)

# ============================================================================
# Per-user statistics
# ============================================================================
@router.get("/users/{user_id}", response_model=UserStatistics)
async def get_user_statistics(
    user_id: int,
    service: AnswerStatsService = Depends(get_stats_service)
):
    """Stored statistics, recomputed first when older than the freshness window"""
    return await service.get_statistics(user_id)

@router.post("/users/{user_id}/recompute", response_model=UserStatistics)
async def recompute_user_statistics(
    user_id: int,
    service: AnswerStatsService = Depends(get_stats_service)
):
    return await service.recompute_statistics(user_id)

@router.get("/users/{user_id}/sessions", response_model=List[AnswerSession])
async def list_user_sessions(
    user_id: int,
    recent: Optional[int] = None,
    service: AnswerStatsService = Depends(get_stats_service)
):
    """All sessions of a user, or the latest completed ones when ``recent`` is given"""
    if recent is not None:
        return await service.recent_sessions(user_id, recent)
    return await service.sessions_for_user(user_id)

@router.get("/users/{user_id}/difficulties", response_model=List[DifficultyStats])
async def get_difficulty_breakdown(
    user_id: int,
    service: AnswerStatsService = Depends(get_stats_service)
):
    return await service.difficulty_breakdown(user_id)

@router.get("/users/{user_id}/difficulties/{difficulty}", response_model=DifficultyStats)
async def get_difficulty_stats(
    user_id: int,
    difficulty: str,
    service: AnswerStatsService = Depends(get_stats_service)
):
    return await service.difficulty_stats(user_id, difficulty)

@router.get("/users/{user_id}/topics", response_model=List[TopicStats])
async def get_topic_breakdown(
    user_id: int,
    service: AnswerStatsService = Depends(get_stats_service)
):
    return await service.topic_breakdown(user_id)

@router.get("/users/{user_id}/topics/ranking", response_model=List[TopicStats])
async def get_topic_ranking(
    user_id: int,
    service: AnswerStatsService = Depends(get_stats_service)
):
    """Topics with answers, best accuracy first"""
    return await service.topic_ranking(user_id)

@router.get("/users/{user_id}/topics/{topic}", response_model=TopicStats)
async def get_topic_stats(
    user_id: int,
    topic: str,
    service: AnswerStatsService = Depends(get_stats_service)
):
    return await service.topic_stats(user_id, topic)

@router.get("/users/{user_id}/summary", response_model=ProgressSummary)
async def get_progress_summary(
    user_id: int,
    service: AnswerStatsService = Depends(get_stats_service)
):
    return await service.summary(user_id)

@router.get("/users/{user_id}/comparative", response_model=ComparativeStats)
async def get_comparative_stats(
    user_id: int,
    service: AnswerStatsService = Depends(get_stats_service)
):
    """Standing against every user with at least one answer"""
    return await service.comparative(user_id)

# ============================================================================
# Rankings
# ============================================================================
@router.get("/ranking", response_model=GlobalRanking)
async def get_global_ranking(
    limit: Optional[int] = None,
    service: AnswerStatsService = Depends(get_stats_service)
):
    return await service.global_rankings(limit)

@router.get("/ranking/{kind}", response_model=List[UserStatistics])
async def get_ranking(
    kind: str,
    limit: Optional[int] = None,
    service: AnswerStatsService = Depends(get_stats_service)
):
    """Leaderboard by accuracy, volume or duration"""
    return await service.rankings(kind, limit)
