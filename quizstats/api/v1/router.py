# ============================================================================
# Main API Router
# ============================================================================
from fastapi import APIRouter

from quizstats.api.v1 import statistics

api_router = APIRouter()

# Answer sessions, per-user statistics and rankings
api_router.include_router(statistics.router)
