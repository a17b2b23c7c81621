# ============================================================================
# API Request Schemas
# ============================================================================
from pydantic import BaseModel
from typing import Optional

class StartSessionRequest(BaseModel):
    user_id: Optional[int] = None
    question_id: Optional[int] = None

class CompleteSessionRequest(BaseModel):
    # Blank answers are rejected by the tracker with INVALID_INPUT
    selected_answer: Optional[str] = None

class AnswerQuestionRequest(BaseModel):
    user_id: Optional[int] = None
    question_id: Optional[int] = None
    answer: Optional[str] = None
