# ============================================================================
# Question Model
# ============================================================================
from sqlalchemy import Column, String, Integer, Boolean, DateTime
from sqlalchemy import Text, JSON
from sqlalchemy.sql import func
from quizstats.core.database import Base

class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    question_text = Column(Text, nullable=False)
    options = Column(JSON, nullable=True)  # ["option1", "option2", ...]
    correct_answer = Column(Text, nullable=False)
    explanation = Column(Text)
    difficulty = Column(String(20), default="easy")  # easy, medium, hard
    primary_topic = Column(String(200), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Question {self.id} ({self.difficulty})>"
