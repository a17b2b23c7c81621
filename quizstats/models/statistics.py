# ============================================================================
# User Statistics Model
# ============================================================================
from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, JSON
from quizstats.core.database import Base

class UserStatisticsRecord(Base):
    __tablename__ = "user_statistics"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    total_questions = Column(Integer, nullable=False, default=0)
    correct_answers = Column(Integer, nullable=False, default=0)
    accuracy_percent = Column(Float, nullable=False, default=0.0)
    average_duration_ms = Column(Integer, nullable=False, default=0)

    # {"easy": {"total": 3, "correct": 2, "accuracy_percent": 66.6, "average_duration_ms": 9000}, ...}
    per_difficulty = Column(JSON, default=dict)
    per_topic = Column(JSON, default=dict)

    last_recomputed_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        return f"<UserStatistics {self.user_id} ({self.total_questions} answered)>"
