# ============================================================================
# Answer Session Model
# ============================================================================
from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey
from sqlalchemy import Text, Index, text
from quizstats.core.database import Base

IN_PROGRESS = text("completed_at IS NULL")

class AnswerSessionRecord(Base):
    __tablename__ = "answer_sessions"
    __table_args__ = (
        # At most one in-progress session per (user, question)
        Index(
            "uq_answer_sessions_in_progress",
            "user_id",
            "question_id",
            unique=True,
            postgresql_where=IN_PROGRESS,
            sqlite_where=IN_PROGRESS,
        ),
        Index("ix_answer_sessions_user_completed", "user_id", "completed_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)

    selected_answer = Column(Text, nullable=True)
    is_correct = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime(timezone=True), nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_ms = Column(Integer, nullable=True)

    def __repr__(self):
        state = "completed" if self.completed_at is not None else "in_progress"
        return f"<AnswerSession {self.id} ({state})>"
