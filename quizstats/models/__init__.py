from quizstats.models.user import User
from quizstats.models.curriculum import Question
from quizstats.models.answer_session import AnswerSessionRecord
from quizstats.models.statistics import UserStatisticsRecord

__all__ = ["User", "Question", "AnswerSessionRecord", "UserStatisticsRecord"]
