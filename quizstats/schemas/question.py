# ============================================================================
# Question Schemas
# ============================================================================
import unicodedata
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict

from quizstats.core.exceptions import InvalidInput

NO_TOPIC = "no topic"

class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def label(self) -> str:
        return self.value.title()

    @property
    def rank(self) -> int:
        return list(Difficulty).index(self)

    @classmethod
    def parse(cls, value) -> "Difficulty":
        if isinstance(value, cls):
            return value
        if value is None:
            raise InvalidInput("difficulty must not be null")

        text = str(value).strip().lower()
        for difficulty in cls:
            if text in (difficulty.value, difficulty.name.lower()):
                return difficulty
        raise InvalidInput(f"Invalid difficulty: {value}")

def normalize_topic(name: Optional[str]) -> str:
    """Trim, strip accents and lower-case a topic name"""
    if name is None or not name.strip():
        return NO_TOPIC
    decomposed = unicodedata.normalize("NFD", name.strip())
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.lower()

class QuestionInfo(BaseModel):
    """Read-only view of a question as the statistics core needs it"""
    model_config = ConfigDict(frozen=True)

    question_id: int
    difficulty: Difficulty = Difficulty.EASY
    primary_topic: Optional[str] = None
    correct_answer: str
    explanation: Optional[str] = None

    def accepts(self, given: Optional[str]) -> bool:
        if given is None or not given.strip():
            return False
        return self.correct_answer.strip() == given.strip()
