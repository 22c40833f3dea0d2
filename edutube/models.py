"""
Core data models for the EduTube Quiz Bot.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

# Four button rows of five; the fifth row holds "Continue Video"
MAX_OPTIONS = 20


class SessionState(Enum):
    """Enumeration of possible quiz session states."""
    SETUP = "setup"
    GENERATING = "generating"
    PLAYING = "playing"
    FINISHED = "finished"


@dataclass(frozen=True)
class QuizItem:
    """A single generated question bound to a playback timestamp."""
    id: str
    timestamp: float
    question: str
    options: Tuple[str, ...]
    correct_answer_index: int
    feedback: str
    verb_focus: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "options", tuple(self.options))

    def is_correct(self, option_index: int) -> bool:
        """Check whether the given option index is the correct answer."""
        return option_index == self.correct_answer_index

    def to_dict(self) -> dict:
        """Serialize using the provider's field names."""
        data = {
            'id': self.id,
            'timestamp': self.timestamp,
            'question': self.question,
            'options': list(self.options),
            'correctAnswerIndex': self.correct_answer_index,
            'feedback': self.feedback,
        }
        if self.verb_focus:
            data['verbFocus'] = self.verb_focus
        return data


@dataclass
class Score:
    """Running score for a session."""
    correct: int = 0
    total: int = 0


@dataclass
class QuizSettings:
    """Configuration settings for playback and question generation."""
    poll_interval: float = 0.5
    match_window: float = 1.5
    duration_minutes: int = 15
    model_name: str = "gemini-3-flash-preview"
