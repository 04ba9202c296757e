"""
Core data models for the Math Quiz Bot.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from datetime import datetime
from enum import Enum


# Submitted on behalf of a player who let the countdown run out
TIMEOUT_ANSWER = -1


class GameCategory(Enum):
    """Math topics the question generator can produce."""
    ADDITION = "addition"
    SUBTRACTION = "subtraction"
    MULTIPLICATION = "multiplication"
    DIVISION = "division"
    FRACTIONS = "fractions"
    PERCENTAGES = "percentages"
    ALGEBRA = "algebra"
    GEOMETRY = "geometry"
    PATTERNS = "patterns"
    WORD_PROBLEMS = "word_problems"
    MIXED = "mixed"


class GameDifficulty(Enum):
    """Difficulty levels, each widening the operand ranges."""
    EASY = "easy"
    NORMAL = "normal"
    GENIUS = "genius"
    QUANTUM = "quantum"


class GradeLevel(Enum):
    """School grade levels from PreK to grade 12."""
    PRE_K = 0
    KINDERGARTEN = 1
    GRADE_1 = 2
    GRADE_2 = 3
    GRADE_3 = 4
    GRADE_4 = 5
    GRADE_5 = 6
    GRADE_6 = 7
    GRADE_7 = 8
    GRADE_8 = 9
    GRADE_9 = 10
    GRADE_10 = 11
    GRADE_11 = 12
    GRADE_12 = 13

    @property
    def label(self) -> str:
        if self is GradeLevel.PRE_K:
            return "PreK"
        if self is GradeLevel.KINDERGARTEN:
            return "Kindergarten"
        return f"Grade {self.value - 1}"


class SessionPhase(Enum):
    """Lifecycle phases of a single quiz attempt."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class Question:
    """A single multiple-choice question. Immutable once generated."""
    id: str
    prompt: str
    options: Tuple[str, ...]
    correct_index: int
    hint: Optional[str] = None
    explanation: Optional[str] = None
    category: Optional[GameCategory] = None
    difficulty: Optional[GameDifficulty] = None
    grade_level: Optional[GradeLevel] = None

    def __post_init__(self):
        # Accept any sequence but always store a tuple
        object.__setattr__(self, 'options', tuple(self.options))
        if len(self.options) < 2:
            raise ValueError(f"Question {self.id} needs at least 2 options, got {len(self.options)}")
        if not 0 <= self.correct_index < len(self.options):
            raise ValueError(
                f"Question {self.id} correct_index {self.correct_index} "
                f"out of range for {len(self.options)} options"
            )

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_index]


@dataclass(frozen=True)
class SessionConfig:
    """Settings for one quiz session. Fixed for the session's duration."""
    category: GameCategory = GameCategory.ADDITION
    difficulty: GameDifficulty = GameDifficulty.NORMAL
    question_count: int = 10
    time_limit_per_question_seconds: int = 30
    grade_level: Optional[GradeLevel] = None

    def __post_init__(self):
        # bool is an int subclass, reject it explicitly
        if (isinstance(self.question_count, bool) or not isinstance(self.question_count, int)
                or self.question_count <= 0):
            raise ValueError(f"question_count must be a positive integer, got {self.question_count!r}")
        if (isinstance(self.time_limit_per_question_seconds, bool)
                or not isinstance(self.time_limit_per_question_seconds, int)
                or self.time_limit_per_question_seconds <= 0):
            raise ValueError(
                "time_limit_per_question_seconds must be a positive integer, "
                f"got {self.time_limit_per_question_seconds!r}"
            )


@dataclass
class QuizSettings:
    """Global, editable quiz defaults used to build each session's config."""
    category: GameCategory = GameCategory.ADDITION
    difficulty: GameDifficulty = GameDifficulty.NORMAL
    question_count: int = 10
    timer_duration: int = 30
    grade_level: Optional[GradeLevel] = None
    points_per_correct: int = 10
    bonus_factor: float = 0.0
    reveal_delay: float = 2.0
    shuffle_options: bool = True


@dataclass(frozen=True)
class ScoringRules:
    """Points awarded for a correct answer."""
    points_per_correct: int = 10
    bonus_factor: float = 0.0


@dataclass
class SessionState:
    """Live, mutable state of one quiz attempt."""
    config: SessionConfig
    questions: Tuple[Question, ...]
    started_at: datetime
    current_index: int = 0
    score: int = 0
    streak: int = 0
    best_streak: int = 0
    time_remaining: int = 0
    answer_locked: bool = False
    selected_answer_index: Optional[int] = None
    answer_history: List[bool] = field(default_factory=list)
    finished_at: Optional[datetime] = None

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def is_terminal(self) -> bool:
        return self.current_index >= len(self.questions)


@dataclass(frozen=True)
class SessionResults:
    """Summary of a finished quiz attempt."""
    total_questions: int
    correct_answers: int
    score: int
    accuracy: float
    elapsed_seconds: float
    best_streak: int
