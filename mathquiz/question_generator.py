"""
Math question generator for the Math Quiz Bot.
Produces grade-appropriate multiple-choice questions for each category.
"""
import logging
import random
import uuid
from fractions import Fraction
from typing import Callable, Dict, List, Optional, Tuple, Union

from .models import GameCategory, GameDifficulty, GradeLevel, Question


logger = logging.getLogger(__name__)

# Number of answer options shown per question
OPTION_COUNT = 4

DIFFICULTY_SCALE = {
    GameDifficulty.EASY: 0.5,
    GameDifficulty.NORMAL: 1.0,
    GameDifficulty.GENIUS: 2.0,
    GameDifficulty.QUANTUM: 4.0,
}

# Operand ranges for addition/subtraction by grade
ADDITION_RANGES = {
    GradeLevel.PRE_K: (1, 5),
    GradeLevel.KINDERGARTEN: (1, 5),
    GradeLevel.GRADE_1: (1, 10),
    GradeLevel.GRADE_2: (10, 30),
    GradeLevel.GRADE_3: (50, 150),
    GradeLevel.GRADE_4: (500, 1500),
    GradeLevel.GRADE_5: (5000, 15000),
}
DEFAULT_ADDITION_RANGE = (50000, 150000)

# Factor ranges for multiplication/division by grade
FACTOR_RANGES = {
    GradeLevel.PRE_K: (1, 3),
    GradeLevel.KINDERGARTEN: (1, 3),
    GradeLevel.GRADE_1: (1, 5),
    GradeLevel.GRADE_2: (1, 5),
    GradeLevel.GRADE_3: (1, 10),
    GradeLevel.GRADE_4: (2, 12),
    GradeLevel.GRADE_5: (2, 15),
}
DEFAULT_FACTOR_RANGE = (5, 25)

DEFAULT_GRADE = GradeLevel.GRADE_3

Answer = Union[int, str]


class GenerationError(Exception):
    """Raised when the question supplier cannot produce questions."""
    pass


def suggested_time_limit(grade_level: Optional[GradeLevel]) -> int:
    """
    Get a grade-appropriate time limit per question.

    Args:
        grade_level: Target grade, or None for the default

    Returns:
        Seconds per question
    """
    if grade_level in (GradeLevel.PRE_K, GradeLevel.KINDERGARTEN):
        return 45
    if grade_level in (GradeLevel.GRADE_1, GradeLevel.GRADE_2):
        return 40
    if grade_level in (GradeLevel.GRADE_3, GradeLevel.GRADE_4):
        return 35
    if grade_level in (GradeLevel.GRADE_5, GradeLevel.GRADE_6):
        return 30
    if grade_level is None:
        return 30
    return 25


class QuestionGenerator:
    """Generates math questions with plausible wrong options."""

    CONCRETE_CATEGORIES = [c for c in GameCategory if c is not GameCategory.MIXED]

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Initialize the generator.

        Args:
            rng: Random source, seed it for reproducible quizzes
        """
        self.rng = rng or random.Random()
        self._builders: Dict[GameCategory, Callable[[GradeLevel, float], Tuple[str, Answer, str, str]]] = {
            GameCategory.ADDITION: self._addition,
            GameCategory.SUBTRACTION: self._subtraction,
            GameCategory.MULTIPLICATION: self._multiplication,
            GameCategory.DIVISION: self._division,
            GameCategory.FRACTIONS: self._fractions,
            GameCategory.PERCENTAGES: self._percentages,
            GameCategory.ALGEBRA: self._algebra,
            GameCategory.GEOMETRY: self._geometry,
            GameCategory.PATTERNS: self._patterns,
            GameCategory.WORD_PROBLEMS: self._word_problems,
        }

    def generate_questions(
        self,
        category: GameCategory,
        difficulty: GameDifficulty,
        count: int,
        grade_level: Optional[GradeLevel] = None
    ) -> List[Question]:
        """
        Generate a list of questions.

        Args:
            category: Topic of the questions, MIXED picks one per question
            difficulty: Difficulty level
            count: Number of questions to produce
            grade_level: Target grade, defaults to grade 3 ranges

        Returns:
            List of generated questions, empty if count is less than 1

        Raises:
            GenerationError: If the category is unsupported or generation fails
        """
        if not isinstance(category, GameCategory):
            raise GenerationError(f"Unsupported category: {category!r}")
        if not isinstance(difficulty, GameDifficulty):
            raise GenerationError(f"Unsupported difficulty: {difficulty!r}")
        if count < 1:
            return []

        grade = grade_level or DEFAULT_GRADE
        scale = DIFFICULTY_SCALE[difficulty]
        questions = []

        try:
            for _ in range(count):
                selected = category
                if category is GameCategory.MIXED:
                    selected = self.rng.choice(self.CONCRETE_CATEGORIES)
                questions.append(self._build_question(selected, difficulty, grade, scale))
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"Failed to generate {category.value} questions: {e}") from e

        logger.info(
            f"Generated {len(questions)} {category.value} questions "
            f"({difficulty.value}, {grade.label})"
        )
        return questions

    def _build_question(
        self,
        category: GameCategory,
        difficulty: GameDifficulty,
        grade: GradeLevel,
        scale: float
    ) -> Question:
        prompt, answer, hint, explanation = self._builders[category](grade, scale)

        if isinstance(answer, int):
            options = self._integer_options(answer, grade)
        else:
            options = self._fraction_options(answer)

        correct = str(answer)
        return Question(
            id=uuid.uuid4().hex[:8],
            prompt=prompt,
            options=tuple(options),
            correct_index=options.index(correct),
            hint=hint,
            explanation=explanation,
            category=category,
            difficulty=difficulty,
            grade_level=grade,
        )

    # Operand helpers

    def _scaled_range(self, bounds: Tuple[int, int], scale: float) -> Tuple[int, int]:
        low, high = bounds
        high = max(low + 1, int(high * scale))
        return low, high

    def _operand(self, bounds: Tuple[int, int], scale: float) -> int:
        low, high = self._scaled_range(bounds, scale)
        return self.rng.randint(low, high)

    # Category builders return (prompt, answer, hint, explanation)

    def _addition(self, grade: GradeLevel, scale: float):
        bounds = ADDITION_RANGES.get(grade, DEFAULT_ADDITION_RANGE)
        a = self._operand(bounds, scale)
        b = self._operand(bounds, scale)
        if grade in (GradeLevel.PRE_K, GradeLevel.KINDERGARTEN):
            prompt = f"You have {a} apples and get {b} more. How many apples in total?"
            hint = f"Count on from {a}: {', '.join(str(a + i) for i in range(1, min(b, 3) + 1))}..."
        else:
            prompt = f"What is {a} + {b}?"
            hint = "Line up the numbers by place value and add the ones first"
        return prompt, a + b, hint, f"{a} + {b} = {a + b}"

    def _subtraction(self, grade: GradeLevel, scale: float):
        low, high = self._scaled_range(ADDITION_RANGES.get(grade, DEFAULT_ADDITION_RANGE), scale)
        a = self.rng.randint(max(low, 2), max(high, 3))
        b = self.rng.randint(1, a - 1)
        if grade in (GradeLevel.PRE_K, GradeLevel.KINDERGARTEN):
            prompt = f"There are {a} apples and you eat {b}. How many apples are left?"
            hint = f"Start at {a} and count back {b}"
        else:
            prompt = f"What is {a} - {b}?"
            hint = "Subtract the ones first, then the tens"
        return prompt, a - b, hint, f"{a} - {b} = {a - b}"

    def _multiplication(self, grade: GradeLevel, scale: float):
        bounds = FACTOR_RANGES.get(grade, DEFAULT_FACTOR_RANGE)
        a = self._operand(bounds, scale)
        b = self._operand(bounds, scale)
        hint = f"Think of {a} groups of {b}"
        return f"What is {a} × {b}?", a * b, hint, f"{a} × {b} = {a * b}"

    def _division(self, grade: GradeLevel, scale: float):
        bounds = FACTOR_RANGES.get(grade, DEFAULT_FACTOR_RANGE)
        divisor = max(2, self._operand(bounds, scale))
        quotient = self._operand(bounds, scale)
        dividend = divisor * quotient
        hint = f"Which number times {divisor} makes {dividend}?"
        return f"What is {dividend} ÷ {divisor}?", quotient, hint, f"{dividend} ÷ {divisor} = {quotient}"

    def _fractions(self, grade: GradeLevel, scale: float):
        denominator = self.rng.randint(3, max(4, int(12 * scale)))
        a = self.rng.randint(1, denominator - 1)
        b = self.rng.randint(1, denominator - 1)
        total = Fraction(a + b, denominator)
        hint = "When the denominators match, add the numerators and keep the denominator"
        explanation = f"{a}/{denominator} + {b}/{denominator} = {a + b}/{denominator} = {_format_fraction(total)}"
        return (
            f"What is {a}/{denominator} + {b}/{denominator}? (simplest form)",
            _format_fraction(total),
            hint,
            explanation,
        )

    def _percentages(self, grade: GradeLevel, scale: float):
        percent = self.rng.choice([5, 10, 20, 25, 50, 75])
        base = 20 * self.rng.randint(1, max(2, int(10 * scale)))
        answer = percent * base // 100
        hint = f"{percent}% means {percent} out of every 100"
        return f"What is {percent}% of {base}?", answer, hint, f"{percent}% of {base} = {answer}"

    def _algebra(self, grade: GradeLevel, scale: float):
        x = self._operand((1, 12), scale)
        if self.rng.random() < 0.5:
            a = self._operand((1, 20), scale)
            prompt = f"Solve for x: x + {a} = {x + a}"
            hint = f"Subtract {a} from both sides"
            explanation = f"x = {x + a} - {a} = {x}"
        else:
            a = self._operand((2, 9), scale)
            prompt = f"Solve for x: {a}x = {a * x}"
            hint = f"Divide both sides by {a}"
            explanation = f"x = {a * x} ÷ {a} = {x}"
        return prompt, x, hint, explanation

    def _geometry(self, grade: GradeLevel, scale: float):
        width = self._operand((2, 12), scale)
        height = self._operand((2, 12), scale)
        if self.rng.random() < 0.5:
            return (
                f"What is the area of a {width} by {height} rectangle?",
                width * height,
                "Area = length × width",
                f"{width} × {height} = {width * height}",
            )
        perimeter = 2 * (width + height)
        return (
            f"What is the perimeter of a {width} by {height} rectangle?",
            perimeter,
            "Perimeter = 2 × (length + width)",
            f"2 × ({width} + {height}) = {perimeter}",
        )

    def _patterns(self, grade: GradeLevel, scale: float):
        start = self._operand((1, 20), scale)
        step = self._operand((2, 9), scale)
        terms = [start + step * i for i in range(4)]
        answer = start + step * 4
        return (
            f"What comes next: {', '.join(str(t) for t in terms)}, ?",
            answer,
            "Look at how much each number grows",
            f"Each term adds {step}: {terms[-1]} + {step} = {answer}",
        )

    def _word_problems(self, grade: GradeLevel, scale: float):
        name = self.rng.choice(["Maya", "Leo", "Sam", "Ava", "Noah", "Zoe"])
        if self.rng.random() < 0.5:
            boxes = self._operand((2, 9), scale)
            per_box = self._operand((2, 12), scale)
            answer = boxes * per_box
            return (
                f"{name} has {boxes} boxes with {per_box} pencils in each box. "
                "How many pencils are there altogether?",
                answer,
                "Equal groups mean multiplication",
                f"{boxes} × {per_box} = {answer}",
            )
        has = self._operand((10, 50), scale)
        gives = self.rng.randint(1, has - 1)
        answer = has - gives
        return (
            f"{name} has {has} stickers and gives away {gives}. How many stickers are left?",
            answer,
            "Giving away means subtracting",
            f"{has} - {gives} = {answer}",
        )

    # Option builders

    def _integer_options(self, correct: int, grade: GradeLevel) -> List[str]:
        """
        Build shuffled options with distinct, positive wrong answers.

        Args:
            correct: Correct answer
            grade: Grade used to size random offsets

        Returns:
            Shuffled list of OPTION_COUNT option strings
        """
        wrong = set()
        attempts = 0
        spread = 10 if grade in (GradeLevel.PRE_K, GradeLevel.KINDERGARTEN) else 50

        while len(wrong) < OPTION_COUNT - 1 and attempts < 200:
            attempts += 1
            strategy = self.rng.randint(0, 3)
            if strategy == 0:
                candidate = correct + self.rng.randint(-10, 10)
            elif strategy == 1:
                factor = self.rng.choice([2, 3, 0.5, 1 / 3])
                candidate = round(correct * factor)
            elif strategy == 2:
                digits = list(str(correct))
                self.rng.shuffle(digits)
                candidate = int("".join(digits))
            else:
                candidate = correct + self.rng.randint(-spread, spread)

            if candidate > 0 and candidate != correct:
                wrong.add(candidate)

        # Deterministic top-up for tiny answers where strategies collide
        offset = 1
        while len(wrong) < OPTION_COUNT - 1:
            if correct + offset not in wrong:
                wrong.add(correct + offset)
            offset += 1

        options = [str(value) for value in wrong] + [str(correct)]
        self.rng.shuffle(options)
        return options

    def _fraction_options(self, correct: str) -> List[str]:
        value = Fraction(correct)
        wrong = set()
        attempts = 0

        while len(wrong) < OPTION_COUNT - 1 and attempts < 200:
            attempts += 1
            strategy = self.rng.randint(0, 2)
            if strategy == 0:
                candidate = value + Fraction(self.rng.choice([-2, -1, 1, 2]), value.denominator)
            elif strategy == 1:
                # Common mistake: adding denominators too
                candidate = Fraction(value.numerator, value.denominator * 2)
            else:
                candidate = Fraction(value.denominator, value.numerator)
            if candidate > 0 and candidate != value:
                wrong.add(_format_fraction(candidate))

        offset = 1
        while len(wrong) < OPTION_COUNT - 1:
            wrong.add(_format_fraction(value + offset))
            offset += 1

        options = list(wrong) + [correct]
        self.rng.shuffle(options)
        return options


def _format_fraction(value: Fraction) -> str:
    if value.denominator == 1:
        return str(value.numerator)
    return f"{value.numerator}/{value.denominator}"


_default_generator = QuestionGenerator()


def generate_questions(
    category: GameCategory,
    difficulty: GameDifficulty,
    count: int,
    grade_level: Optional[GradeLevel] = None
) -> List[Question]:
    """Generate questions with the module-level generator."""
    return _default_generator.generate_questions(category, difficulty, count, grade_level)
