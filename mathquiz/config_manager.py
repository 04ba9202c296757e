"""
Configuration manager for Math Quiz Bot settings and parameters.
"""
import logging
from dataclasses import replace
from typing import Optional, Dict, Any, List, Union

from .models import (
    GameCategory,
    GameDifficulty,
    GradeLevel,
    QuizSettings,
    ScoringRules,
    SessionConfig,
)
from .question_generator import suggested_time_limit


def parse_grade_level(value: Union[str, int, GradeLevel, None]) -> Optional[GradeLevel]:
    """
    Parse a grade given as text ("prek", "k", "1".."12", "none") or a number.

    Raises:
        ValueError: If the value does not name a grade
    """
    if value is None or isinstance(value, GradeLevel):
        return value

    text = str(value).strip().lower()
    if text in ("", "none", "any"):
        return None
    if text in ("prek", "pre-k", "pre_k"):
        return GradeLevel.PRE_K
    if text in ("k", "kindergarten"):
        return GradeLevel.KINDERGARTEN
    if text.startswith("grade"):
        text = text[len("grade"):].strip(" _-")
    if text.isdigit() and 1 <= int(text) <= 12:
        return GradeLevel(int(text) + 1)
    raise ValueError(f"Unknown grade level: {value!r}")


class ConfigManager:
    """Manages bot configuration settings and quiz parameters."""

    # Default configuration values
    DEFAULT_CATEGORY = GameCategory.ADDITION
    DEFAULT_DIFFICULTY = GameDifficulty.NORMAL
    DEFAULT_QUESTION_COUNT = 10
    DEFAULT_TIMER_DURATION = 30
    DEFAULT_POINTS_PER_CORRECT = 10
    DEFAULT_BONUS_FACTOR = 0.0
    DEFAULT_REVEAL_DELAY = 2.0
    DEFAULT_SHUFFLE_OPTIONS = True

    # Validation limits
    MIN_TIMER_DURATION = 5
    MAX_TIMER_DURATION = 300  # 5 minutes
    MIN_QUESTION_COUNT = 1
    MAX_QUESTION_COUNT = 50
    MIN_POINTS = 1
    MAX_POINTS = 100
    MAX_BONUS_FACTOR = 10.0
    MAX_REVEAL_DELAY = 10.0

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = self._default_settings()

    def _default_settings(self) -> QuizSettings:
        return QuizSettings(
            category=self.DEFAULT_CATEGORY,
            difficulty=self.DEFAULT_DIFFICULTY,
            question_count=self.DEFAULT_QUESTION_COUNT,
            timer_duration=self.DEFAULT_TIMER_DURATION,
            grade_level=None,
            points_per_correct=self.DEFAULT_POINTS_PER_CORRECT,
            bonus_factor=self.DEFAULT_BONUS_FACTOR,
            reveal_delay=self.DEFAULT_REVEAL_DELAY,
            shuffle_options=self.DEFAULT_SHUFFLE_OPTIONS,
        )

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get a copy of the current quiz settings.

        Returns:
            QuizSettings object with current configuration
        """
        return replace(self._global_settings)

    def get_session_config(self) -> SessionConfig:
        """
        Build the configuration for the next quiz session.

        Returns:
            Immutable SessionConfig from the current settings
        """
        settings = self._global_settings
        return SessionConfig(
            category=settings.category,
            difficulty=settings.difficulty,
            question_count=settings.question_count,
            time_limit_per_question_seconds=settings.timer_duration,
            grade_level=settings.grade_level,
        )

    def get_scoring_rules(self) -> ScoringRules:
        """
        Get the scoring rules for the next quiz session.

        Returns:
            Immutable ScoringRules from the current settings
        """
        return ScoringRules(
            points_per_correct=self._global_settings.points_per_correct,
            bonus_factor=self._global_settings.bonus_factor,
        )

    def _range_error(
        self,
        label: str,
        value: Any,
        minimum: float,
        maximum: float,
        unit: str = "",
        allow_float: bool = False
    ) -> Optional[Dict[str, Any]]:
        """Return an error result if value is not a number within [minimum, maximum]."""
        valid_types = (int, float) if allow_float else (int,)
        if isinstance(value, bool) or not isinstance(value, valid_types):
            error_msg = f"{label} must be {'a number' if allow_float else 'an integer'}, got {type(value).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(value).__name__}"
            }

        if value < minimum:
            error_msg = f"{label} must be at least {minimum}{unit}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {label} too small: Minimum is {minimum}{unit}"
            }

        if value > maximum:
            error_msg = f"{label} cannot exceed {maximum}{unit}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {label} too large: Maximum is {maximum}{unit}"
            }

        return None

    def set_question_count(self, count: int) -> Dict[str, Any]:
        """
        Set the number of questions per quiz.

        Args:
            count: Number of questions

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        error = self._range_error("Question count", count, self.MIN_QUESTION_COUNT, self.MAX_QUESTION_COUNT)
        if error:
            return error

        self._global_settings.question_count = count
        self.logger.info(f"Question count set to {count}")
        return {
            'success': True,
            'message': f"Question count set to {count}",
            'user_message': f"✅ Question count set to {count}"
        }

    def get_question_count(self) -> int:
        return self._global_settings.question_count

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the time limit for each question.

        Args:
            duration: Timer duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        error = self._range_error(
            "Timer duration", duration, self.MIN_TIMER_DURATION, self.MAX_TIMER_DURATION, " seconds"
        )
        if error:
            return error

        self._global_settings.timer_duration = duration
        self.logger.info(f"Timer duration set to {duration} seconds")
        return {
            'success': True,
            'message': f"Timer duration set to {duration} seconds",
            'user_message': f"✅ Timer set to {duration} seconds"
        }

    def get_timer_duration(self) -> int:
        return self._global_settings.timer_duration

    def set_category(self, category: Union[str, GameCategory]) -> Dict[str, Any]:
        """
        Set the math category for the next quiz.

        Args:
            category: GameCategory or its value (e.g. "addition")

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        try:
            parsed = category if isinstance(category, GameCategory) else GameCategory(str(category).strip().lower())
        except ValueError:
            error_msg = f"Unknown category: {category!r}"
            self.logger.error(error_msg)
            choices = ", ".join(c.value for c in GameCategory)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Unknown category. Choose one of: {choices}"
            }

        self._global_settings.category = parsed
        self.logger.info(f"Category set to {parsed.value}")
        return {
            'success': True,
            'message': f"Category set to {parsed.value}",
            'user_message': f"✅ Category set to {parsed.value.replace('_', ' ')}"
        }

    def get_category(self) -> GameCategory:
        return self._global_settings.category

    def set_difficulty(self, difficulty: Union[str, GameDifficulty]) -> Dict[str, Any]:
        """
        Set the difficulty for the next quiz.

        Args:
            difficulty: GameDifficulty or its value (e.g. "genius")

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        try:
            parsed = (
                difficulty if isinstance(difficulty, GameDifficulty)
                else GameDifficulty(str(difficulty).strip().lower())
            )
        except ValueError:
            error_msg = f"Unknown difficulty: {difficulty!r}"
            self.logger.error(error_msg)
            choices = ", ".join(d.value for d in GameDifficulty)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Unknown difficulty. Choose one of: {choices}"
            }

        self._global_settings.difficulty = parsed
        self.logger.info(f"Difficulty set to {parsed.value}")
        return {
            'success': True,
            'message': f"Difficulty set to {parsed.value}",
            'user_message': f"✅ Difficulty set to {parsed.value}"
        }

    def get_difficulty(self) -> GameDifficulty:
        return self._global_settings.difficulty

    def set_grade_level(self, grade: Union[str, int, GradeLevel, None], adjust_timer: bool = False) -> Dict[str, Any]:
        """
        Set the grade level used to size questions.

        Args:
            grade: Grade as GradeLevel, text ("prek", "k", "1".."12") or None for any
            adjust_timer: Also switch the timer to the grade-appropriate limit

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        try:
            parsed = parse_grade_level(grade)
        except ValueError as e:
            self.logger.error(str(e))
            return {
                'success': False,
                'error': str(e),
                'user_message': "❌ Unknown grade. Use prek, k, 1-12 or none"
            }

        self._global_settings.grade_level = parsed
        label = parsed.label if parsed else "any grade"
        message = f"Grade level set to {label}"

        if adjust_timer:
            self._global_settings.timer_duration = suggested_time_limit(parsed)
            message += f", timer {self._global_settings.timer_duration} seconds"

        self.logger.info(message)
        return {
            'success': True,
            'message': message,
            'user_message': f"✅ {message}"
        }

    def get_grade_level(self) -> Optional[GradeLevel]:
        return self._global_settings.grade_level

    def set_points_per_correct(self, points: int) -> Dict[str, Any]:
        """
        Set the base points awarded for a correct answer.

        Args:
            points: Points per correct answer

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        error = self._range_error("Points per correct answer", points, self.MIN_POINTS, self.MAX_POINTS)
        if error:
            return error

        self._global_settings.points_per_correct = points
        self.logger.info(f"Points per correct answer set to {points}")
        return {
            'success': True,
            'message': f"Points per correct answer set to {points}",
            'user_message': f"✅ Each correct answer is worth {points} points"
        }

    def set_bonus_factor(self, factor: float) -> Dict[str, Any]:
        """
        Set the time bonus factor (extra points per remaining second).

        Args:
            factor: Multiplier applied to the seconds left when answering

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        error = self._range_error("Bonus factor", factor, 0.0, self.MAX_BONUS_FACTOR, allow_float=True)
        if error:
            return error

        self._global_settings.bonus_factor = float(factor)
        self.logger.info(f"Bonus factor set to {factor}")
        if factor == 0:
            user_message = "✅ Time bonus disabled"
        else:
            user_message = f"✅ Time bonus set to {factor} points per second remaining"
        return {
            'success': True,
            'message': f"Bonus factor set to {factor}",
            'user_message': user_message
        }

    def set_reveal_delay(self, delay: float) -> Dict[str, Any]:
        """
        Set the pause between revealing an answer and the next question.

        Args:
            delay: Delay in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        error = self._range_error("Reveal delay", delay, 0.0, self.MAX_REVEAL_DELAY, " seconds", allow_float=True)
        if error:
            return error

        self._global_settings.reveal_delay = float(delay)
        self.logger.info(f"Reveal delay set to {delay} seconds")
        return {
            'success': True,
            'message': f"Reveal delay set to {delay} seconds",
            'user_message': f"✅ Next question follows {delay} seconds after each answer"
        }

    def set_shuffle_options(self, shuffle: bool) -> Dict[str, Any]:
        """
        Set whether answer options are shuffled before presentation.

        Args:
            shuffle: True to shuffle options

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(shuffle, bool):
            error_msg = f"Shuffle options must be a boolean, got {type(shuffle).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected true/false, got {type(shuffle).__name__}"
            }

        self._global_settings.shuffle_options = shuffle
        self.logger.info(f"Option shuffling {'enabled' if shuffle else 'disabled'}")
        return {
            'success': True,
            'message': f"Option shuffling {'enabled' if shuffle else 'disabled'}",
            'user_message': f"✅ Answer options will {'be shuffled' if shuffle else 'keep their order'}"
        }

    def apply_config_dict(self, quiz_config: Dict[str, Any]) -> List[str]:
        """
        Apply the "quiz" section of config.json.

        Invalid entries are logged and skipped so the bot still starts with defaults.

        Args:
            quiz_config: Mapping of setting names to values

        Returns:
            List of error messages for entries that were rejected
        """
        setters = {
            'default_category': self.set_category,
            'default_difficulty': self.set_difficulty,
            'default_question_count': self.set_question_count,
            'default_timer_duration': self.set_timer_duration,
            'default_grade_level': self.set_grade_level,
            'points_per_correct': self.set_points_per_correct,
            'bonus_factor': self.set_bonus_factor,
            'reveal_delay': self.set_reveal_delay,
            'shuffle_options': self.set_shuffle_options,
        }

        errors = []
        for key, value in quiz_config.items():
            setter = setters.get(key)
            if setter is None:
                self.logger.warning(f"Ignoring unknown quiz setting: {key}")
                continue
            result = setter(value)
            if not result['success']:
                errors.append(f"{key}: {result['error']}")

        if errors:
            self.logger.warning(f"Rejected {len(errors)} quiz settings from configuration file")
        return errors

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = self._default_settings()
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        settings = self._global_settings
        validation_result = {
            "valid": True,
            "issues": []
        }

        if not self.MIN_QUESTION_COUNT <= settings.question_count <= self.MAX_QUESTION_COUNT:
            validation_result["issues"].append(f"Invalid question count: {settings.question_count}")

        if not self.MIN_TIMER_DURATION <= settings.timer_duration <= self.MAX_TIMER_DURATION:
            validation_result["issues"].append(f"Invalid timer duration: {settings.timer_duration}")

        if not self.MIN_POINTS <= settings.points_per_correct <= self.MAX_POINTS:
            validation_result["issues"].append(f"Invalid points per correct: {settings.points_per_correct}")

        if not 0 <= settings.bonus_factor <= self.MAX_BONUS_FACTOR:
            validation_result["issues"].append(f"Invalid bonus factor: {settings.bonus_factor}")

        if not 0 <= settings.reveal_delay <= self.MAX_REVEAL_DELAY:
            validation_result["issues"].append(f"Invalid reveal delay: {settings.reveal_delay}")

        validation_result["valid"] = not validation_result["issues"]
        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._global_settings
        grade_str = settings.grade_level.label if settings.grade_level else "any"
        bonus_str = f"{settings.bonus_factor}/s" if settings.bonus_factor else "off"

        return (
            f"Quiz Settings:\n"
            f"• Category: {settings.category.value.replace('_', ' ')}\n"
            f"• Difficulty: {settings.difficulty.value}\n"
            f"• Grade: {grade_str}\n"
            f"• Questions: {settings.question_count}\n"
            f"• Timer: {settings.timer_duration} seconds\n"
            f"• Points: {settings.points_per_correct} per correct answer, time bonus {bonus_str}\n"
            f"• Shuffle options: {'on' if settings.shuffle_options else 'off'}"
        )
