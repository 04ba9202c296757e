"""
Unit tests for the math question generator.
"""
import random
import unittest
from fractions import Fraction

from mathquiz.models import GameCategory, GameDifficulty, GradeLevel
from mathquiz.question_generator import (
    GenerationError,
    OPTION_COUNT,
    QuestionGenerator,
    generate_questions,
    suggested_time_limit,
)


class TestQuestionGenerator(unittest.TestCase):
    """Test cases for QuestionGenerator."""

    def setUp(self):
        self.generator = QuestionGenerator(rng=random.Random(1234))

    def test_generates_requested_count(self):
        questions = self.generator.generate_questions(GameCategory.ADDITION, GameDifficulty.NORMAL, 7)

        self.assertEqual(len(questions), 7)

    def test_every_category_produces_valid_questions(self):
        """Test that each category yields four distinct options including the answer."""
        for category in GameCategory:
            for difficulty in GameDifficulty:
                with self.subTest(category=category, difficulty=difficulty):
                    questions = self.generator.generate_questions(category, difficulty, 5)
                    for question in questions:
                        self.assertEqual(len(question.options), OPTION_COUNT)
                        self.assertEqual(len(set(question.options)), OPTION_COUNT)
                        self.assertTrue(0 <= question.correct_index < OPTION_COUNT)
                        self.assertTrue(question.prompt)
                        self.assertTrue(question.hint)
                        self.assertTrue(question.explanation)

    def test_arithmetic_answers_are_correct(self):
        """Test that the correct option actually solves the prompt."""
        questions = self.generator.generate_questions(GameCategory.MULTIPLICATION, GameDifficulty.NORMAL, 20)

        for question in questions:
            left, right = question.prompt[len("What is "):-1].split(" × ")
            self.assertEqual(int(question.correct_option), int(left) * int(right))

    def test_division_has_whole_answers(self):
        questions = self.generator.generate_questions(GameCategory.DIVISION, GameDifficulty.GENIUS, 20)

        for question in questions:
            dividend, divisor = question.prompt[len("What is "):-1].split(" ÷ ")
            self.assertEqual(int(dividend) % int(divisor), 0)
            self.assertEqual(int(question.correct_option), int(dividend) // int(divisor))

    def test_fraction_answers_are_simplified(self):
        questions = self.generator.generate_questions(GameCategory.FRACTIONS, GameDifficulty.NORMAL, 20)

        for question in questions:
            value = Fraction(question.correct_option)
            self.assertEqual(question.correct_option, str(value))

    def test_wrong_options_are_positive(self):
        questions = self.generator.generate_questions(GameCategory.SUBTRACTION, GameDifficulty.EASY, 20)

        for question in questions:
            for option in question.options:
                self.assertGreater(int(option), 0)

    def test_grade_ranges(self):
        """Test that young grades get small numbers."""
        questions = self.generator.generate_questions(
            GameCategory.ADDITION, GameDifficulty.NORMAL, 20, GradeLevel.KINDERGARTEN
        )

        for question in questions:
            self.assertLessEqual(int(question.correct_option), 10)
            self.assertEqual(question.grade_level, GradeLevel.KINDERGARTEN)
            self.assertIn("apples", question.prompt)

    def test_default_grade(self):
        questions = self.generator.generate_questions(GameCategory.ADDITION, GameDifficulty.NORMAL, 1)

        self.assertEqual(questions[0].grade_level, GradeLevel.GRADE_3)

    def test_mixed_uses_concrete_categories(self):
        questions = self.generator.generate_questions(GameCategory.MIXED, GameDifficulty.NORMAL, 30)

        categories = {question.category for question in questions}
        self.assertNotIn(GameCategory.MIXED, categories)
        self.assertGreater(len(categories), 1)

    def test_zero_count_returns_empty(self):
        self.assertEqual(self.generator.generate_questions(GameCategory.ADDITION, GameDifficulty.NORMAL, 0), [])

    def test_unsupported_category_raises(self):
        with self.assertRaises(GenerationError):
            self.generator.generate_questions("calculus", GameDifficulty.NORMAL, 3)

    def test_unsupported_difficulty_raises(self):
        with self.assertRaises(GenerationError):
            self.generator.generate_questions(GameCategory.ADDITION, "impossible", 3)

    def test_builder_failure_is_wrapped(self):
        """Test that unexpected errors surface as GenerationError."""
        def broken(grade, scale):
            raise RuntimeError("boom")

        self.generator._builders[GameCategory.ALGEBRA] = broken

        with self.assertRaises(GenerationError):
            self.generator.generate_questions(GameCategory.ALGEBRA, GameDifficulty.NORMAL, 2)

    def test_seeded_generators_match(self):
        first = QuestionGenerator(rng=random.Random(7)).generate_questions(
            GameCategory.PATTERNS, GameDifficulty.NORMAL, 5
        )
        second = QuestionGenerator(rng=random.Random(7)).generate_questions(
            GameCategory.PATTERNS, GameDifficulty.NORMAL, 5
        )

        self.assertEqual([q.prompt for q in first], [q.prompt for q in second])
        self.assertEqual([q.options for q in first], [q.options for q in second])

    def test_module_level_generate_questions(self):
        questions = generate_questions(GameCategory.GEOMETRY, GameDifficulty.EASY, 3)

        self.assertEqual(len(questions), 3)


class TestSuggestedTimeLimit(unittest.TestCase):
    """Test cases for grade-based time limits."""

    def test_limits_by_grade(self):
        self.assertEqual(suggested_time_limit(GradeLevel.PRE_K), 45)
        self.assertEqual(suggested_time_limit(GradeLevel.GRADE_1), 40)
        self.assertEqual(suggested_time_limit(GradeLevel.GRADE_4), 35)
        self.assertEqual(suggested_time_limit(GradeLevel.GRADE_6), 30)
        self.assertEqual(suggested_time_limit(GradeLevel.GRADE_12), 25)
        self.assertEqual(suggested_time_limit(None), 30)


if __name__ == '__main__':
    unittest.main()
