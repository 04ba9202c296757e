"""
Test fixtures and sample data for Math Quiz Bot tests.
"""
from datetime import datetime, timedelta
from typing import List
from unittest.mock import Mock, AsyncMock

from mathquiz.models import (
    GameCategory,
    GameDifficulty,
    Question,
    ScoringRules,
    SessionConfig,
)


class TestFixtures:
    """Centralized test fixtures for all test modules."""

    @staticmethod
    def create_sample_questions(count: int = 3) -> List[Question]:
        """Create sample questions whose correct answer is always option 1."""
        return [
            Question(
                id=f"q{i}",
                prompt=f"What is {i} + {i}?",
                options=(str(i + i - 1), str(i + i), str(i + i + 1), str(i + i + 2)),
                correct_index=1,
                hint="Double the number",
                explanation=f"{i} + {i} = {i + i}",
                category=GameCategory.ADDITION,
                difficulty=GameDifficulty.EASY,
            )
            for i in range(1, count + 1)
        ]

    @staticmethod
    def create_sample_config(question_count: int = 3, time_limit: int = 10) -> SessionConfig:
        """Create sample session config for testing."""
        return SessionConfig(
            category=GameCategory.ADDITION,
            difficulty=GameDifficulty.EASY,
            question_count=question_count,
            time_limit_per_question_seconds=time_limit,
        )

    @staticmethod
    def create_scoring(points: int = 10, bonus: float = 0.0) -> ScoringRules:
        return ScoringRules(points_per_correct=points, bonus_factor=bonus)


class FakeClock:
    """Controllable clock for session timing tests."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class MockDiscordObjects:
    """Mock Discord objects for testing."""

    @staticmethod
    def create_mock_message():
        """Create mock Discord message."""
        message = Mock()
        message.id = 98765
        message.edit = AsyncMock()
        return message

    @staticmethod
    def create_mock_channel(channel_id: int = 12345):
        """Create mock Discord channel whose send returns a mock message."""
        channel = Mock()
        channel.id = channel_id
        channel.send = AsyncMock(return_value=MockDiscordObjects.create_mock_message())
        return channel

    @staticmethod
    def create_mock_interaction(channel_id: int = 12345, user_id: int = 67890):
        """Create mock Discord interaction."""
        interaction = Mock()
        interaction.channel_id = channel_id
        interaction.channel = MockDiscordObjects.create_mock_channel(channel_id)
        interaction.user = Mock()
        interaction.user.id = user_id
        interaction.response = Mock()
        interaction.response.send_message = AsyncMock()
        interaction.response.defer = AsyncMock()
        interaction.response.is_done = Mock(return_value=False)
        interaction.followup = Mock()
        interaction.followup.send = AsyncMock()
        return interaction
