"""
Unit tests for the channel-level QuizController.
"""
import asyncio
import unittest
from unittest.mock import Mock

import discord

from mathquiz.config_manager import ConfigManager
from mathquiz.models import SessionConfig, TIMEOUT_ANSWER
from mathquiz.question_generator import GenerationError, QuestionGenerator
from mathquiz.quiz_controller import QuizController, QuizStatus
from mathquiz.quiz_engine import QuizEngine
from mathquiz.views import AnswerView
from tests.test_fixtures import MockDiscordObjects, TestFixtures


CHANNEL_ID = 12345


async def wait_until(condition, timeout: float = 2.0):
    """Poll until condition() is true or fail after timeout seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.01)


class QuizControllerTestCase(unittest.IsolatedAsyncioTestCase):
    """Shared setup: 3 questions, no reveal delay, no shuffling."""

    tick_interval = 10.0

    def setUp(self):
        self.config_manager = ConfigManager()
        self.config_manager.set_question_count(3)
        self.config_manager.set_timer_duration(10)
        self.config_manager.set_reveal_delay(0)
        self.config_manager.set_shuffle_options(False)

        self.questions = TestFixtures.create_sample_questions(3)
        self.generator = Mock(spec=QuestionGenerator)
        self.generator.generate_questions.return_value = self.questions

        self.engine = QuizEngine(tick_interval=self.tick_interval)
        self.controller = QuizController(self.config_manager, self.generator, self.engine)
        self.channel = MockDiscordObjects.create_mock_channel(CHANNEL_ID)

    async def asyncTearDown(self):
        if self.controller.get_quiz(CHANNEL_ID) is not None:
            await self.controller.stop_quiz(CHANNEL_ID)

    async def answer(self, index: int):
        result = await self.controller.submit_answer(CHANNEL_ID, index, user_id=1)
        quiz = self.controller.get_quiz(CHANNEL_ID)
        if result.get('accepted') and quiz.reveal_task is not None:
            await quiz.reveal_task
        return result


class TestStartQuiz(QuizControllerTestCase):
    """Test cases for starting quizzes."""

    async def test_start_quiz_posts_first_question(self):
        result = await self.controller.start_quiz(CHANNEL_ID, self.channel)

        self.assertTrue(result['success'])
        self.assertEqual(result['total_questions'], 3)
        self.assertEqual(self.controller.get_status(CHANNEL_ID), QuizStatus.ACTIVE)
        self.assertTrue(self.engine.has_timer(str(CHANNEL_ID)))

        self.channel.send.assert_awaited_once()
        kwargs = self.channel.send.call_args.kwargs
        self.assertIn("What is 1 + 1?", kwargs['embed'].description)
        self.assertIsInstance(kwargs['view'], AnswerView)
        self.assertEqual(len(kwargs['view'].children), 4)

        config = self.config_manager.get_session_config()
        self.generator.generate_questions.assert_called_once_with(
            config.category, config.difficulty, 3, None
        )

    async def test_start_quiz_conflict(self):
        await self.controller.start_quiz(CHANNEL_ID, self.channel)

        result = await self.controller.start_quiz(CHANNEL_ID, self.channel)

        self.assertFalse(result['success'])
        self.assertIn("already running", result['error'])

    async def test_start_quiz_generation_error(self):
        self.generator.generate_questions.side_effect = GenerationError("provider down")

        result = await self.controller.start_quiz(CHANNEL_ID, self.channel)

        self.assertFalse(result['success'])
        self.assertEqual(self.controller.get_status(CHANNEL_ID), QuizStatus.INACTIVE)
        self.channel.send.assert_not_awaited()

    async def test_start_quiz_empty_question_set(self):
        self.generator.generate_questions.return_value = []

        result = await self.controller.start_quiz(CHANNEL_ID, self.channel)

        self.assertFalse(result['success'])
        self.assertIsNone(self.controller.get_quiz(CHANNEL_ID))

    async def test_start_quiz_survives_send_failure(self):
        """Test that a failed post still leaves the quiz running."""
        self.channel.send.side_effect = discord.HTTPException(Mock(status=500), "server error")

        result = await self.controller.start_quiz(CHANNEL_ID, self.channel)

        self.assertTrue(result['success'])
        self.assertIsNone(self.controller.get_quiz(CHANNEL_ID).message)
        self.assertTrue(self.engine.has_timer(str(CHANNEL_ID)))


class TestAnswerFlow(QuizControllerTestCase):
    """Test cases for answering and advancing."""

    async def asyncSetUp(self):
        await self.controller.start_quiz(CHANNEL_ID, self.channel)

    async def test_correct_answer_advances(self):
        result = await self.answer(1)

        self.assertTrue(result['accepted'])
        self.assertTrue(result['correct'])
        quiz = self.controller.get_quiz(CHANNEL_ID)
        self.assertEqual(quiz.state.current_index, 1)
        self.assertEqual(quiz.state.score, 10)
        self.assertEqual(self.channel.send.await_count, 2)

        # The resolved question was edited to show the answer
        reveal_embed = quiz.message.edit.call_args_list[0].kwargs['embed']
        self.assertIn("Correct", reveal_embed.title)

    async def test_second_tap_is_not_accepted(self):
        first = await self.controller.submit_answer(CHANNEL_ID, 0, user_id=1)
        second = await self.controller.submit_answer(CHANNEL_ID, 1, user_id=2)

        self.assertTrue(first['accepted'])
        self.assertFalse(first['correct'])
        self.assertFalse(second['accepted'])

        await self.controller.get_quiz(CHANNEL_ID).reveal_task
        state = self.controller.get_quiz(CHANNEL_ID).state
        self.assertEqual(state.answer_history, [False])
        self.assertEqual(state.score, 0)

    async def test_full_quiz_sends_summary(self):
        for index in (1, 0, 1):
            await self.answer(index)

        self.assertEqual(self.controller.get_status(CHANNEL_ID), QuizStatus.COMPLETED)
        self.assertFalse(self.controller.has_active_session(CHANNEL_ID))

        summary = self.channel.send.call_args.kwargs['embed']
        self.assertEqual(summary.title, "🎉 Quiz Complete!")

        results = self.controller.get_results(CHANNEL_ID)
        self.assertEqual(results.correct_answers, 2)
        self.assertEqual(results.best_streak, 1)
        self.assertEqual(results.score, 20)

    async def test_restart_after_completion(self):
        for _ in range(3):
            await self.answer(1)

        result = await self.controller.start_quiz(CHANNEL_ID, self.channel)

        self.assertTrue(result['success'])
        self.assertEqual(self.controller.get_quiz(CHANNEL_ID).state.score, 0)

    async def test_answer_interaction_acknowledges_privately(self):
        interaction = MockDiscordObjects.create_mock_interaction(CHANNEL_ID)

        await self.controller.handle_answer_interaction(CHANNEL_ID, interaction, 1)

        interaction.response.send_message.assert_awaited_once_with("✅ Correct!", ephemeral=True)
        await self.controller.get_quiz(CHANNEL_ID).reveal_task

    async def test_submit_without_quiz(self):
        result = await self.controller.submit_answer(999, 0)

        self.assertFalse(result['success'])
        self.assertIn("No active quiz", result['error'])


class TestPauseResumeStop(QuizControllerTestCase):
    """Test cases for quiz controls."""

    async def asyncSetUp(self):
        await self.controller.start_quiz(CHANNEL_ID, self.channel)

    async def test_pause_blocks_answers(self):
        result = self.controller.pause_quiz(CHANNEL_ID)

        self.assertTrue(result['success'])
        self.assertEqual(self.controller.get_status(CHANNEL_ID), QuizStatus.PAUSED)
        self.assertTrue(self.engine.get_timer_status(str(CHANNEL_ID))['is_paused'])

        answer = await self.controller.submit_answer(CHANNEL_ID, 1)
        self.assertFalse(answer['accepted'])

        await self.controller.resume_quiz(CHANNEL_ID)
        self.assertEqual(self.controller.get_status(CHANNEL_ID), QuizStatus.ACTIVE)
        self.assertFalse(self.engine.get_timer_status(str(CHANNEL_ID))['is_paused'])

    async def test_pause_during_reveal_defers_advance(self):
        """Test that a pause after answering holds the next question until resume."""
        await self.controller.submit_answer(CHANNEL_ID, 1)
        self.controller.pause_quiz(CHANNEL_ID)

        quiz = self.controller.get_quiz(CHANNEL_ID)
        await quiz.reveal_task

        self.assertTrue(quiz.advance_pending)
        self.assertEqual(quiz.state.current_index, 0)

        await self.controller.resume_quiz(CHANNEL_ID)

        self.assertFalse(quiz.advance_pending)
        self.assertEqual(quiz.state.current_index, 1)
        self.assertEqual(self.channel.send.await_count, 2)

    async def test_resume_within_reveal_keeps_answer_shown(self):
        """Test that pausing and resuming during the reveal leaves the revealed answer in place."""
        quiz = self.controller.get_quiz(CHANNEL_ID)
        quiz.reveal_delay = 0.3
        message = quiz.message

        await self.controller.submit_answer(CHANNEL_ID, 1)
        await wait_until(lambda: message.edit.await_count == 1)

        self.controller.pause_quiz(CHANNEL_ID)
        await self.controller.resume_quiz(CHANNEL_ID)

        self.assertEqual(message.edit.await_count, 1)
        embed = message.edit.call_args.kwargs['embed']
        self.assertIn("Correct", embed.title)
        self.assertFalse(embed.title.startswith("🎯 Question"))

        await quiz.reveal_task
        self.assertFalse(quiz.advance_pending)
        self.assertEqual(quiz.state.current_index, 1)
        self.assertEqual(self.channel.send.await_count, 2)

    async def test_stop_quiz(self):
        result = await self.controller.stop_quiz(CHANNEL_ID)

        self.assertTrue(result['success'])
        self.assertIn("0/3", result['user_message'])
        self.assertEqual(self.controller.get_status(CHANNEL_ID), QuizStatus.INACTIVE)
        self.assertFalse(self.engine.has_timer(str(CHANNEL_ID)))

    async def test_stop_during_reveal_does_not_advance(self):
        await self.controller.submit_answer(CHANNEL_ID, 1)
        quiz = self.controller.get_quiz(CHANNEL_ID)

        await self.controller.stop_quiz(CHANNEL_ID)
        await asyncio.gather(quiz.reveal_task, return_exceptions=True)

        self.assertEqual(quiz.state.current_index, 0)
        self.assertEqual(self.channel.send.await_count, 1)

    async def test_controls_without_quiz(self):
        self.assertFalse(self.controller.pause_quiz(999)['success'])
        self.assertFalse((await self.controller.resume_quiz(999))['success'])
        self.assertFalse((await self.controller.stop_quiz(999))['success'])
        self.assertFalse(self.controller.get_hint(999)['success'])

    async def test_get_hint(self):
        result = self.controller.get_hint(CHANNEL_ID)

        self.assertTrue(result['success'])
        self.assertEqual(result['hint'], "Double the number")

    async def test_session_progress_and_summary(self):
        await self.answer(1)

        progress = self.controller.get_session_progress(CHANNEL_ID)

        self.assertEqual(progress['status'], 'active')
        self.assertEqual(progress['current_question'], 2)
        self.assertEqual(progress['answered'], 1)
        self.assertEqual(progress['correct'], 1)
        self.assertEqual(progress['score'], 10)
        self.assertEqual(progress['settings']['question_count'], 3)
        self.assertIn("question 2/3", self.controller.get_session_status_summary(CHANNEL_ID))

    async def test_status_summary_without_quiz(self):
        self.assertIn("/start", self.controller.get_session_status_summary(999))


class TestApplyConfig(QuizControllerTestCase):
    """Test cases for configuration changes reaching channel controllers."""

    async def test_change_during_quiz_is_deferred_until_stop(self):
        await self.controller.start_quiz(CHANNEL_ID, self.channel)
        new_config = SessionConfig(question_count=5, time_limit_per_question_seconds=20)

        applied = self.controller.apply_config(new_config)

        self.assertEqual(applied, {CHANNEL_ID: False})
        quiz = self.controller.get_quiz(CHANNEL_ID)
        self.assertEqual(quiz.state.config.question_count, 3)

        await self.controller.stop_quiz(CHANNEL_ID)

        self.assertEqual(quiz.controller.config, new_config)
        self.assertIsNone(quiz.controller.pending_config)

    async def test_change_between_quizzes_applies_immediately(self):
        await self.controller.start_quiz(CHANNEL_ID, self.channel)
        for _ in range(3):
            await self.answer(1)

        self.config_manager.set_question_count(2)
        applied = self.controller.apply_config(self.config_manager.get_session_config())

        self.assertEqual(applied, {CHANNEL_ID: True})
        self.generator.generate_questions.return_value = self.questions[:2]
        await self.controller.start_quiz(CHANNEL_ID, self.channel)
        self.assertEqual(self.controller.get_quiz(CHANNEL_ID).state.config.question_count, 2)


class TestTimeout(QuizControllerTestCase):
    """Test cases for the countdown resolving questions."""

    tick_interval = 0.01

    def setUp(self):
        super().setUp()
        self.config_manager.set_timer_duration(5)

    async def test_unanswered_questions_time_out(self):
        await self.controller.start_quiz(CHANNEL_ID, self.channel)

        await wait_until(lambda: self.controller.get_status(CHANNEL_ID) == QuizStatus.COMPLETED)

        state = self.controller.get_quiz(CHANNEL_ID).state
        self.assertEqual(state.answer_history, [False, False, False])
        self.assertEqual(state.selected_answer_index, TIMEOUT_ANSWER)
        self.assertEqual(self.controller.get_results(CHANNEL_ID).correct_answers, 0)

        embed_titles = [
            call.kwargs['embed'].title
            for call in self.controller.get_quiz(CHANNEL_ID).message.edit.call_args_list
        ]
        self.assertTrue(any("Time's Up" in title for title in embed_titles))


if __name__ == '__main__':
    unittest.main()
