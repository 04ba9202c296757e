"""
Quiz controller for the Math Quiz Bot.
Runs at most one quiz per Discord channel on top of the session state machine.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import discord

from .config_manager import ConfigManager
from .models import Question, SessionConfig, SessionResults, SessionState, TIMEOUT_ANSWER
from .question_generator import GenerationError, QuestionGenerator
from .quiz_engine import QuizEngine
from .session_controller import EmptyQuestionSet, QuizSessionController
from .views import AnswerView, option_label


class QuizStatus(Enum):
    """Status of the quiz in a channel, as shown to users."""
    INACTIVE = "inactive"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class SessionConflictError(QuizControllerError):
    """Raised when a quiz is already running in the channel."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when attempting to operate on a channel without a quiz."""
    pass


@dataclass
class ChannelQuiz:
    """A quiz attempt running in one Discord channel."""
    channel_id: int
    channel: Any
    controller: QuizSessionController
    state: SessionState
    reveal_delay: float
    message: Optional[discord.Message] = None
    view: Optional[AnswerView] = None
    is_paused: bool = False
    advance_pending: bool = False
    reveal_task: Optional[asyncio.Task] = None


class QuizController:
    """
    Orchestrates quiz sessions across Discord channels.

    Fetches questions, presents them with answer buttons, drives the
    per-question countdown and forwards answers to each channel's
    QuizSessionController. Each channel can have at most one running quiz.
    """

    # Countdown edits happen every this many seconds, plus every second at the end
    COUNTDOWN_EDIT_INTERVAL = 5
    COUNTDOWN_FINAL_SECONDS = 5

    def __init__(
        self,
        config_manager: ConfigManager,
        question_generator: Optional[QuestionGenerator] = None,
        quiz_engine: Optional[QuizEngine] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            config_manager: Source of quiz settings
            question_generator: Question supplier, a default generator if None
            quiz_engine: Timer and shuffling engine, a default engine if None
        """
        self.logger = logging.getLogger(__name__)
        self.config_manager = config_manager
        self.question_generator = question_generator or QuestionGenerator()
        self.quiz_engine = quiz_engine or QuizEngine()

        # Quiz attempts and their session controllers mapped by channel ID
        self._quizzes: Dict[int, ChannelQuiz] = {}
        self._controllers: Dict[int, QuizSessionController] = {}

        self.logger.info("QuizController initialized")

    def _get_controller(self, channel_id: int) -> QuizSessionController:
        controller = self._controllers.get(channel_id)
        if controller is None:
            controller = QuizSessionController(
                config=self.config_manager.get_session_config(),
                scoring=self.config_manager.get_scoring_rules(),
            )
            self._controllers[channel_id] = controller
        return controller

    def get_quiz(self, channel_id: int) -> Optional[ChannelQuiz]:
        return self._quizzes.get(channel_id)

    def has_active_session(self, channel_id: int) -> bool:
        """
        Check if a channel has a quiz that has not finished yet.

        Args:
            channel_id: Discord channel identifier

        Returns:
            True if a quiz is in progress, False otherwise
        """
        quiz = self._quizzes.get(channel_id)
        return quiz is not None and not quiz.state.is_terminal

    def _require_active_quiz(self, channel_id: int) -> ChannelQuiz:
        if not self.has_active_session(channel_id):
            raise SessionNotFoundError(f"No active quiz in channel {channel_id}")
        return self._quizzes[channel_id]

    def _error_result(self, error: QuizControllerError) -> Dict[str, Any]:
        """
        Convert a controller error into a result dictionary.

        Args:
            error: The error raised by a quiz operation

        Returns:
            Dictionary with failure status and user-facing message
        """
        self.logger.warning(f"Quiz operation rejected: {error}")
        if isinstance(error, SessionConflictError):
            user_message = "❌ A quiz is already running in this channel. Use `/stop` to end it first."
        else:
            user_message = "❌ There is no quiz running in this channel. Start one with `/start`."
        return {
            'success': False,
            'error': str(error),
            'user_message': user_message
        }

    def get_status(self, channel_id: int) -> QuizStatus:
        quiz = self._quizzes.get(channel_id)
        if quiz is None:
            return QuizStatus.INACTIVE
        if quiz.state.is_terminal:
            return QuizStatus.COMPLETED
        if quiz.is_paused:
            return QuizStatus.PAUSED
        return QuizStatus.ACTIVE

    async def start_quiz(self, channel_id: int, channel) -> Dict[str, Any]:
        """
        Generate questions and start a quiz in a channel.

        Args:
            channel_id: Discord channel identifier
            channel: Discord channel to post questions to

        Returns:
            Dictionary with success status and user-facing message
        """
        try:
            if self.has_active_session(channel_id):
                raise SessionConflictError(f"Quiz already running in channel {channel_id}")
        except QuizControllerError as e:
            return self._error_result(e)

        controller = self._get_controller(channel_id)
        controller.scoring = self.config_manager.get_scoring_rules()
        config = controller.config
        settings = self.config_manager.get_quiz_settings()

        try:
            questions = self.question_generator.generate_questions(
                config.category, config.difficulty, config.question_count, config.grade_level
            )
            questions = self.quiz_engine.prepare_questions(questions, settings.shuffle_options)
            state = controller.start_session(config, questions)
        except GenerationError as e:
            self.logger.error(f"Question generation failed for channel {channel_id}: {e}")
            return {
                'success': False,
                'error': str(e),
                'user_message': "❌ Could not generate questions right now. Please try `/start` again."
            }
        except EmptyQuestionSet as e:
            self.logger.error(f"No questions for channel {channel_id}: {e}")
            return {
                'success': False,
                'error': str(e),
                'user_message': "❌ No questions were available for these settings. Please try `/start` again."
            }

        # Discard whatever was left from the previous attempt
        previous = self._quizzes.pop(channel_id, None)
        if previous is not None and previous.reveal_task and not previous.reveal_task.done():
            previous.reveal_task.cancel()

        self._quizzes[channel_id] = ChannelQuiz(
            channel_id=channel_id,
            channel=channel,
            controller=controller,
            state=state,
            reveal_delay=settings.reveal_delay,
        )

        self.logger.info(
            f"Started quiz in channel {channel_id}: {config.category.value}, {len(questions)} questions",
            extra={
                'event_type': 'quiz_started',
                'channel_id': channel_id,
                'question_count': len(questions),
                'timestamp': time.time()
            }
        )

        await self.present_question(channel_id)
        return {
            'success': True,
            'total_questions': len(questions),
            'message': f"Quiz started with {len(questions)} questions",
            'user_message': (
                f"🎯 Starting a **{config.category.value.replace('_', ' ')}** quiz "
                f"({config.difficulty.value}) with {len(questions)} questions!"
            )
        }

    async def present_question(self, channel_id: int) -> Optional[discord.Message]:
        """
        Post the current question with answer buttons and start its countdown.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Discord message object if the question was posted, None otherwise
        """
        quiz = self._quizzes.get(channel_id)
        if quiz is None or quiz.state.is_terminal:
            return None

        question = quiz.controller.current_question(quiz.state)
        quiz.view = AnswerView(
            question.options,
            lambda interaction, index: self.handle_answer_interaction(channel_id, interaction, index)
        )
        quiz.message = None

        try:
            quiz.message = await quiz.channel.send(
                embed=self._build_question_embed(quiz, question),
                view=quiz.view
            )
        except discord.HTTPException as e:
            self.logger.error(f"Discord HTTP error sending question for channel {channel_id}: {e}")

        # The countdown runs even without a message so the quiz never stalls
        self.quiz_engine.start_question_timer(str(channel_id), lambda: self.handle_tick(channel_id))
        return quiz.message

    async def handle_tick(self, channel_id: int) -> bool:
        """
        Count one second on the current question.

        Args:
            channel_id: Discord channel identifier

        Returns:
            True while the countdown should keep running
        """
        quiz = self._quizzes.get(channel_id)
        if quiz is None or quiz.state.is_terminal or quiz.state.answer_locked:
            return False

        state = quiz.controller.tick(quiz.state)
        if state.answer_locked:
            self._schedule_reveal(quiz)
            return False

        remaining = state.time_remaining
        if remaining % self.COUNTDOWN_EDIT_INTERVAL == 0 or remaining <= self.COUNTDOWN_FINAL_SECONDS:
            await self._update_countdown(quiz)
        return True

    async def submit_answer(self, channel_id: int, answer_index: int, user_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Submit an answer for the current question in a channel.

        Args:
            channel_id: Discord channel identifier
            answer_index: Index of the chosen option
            user_id: Discord user who answered

        Returns:
            Dictionary with success/accepted flags and user-facing message
        """
        try:
            quiz = self._require_active_quiz(channel_id)
        except SessionNotFoundError as e:
            return {**self._error_result(e), 'accepted': False}

        if quiz.is_paused:
            return {
                'success': True,
                'accepted': False,
                'user_message': "⏸️ The quiz is paused. Use `/resume` to continue."
            }

        already_resolved = quiz.state.answer_locked
        state = quiz.controller.submit_answer(quiz.state, answer_index)
        if already_resolved:
            return {
                'success': True,
                'accepted': False,
                'user_message': "⏱️ This question has already been answered."
            }

        self.quiz_engine.cancel_timer(str(channel_id))
        is_correct = state.answer_history[-1]

        self.logger.info(
            f"Answer {answer_index} from user {user_id} in channel {channel_id}: "
            f"{'correct' if is_correct else 'incorrect'}",
            extra={
                'event_type': 'answer_accepted',
                'channel_id': channel_id,
                'user_id': user_id,
                'is_correct': is_correct,
                'timestamp': time.time()
            }
        )

        self._schedule_reveal(quiz)
        return {
            'success': True,
            'accepted': True,
            'correct': is_correct,
            'user_message': "✅ Correct!" if is_correct else "❌ Not quite!"
        }

    async def handle_answer_interaction(self, channel_id: int, interaction: discord.Interaction, answer_index: int):
        """Forward an answer button click and acknowledge it privately."""
        result = await self.submit_answer(channel_id, answer_index, getattr(interaction.user, 'id', None))
        try:
            await interaction.response.send_message(result['user_message'], ephemeral=True)
        except discord.HTTPException as e:
            self.logger.error(f"Failed to acknowledge answer in channel {channel_id}: {e}")

    def _schedule_reveal(self, quiz: ChannelQuiz) -> None:
        quiz.reveal_task = asyncio.create_task(self._reveal_and_advance(quiz))

    async def _reveal_and_advance(self, quiz: ChannelQuiz) -> None:
        """
        Show the resolved question, wait the reveal delay, then move on.

        Args:
            quiz: Channel quiz whose current question was just resolved
        """
        question = quiz.controller.current_question(quiz.state)
        await self._reveal_answer(quiz, question)
        await asyncio.sleep(quiz.reveal_delay)

        # Stopped or restarted while we were waiting
        if self._quizzes.get(quiz.channel_id) is not quiz:
            return

        if quiz.is_paused:
            quiz.advance_pending = True
            return

        await self._advance(quiz)

    async def _advance(self, quiz: ChannelQuiz) -> None:
        quiz.advance_pending = False
        state = quiz.controller.advance(quiz.state)

        if state.is_terminal:
            await self._send_completion_summary(quiz)
        else:
            await self.present_question(quiz.channel_id)

    def _build_question_embed(self, quiz: ChannelQuiz, question: Question) -> discord.Embed:
        state = quiz.state
        remaining = state.time_remaining

        if remaining > 10:
            color, timer_emoji = 0x00ff00, "⏱️"
        elif remaining > 5:
            color, timer_emoji = 0xff6600, "⚠️"
        else:
            color, timer_emoji = 0xff0000, "🚨"

        embed = discord.Embed(
            title=f"🎯 Question {state.current_index + 1}/{state.total_questions}",
            description=question.prompt,
            color=color
        )
        embed.add_field(
            name=f"{timer_emoji} Time Remaining",
            value=f"{remaining} second{'s' if remaining != 1 else ''}",
            inline=True
        )
        embed.add_field(name="⭐ Score", value=str(state.score), inline=True)
        embed.add_field(name="🔥 Streak", value=str(state.streak), inline=True)
        if quiz.is_paused:
            embed.set_footer(text="⏸️ Paused - use /resume to continue")
        else:
            embed.set_footer(text="Tap an answer below. Use /hint if you are stuck!")
        return embed

    async def _update_countdown(self, quiz: ChannelQuiz) -> None:
        if quiz.message is None:
            return
        question = quiz.controller.current_question(quiz.state)
        try:
            await quiz.message.edit(embed=self._build_question_embed(quiz, question))
        except discord.HTTPException as e:
            # Don't raise to avoid breaking the timer
            self.logger.warning(f"Failed to update countdown for channel {quiz.channel_id}: {e}")

    async def _reveal_answer(self, quiz: ChannelQuiz, question: Question) -> None:
        state = quiz.state
        selected = state.selected_answer_index
        is_correct = bool(state.answer_history) and state.answer_history[-1]

        if selected == TIMEOUT_ANSWER:
            title, color = "⏰ Time's Up!", 0xff0000
        elif is_correct:
            title, color = "✅ Correct!", 0x00ff00
        else:
            title, color = "❌ Incorrect", 0xff6600

        embed = discord.Embed(
            title=f"{title} - Question {state.current_index + 1}/{state.total_questions}",
            description=question.prompt,
            color=color
        )
        embed.add_field(
            name="✅ Correct Answer",
            value=f"**{option_label(question.correct_index)}) {question.correct_option}**",
            inline=False
        )
        if question.explanation:
            embed.add_field(name="💡 Explanation", value=question.explanation, inline=False)
        embed.add_field(name="⭐ Score", value=str(state.score), inline=True)
        embed.add_field(name="🔥 Streak", value=str(state.streak), inline=True)

        if state.current_index + 1 >= state.total_questions:
            embed.set_footer(text="That was the final question!")
        else:
            embed.set_footer(text="Next question coming up...")

        if quiz.view is not None:
            quiz.view.disable_all()
            quiz.view.stop()

        if quiz.message is None:
            return
        try:
            await quiz.message.edit(embed=embed, view=quiz.view)
        except discord.HTTPException as e:
            self.logger.error(f"Failed to reveal answer for channel {quiz.channel_id}: {e}")

    async def _send_completion_summary(self, quiz: ChannelQuiz) -> None:
        """
        Send a completion summary when the quiz ends.

        Args:
            quiz: Finished channel quiz
        """
        results = quiz.controller.compute_results(quiz.state)
        config = quiz.state.config

        if results.accuracy >= 0.9:
            verdict = "🏆 Outstanding!"
        elif results.accuracy >= 0.7:
            verdict = "🌟 Great job!"
        elif results.accuracy >= 0.5:
            verdict = "👍 Good effort!"
        else:
            verdict = "💪 Keep practicing!"

        embed = discord.Embed(
            title="🎉 Quiz Complete!",
            description=f"{verdict} You finished the **{config.category.value.replace('_', ' ')}** quiz.",
            color=0x00ff00
        )
        minutes, seconds = divmod(int(results.elapsed_seconds), 60)
        embed.add_field(
            name="📊 Final Statistics",
            value=(
                f"Correct Answers: {results.correct_answers}/{results.total_questions}\n"
                f"Accuracy: {results.accuracy:.0%}\n"
                f"Score: {results.score}\n"
                f"Best Streak: {results.best_streak}\n"
                f"Total Time: {minutes}m {seconds}s"
            ),
            inline=False
        )
        embed.add_field(
            name="🎯 Play Again",
            value="Use `/start` to begin a new quiz",
            inline=False
        )
        embed.set_footer(text="Thanks for playing!")

        try:
            await quiz.channel.send(embed=embed)
        except discord.HTTPException as e:
            self.logger.error(f"Failed to send completion summary for channel {quiz.channel_id}: {e}")

    def pause_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Pause the running quiz in a channel.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Dictionary with success status and user-facing message
        """
        try:
            quiz = self._require_active_quiz(channel_id)
        except SessionNotFoundError as e:
            return self._error_result(e)

        if quiz.is_paused:
            return {'success': True, 'user_message': "⏸️ The quiz is already paused."}

        quiz.is_paused = True
        timer_paused = self.quiz_engine.pause_timer(str(channel_id))
        self.logger.info(
            f"Paused quiz in channel {channel_id}, timer paused: {timer_paused}",
            extra={
                'event_type': 'session_paused',
                'channel_id': channel_id,
                'timer_paused': timer_paused,
                'timestamp': time.time()
            }
        )
        return {'success': True, 'user_message': "⏸️ Quiz paused. Use `/resume` to continue."}

    async def resume_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Resume a paused quiz in a channel.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Dictionary with success status and user-facing message
        """
        try:
            quiz = self._require_active_quiz(channel_id)
        except SessionNotFoundError as e:
            return self._error_result(e)

        if not quiz.is_paused:
            return {'success': True, 'user_message': "▶️ The quiz is not paused."}

        quiz.is_paused = False
        timer_resumed = self.quiz_engine.resume_timer(str(channel_id))
        self.logger.info(
            f"Resumed quiz in channel {channel_id}, timer resumed: {timer_resumed}",
            extra={
                'event_type': 'session_resumed',
                'channel_id': channel_id,
                'timer_resumed': timer_resumed,
                'timestamp': time.time()
            }
        )

        if quiz.advance_pending:
            await self._advance(quiz)
        elif not quiz.state.answer_locked:
            # Inside the reveal delay the message still shows the answer
            await self._update_countdown(quiz)
        return {'success': True, 'user_message': "▶️ Quiz resumed!"}

    async def stop_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Stop and discard the quiz in a channel.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Dictionary with success status and user-facing message
        """
        try:
            quiz = self._quizzes.pop(channel_id, None)
            if quiz is None:
                raise SessionNotFoundError(f"No quiz to stop in channel {channel_id}")
        except SessionNotFoundError as e:
            return self._error_result(e)

        timer_cancelled = self.quiz_engine.cancel_timer(str(channel_id))
        if quiz.reveal_task and not quiz.reveal_task.done():
            quiz.reveal_task.cancel()
        if quiz.view is not None:
            quiz.view.stop()

        # A stopped quiz never reaches its end, so release any deferred config now
        controller = quiz.controller
        if controller.pending_config is not None:
            controller.apply_config(None, controller.pending_config)

        answered = len(quiz.state.answer_history)
        self.logger.info(
            f"Stopped quiz in channel {channel_id}, timer cancelled: {timer_cancelled}",
            extra={
                'event_type': 'session_stopped',
                'channel_id': channel_id,
                'timer_cancelled': timer_cancelled,
                'timestamp': time.time()
            }
        )
        return {
            'success': True,
            'user_message': (
                f"🛑 Quiz stopped after {answered}/{quiz.state.total_questions} questions "
                f"with a score of {quiz.state.score}."
            )
        }

    def get_hint(self, channel_id: int) -> Dict[str, Any]:
        """
        Get the hint for the current question.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Dictionary with success status and user-facing message
        """
        try:
            quiz = self._require_active_quiz(channel_id)
        except SessionNotFoundError as e:
            return self._error_result(e)

        question = quiz.controller.current_question(quiz.state)
        if not question.hint:
            return {'success': True, 'user_message': "🤔 No hint for this one. You've got this!"}
        return {'success': True, 'hint': question.hint, 'user_message': f"💡 Hint: {question.hint}"}

    def get_results(self, channel_id: int) -> Optional[SessionResults]:
        quiz = self._quizzes.get(channel_id)
        if quiz is None or not quiz.state.is_terminal:
            return None
        return quiz.controller.compute_results(quiz.state)

    def get_session_progress(self, channel_id: int) -> Optional[Dict[str, Any]]:
        """
        Get progress information for a channel's quiz.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Dictionary with progress info, None if the channel has no quiz
        """
        quiz = self._quizzes.get(channel_id)
        if quiz is None:
            return None

        state = quiz.state
        config = state.config
        return {
            'status': self.get_status(channel_id).value,
            'current_question': min(state.current_index + 1, state.total_questions),
            'total_questions': state.total_questions,
            'answered': len(state.answer_history),
            'correct': sum(1 for answer in state.answer_history if answer),
            'score': state.score,
            'streak': state.streak,
            'best_streak': state.best_streak,
            'time_remaining': state.time_remaining,
            'start_time': state.started_at,
            'settings': {
                'category': config.category.value,
                'difficulty': config.difficulty.value,
                'grade_level': config.grade_level.label if config.grade_level else None,
                'question_count': config.question_count,
                'time_limit': config.time_limit_per_question_seconds,
            }
        }

    def get_session_status_summary(self, channel_id: int) -> str:
        """
        Get a human-readable status line for a channel.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Status summary text
        """
        progress = self.get_session_progress(channel_id)
        if progress is None:
            return "No quiz in this channel. Use /start to begin one."

        status = progress['status']
        if status == QuizStatus.COMPLETED.value:
            return (
                f"Quiz completed: {progress['correct']}/{progress['total_questions']} correct, "
                f"score {progress['score']}, best streak {progress['best_streak']}"
            )

        prefix = "Paused" if status == QuizStatus.PAUSED.value else "In progress"
        return (
            f"{prefix}: question {progress['current_question']}/{progress['total_questions']}, "
            f"score {progress['score']}, streak {progress['streak']}, "
            f"{progress['time_remaining']}s left"
        )

    def apply_config(self, new_config: SessionConfig) -> Dict[int, bool]:
        """
        Push a configuration change to every channel.

        Channels with a running quiz keep their settings until the quiz ends.

        Args:
            new_config: Configuration for future sessions

        Returns:
            Mapping of channel ID to whether the change took effect immediately
        """
        applied = {}
        for channel_id, controller in self._controllers.items():
            quiz = self._quizzes.get(channel_id)
            applied[channel_id] = controller.apply_config(quiz.state if quiz else None, new_config)
        return applied

    def get_all_active_sessions(self) -> Dict[int, Dict[str, Any]]:
        return {
            channel_id: self.get_session_progress(channel_id)
            for channel_id in self._quizzes
            if self.has_active_session(channel_id)
        }
