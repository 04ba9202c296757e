"""
Quiz session state machine for the Math Quiz Bot.
Drives a single quiz attempt from the first question to the results.
"""
import logging
import math
import threading
import time
from datetime import datetime
from typing import Callable, Optional, Sequence

from .models import (
    Question,
    ScoringRules,
    SessionConfig,
    SessionPhase,
    SessionResults,
    SessionState,
    TIMEOUT_ANSWER,
)


class QuizSessionError(Exception):
    """Base exception for quiz session errors."""
    pass


class EmptyQuestionSet(QuizSessionError):
    """Raised when a session is started without any questions."""
    pass


class InvalidSessionStateError(QuizSessionError):
    """Raised when a session is in the wrong phase for the requested operation."""
    pass


class QuizSessionController:
    """
    Owns the transitions of one quiz attempt.

    Every transition is synchronous and returns the state it was given (or a
    fresh one for ``start_session``). Irregular calls caused by event races,
    such as a tap landing after the timer already resolved the question, are
    no-ops rather than errors.
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        scoring: Optional[ScoringRules] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize the session controller.

        Args:
            config: Configuration used for the next session
            scoring: Points rules applied to correct answers
            clock: Source of the current time
        """
        self.logger = logging.getLogger(__name__)
        self.config = config or SessionConfig()
        self.scoring = scoring or ScoringRules()
        self._clock = clock
        self._pending_config: Optional[SessionConfig] = None

    @property
    def pending_config(self) -> Optional[SessionConfig]:
        """Configuration waiting for the running session to finish."""
        return self._pending_config

    def phase(self, state: Optional[SessionState]) -> SessionPhase:
        if state is None:
            return SessionPhase.NOT_STARTED
        if state.is_terminal:
            return SessionPhase.TERMINAL
        return SessionPhase.IN_PROGRESS

    def current_question(self, state: SessionState) -> Optional[Question]:
        if state.is_terminal:
            return None
        return state.questions[state.current_index]

    def start_session(self, config: SessionConfig, questions: Sequence[Question]) -> SessionState:
        """
        Start a new quiz attempt.

        Args:
            config: Settings for this session
            questions: Questions produced by the question supplier

        Returns:
            A brand-new SessionState positioned on the first question

        Raises:
            EmptyQuestionSet: If no questions were supplied
        """
        if not questions:
            self.logger.warning(
                "Refusing to start session without questions",
                extra={
                    'event_type': 'session_start_empty',
                    'category': config.category.value,
                    'timestamp': time.time()
                }
            )
            raise EmptyQuestionSet("Cannot start a quiz session with no questions")

        if len(questions) != config.question_count:
            self.logger.warning(
                f"Supplier returned {len(questions)} questions, "
                f"expected {config.question_count}; using supplied questions"
            )

        self.config = config
        state = SessionState(
            config=config,
            questions=tuple(questions),
            started_at=self._clock(),
            time_remaining=config.time_limit_per_question_seconds,
        )

        self.logger.info(
            f"Started session: category={config.category.value}, "
            f"difficulty={config.difficulty.value}, questions={len(questions)}",
            extra={
                'event_type': 'session_started',
                'question_count': len(questions),
                'time_limit': config.time_limit_per_question_seconds,
                'timestamp': time.time()
            }
        )
        return state

    def submit_answer(self, state: SessionState, answer_index: int) -> SessionState:
        """
        Resolve the current question with the given answer.

        The first submission for a question wins; later submissions for the
        same question leave the state untouched.

        Args:
            state: Session to update
            answer_index: Chosen option index, or TIMEOUT_ANSWER

        Returns:
            The (possibly unchanged) session state
        """
        if state.answer_locked or state.is_terminal:
            self.logger.debug(
                f"Ignoring answer {answer_index} for question {state.current_index + 1}: already resolved",
                extra={
                    'event_type': 'answer_ignored',
                    'question_index': state.current_index,
                    'timestamp': time.time()
                }
            )
            return state

        question = state.questions[state.current_index]
        is_correct = answer_index == question.correct_index

        state.answer_locked = True
        state.selected_answer_index = answer_index
        state.answer_history.append(is_correct)

        if is_correct:
            points = self.scoring.points_per_correct + math.floor(
                state.time_remaining * self.scoring.bonus_factor
            )
            state.score += points
            state.streak += 1
            state.best_streak = max(state.best_streak, state.streak)
        else:
            points = 0
            state.streak = 0

        self.logger.info(
            f"Question {state.current_index + 1}/{len(state.questions)} resolved: "
            f"{'timeout' if answer_index == TIMEOUT_ANSWER else ('correct' if is_correct else 'incorrect')}",
            extra={
                'event_type': 'answer_submitted',
                'question_index': state.current_index,
                'is_correct': is_correct,
                'points': points,
                'timestamp': time.time()
            }
        )
        return state

    def advance(self, state: SessionState) -> SessionState:
        """
        Move past a resolved question, or finish the session after the last one.

        Args:
            state: Session to update

        Returns:
            The (possibly unchanged) session state
        """
        if state.is_terminal:
            return state

        if not state.answer_locked:
            self.logger.debug(
                f"Ignoring advance on unresolved question {state.current_index + 1}",
                extra={
                    'event_type': 'advance_ignored',
                    'question_index': state.current_index,
                    'timestamp': time.time()
                }
            )
            return state

        if state.current_index + 1 < len(state.questions):
            state.current_index += 1
            state.answer_locked = False
            state.selected_answer_index = None
            state.time_remaining = state.config.time_limit_per_question_seconds
            self.logger.debug(f"Advanced to question {state.current_index + 1}/{len(state.questions)}")
            return state

        state.current_index = len(state.questions)
        state.finished_at = self._clock()
        self.logger.info(
            f"Session complete: score={state.score}, "
            f"correct={sum(state.answer_history)}/{len(state.questions)}",
            extra={
                'event_type': 'session_completed',
                'score': state.score,
                'best_streak': state.best_streak,
                'timestamp': time.time()
            }
        )

        if self._pending_config is not None:
            self.config = self._pending_config
            self._pending_config = None
            self.logger.info("Applied deferred configuration after session completion")

        return state

    def tick(self, state: SessionState) -> SessionState:
        """
        Count one elapsed second on the current question.

        When the countdown reaches zero the question is resolved as a timeout.

        Args:
            state: Session to update

        Returns:
            The (possibly unchanged) session state
        """
        if state.answer_locked or state.is_terminal:
            return state

        state.time_remaining = max(0, state.time_remaining - 1)

        if state.time_remaining == 0:
            self.logger.info(f"Time expired on question {state.current_index + 1}")
            return self.submit_answer(state, TIMEOUT_ANSWER)

        return state

    def compute_results(self, state: SessionState) -> SessionResults:
        """
        Summarize a finished session.

        Args:
            state: Terminal session state

        Returns:
            SessionResults for the attempt

        Raises:
            InvalidSessionStateError: If the session has not finished
        """
        if not state.is_terminal:
            raise InvalidSessionStateError(
                f"Session still in progress at question {state.current_index + 1}/{len(state.questions)}"
            )

        total = len(state.questions)
        correct = sum(1 for answer in state.answer_history if answer)
        finished_at = state.finished_at or state.started_at

        return SessionResults(
            total_questions=total,
            correct_answers=correct,
            score=state.score,
            accuracy=correct / total if total else 0.0,
            elapsed_seconds=max(0.0, (finished_at - state.started_at).total_seconds()),
            best_streak=state.best_streak,
        )

    def apply_config(self, state: Optional[SessionState], new_config: SessionConfig) -> bool:
        """
        Apply a configuration change at a safe point.

        Args:
            state: Current session, or None if no session has started
            new_config: Configuration requested by the host

        Returns:
            True if applied now, False if deferred until the session finishes
        """
        if state is None or state.is_terminal:
            self.config = new_config
            self._pending_config = None
            return True

        self._pending_config = new_config
        self.logger.info(
            "Deferring configuration change until the running session finishes",
            extra={
                'event_type': 'config_deferred',
                'question_index': state.current_index,
                'timestamp': time.time()
            }
        )
        return False


class SynchronizedSessionController(QuizSessionController):
    """Session controller safe to call from several threads."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._lock = threading.RLock()

    def start_session(self, config, questions):
        with self._lock:
            return super().start_session(config, questions)

    def submit_answer(self, state, answer_index):
        with self._lock:
            return super().submit_answer(state, answer_index)

    def advance(self, state):
        with self._lock:
            return super().advance(state)

    def tick(self, state):
        # tick may call submit_answer; RLock allows the re-entry
        with self._lock:
            return super().tick(state)

    def apply_config(self, state, new_config):
        with self._lock:
            return super().apply_config(state, new_config)
