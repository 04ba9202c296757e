"""
Quiz engine for the Math Quiz Bot.
Handles answer-option shuffling and the per-channel countdown timers.
"""
import random
import asyncio
import logging
import time
from dataclasses import replace
from typing import Awaitable, Callable, Dict, List, Optional

from .models import Question

# Set up logger for timer operations
logger = logging.getLogger(__name__)


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_created(channel_id: str, duration: int) -> None:
        """Log successful timer creation."""
        logger.info(
            f"Timer lifecycle: CREATED - Channel {channel_id}, Duration {duration}s",
            extra={
                'event_type': 'timer_created',
                'channel_id': channel_id,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(channel_id: str, elapsed: int) -> None:
        """Log timer ticks (throttled to avoid spam)."""
        if elapsed % 10 == 0:
            logger.debug(
                f"Timer lifecycle: UPDATE - Channel {channel_id}, Elapsed {elapsed}s",
                extra={
                    'event_type': 'timer_update',
                    'channel_id': channel_id,
                    'elapsed': elapsed,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(channel_id: str, completion_type: str, elapsed: int) -> None:
        """Log timer completion (resolution or cancellation)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Channel {channel_id}, Type {completion_type}, Elapsed {elapsed}s",
            extra={
                'event_type': 'timer_completed',
                'channel_id': channel_id,
                'completion_type': completion_type,
                'elapsed': elapsed,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(channel_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.info(
            f"Timer lifecycle: STATE_TRANSITION - Channel {channel_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'channel_id': channel_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(channel_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Channel {channel_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'channel_id': channel_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )


class QuizTimer:
    """Calls a tick callback once per second until told to stop."""

    def __init__(self, channel_id: str = None, interval: float = 1.0):
        """
        Initialize the timer.

        Args:
            channel_id: Channel the timer belongs to, used for logging
            interval: Seconds between ticks
        """
        self._task: Optional[asyncio.Task] = None
        self._is_paused = False
        self._is_cancelled = False
        self._channel_id = channel_id
        self._interval = interval
        self._elapsed = 0

    async def run(self, tick_callback: Callable[[], Awaitable[bool]]) -> None:
        """
        Tick until the callback returns False or the timer is cancelled.

        Args:
            tick_callback: Called once per elapsed interval; returning False stops the timer
        """
        self._elapsed = 0
        self._is_cancelled = False

        try:
            while not self._is_cancelled:
                await asyncio.sleep(self._interval)
                if self._is_paused or self._is_cancelled:
                    continue

                self._elapsed += 1
                TimerLifecycleLogger.log_timer_update(self._channel_id, self._elapsed)

                keep_running = await tick_callback()
                if not keep_running:
                    TimerLifecycleLogger.log_timer_completion(self._channel_id, "resolved", self._elapsed)
                    return

            TimerLifecycleLogger.log_timer_completion(self._channel_id, "cancelled", self._elapsed)

        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(self._channel_id, "asyncio_cancelled", self._elapsed)
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._channel_id,
                "tick_execution_error",
                str(e),
                "run"
            )
            raise

    def pause(self) -> None:
        """Pause the timer; paused intervals do not tick."""
        if not self._is_paused:
            TimerLifecycleLogger.log_timer_state_transition(
                self._channel_id, "running", "paused", "pause requested"
            )
        self._is_paused = True

    def resume(self) -> None:
        """Resume a paused timer."""
        if self._is_paused:
            TimerLifecycleLogger.log_timer_state_transition(
                self._channel_id, "paused", "running", "resume requested"
            )
        self._is_paused = False

    def cancel(self) -> None:
        """Cancel the timer and its task."""
        self._is_cancelled = True
        if self._task and not self._task.done():
            self._task.cancel()
            TimerLifecycleLogger.log_timer_state_transition(
                self._channel_id, "running", "cancelled", "task cancelled"
            )

    @property
    def is_paused(self) -> bool:
        """Check if timer is paused."""
        return self._is_paused

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._is_cancelled

    @property
    def elapsed(self) -> int:
        """Number of ticks delivered so far."""
        return self._elapsed


class QuizEngine:
    """Answer shuffling and per-channel timer management."""

    def __init__(self, rng: Optional[random.Random] = None, tick_interval: float = 1.0):
        """
        Initialize the quiz engine.

        Args:
            rng: Random source for option shuffling
            tick_interval: Seconds between timer ticks
        """
        self.rng = rng or random.Random()
        self.tick_interval = tick_interval
        self._timers: Dict[str, QuizTimer] = {}  # Channel ID -> Timer mapping

    def shuffle_options(self, question: Question) -> Question:
        """
        Reorder a question's options, keeping track of the correct one.

        Args:
            question: Question to shuffle

        Returns:
            New Question with permuted options and remapped correct_index
        """
        indices = list(range(len(question.options)))
        self.rng.shuffle(indices)
        return replace(
            question,
            options=tuple(question.options[i] for i in indices),
            correct_index=indices.index(question.correct_index),
        )

    def prepare_questions(self, questions: List[Question], shuffle_options: bool = True) -> List[Question]:
        """
        Prepare supplied questions for presentation.

        Args:
            questions: Questions from the supplier
            shuffle_options: Whether to shuffle each question's options

        Returns:
            New list of questions
        """
        if not shuffle_options:
            return list(questions)
        return [self.shuffle_options(question) for question in questions]

    def start_question_timer(
        self,
        channel_id: str,
        tick_callback: Callable[[], Awaitable[bool]]
    ) -> QuizTimer:
        """
        Start the countdown for a channel, replacing any timer already running there.

        Args:
            channel_id: Discord channel identifier
            tick_callback: Called once per second; returning False stops the timer

        Returns:
            The running QuizTimer
        """
        existing = self._timers.get(channel_id)
        if existing is not None and existing.is_running:
            logger.warning(f"Replacing active timer for channel {channel_id}")
            existing.cancel()

        timer = QuizTimer(channel_id, interval=self.tick_interval)
        self._timers[channel_id] = timer
        timer._task = asyncio.create_task(timer.run(tick_callback))
        timer._task.add_done_callback(lambda task: self._on_timer_done(channel_id, timer, task))

        TimerLifecycleLogger.log_timer_created(channel_id, int(self.tick_interval))
        return timer

    def _on_timer_done(self, channel_id: str, timer: QuizTimer, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Timer task for channel {channel_id} failed: {task.exception()}")
        # Only drop the registry entry if it still points at this timer
        if self._timers.get(channel_id) is timer:
            del self._timers[channel_id]

    def pause_timer(self, channel_id: str) -> bool:
        """
        Pause the timer for a specific channel.

        Args:
            channel_id: Discord channel identifier

        Returns:
            True if timer was paused, False if no active timer
        """
        timer = self._timers.get(channel_id)
        if timer is None:
            logger.debug(f"Cannot pause timer for channel {channel_id}: no active timer")
            return False
        timer.pause()
        return True

    def resume_timer(self, channel_id: str) -> bool:
        """
        Resume the timer for a specific channel.

        Args:
            channel_id: Discord channel identifier

        Returns:
            True if timer was resumed, False if no active timer
        """
        timer = self._timers.get(channel_id)
        if timer is None:
            logger.debug(f"Cannot resume timer for channel {channel_id}: no active timer")
            return False
        timer.resume()
        return True

    def cancel_timer(self, channel_id: str) -> bool:
        """
        Cancel the timer for a specific channel.

        Args:
            channel_id: Discord channel identifier

        Returns:
            True if a timer was cancelled, False if none was registered
        """
        timer = self._timers.pop(channel_id, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def has_timer(self, channel_id: str) -> bool:
        return channel_id in self._timers

    def get_timer_status(self, channel_id: str) -> Optional[dict]:
        """
        Get status information for a channel's timer.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Dictionary with timer info, None if no timer exists
        """
        timer = self._timers.get(channel_id)
        if timer is None:
            return None
        return {
            'is_paused': timer.is_paused,
            'is_cancelled': timer.is_cancelled,
            'is_running': timer.is_running,
            'elapsed': timer.elapsed,
        }
