"""
Exercise Orchestration
======================

Drives one blending exercise through the progression state machine as a
single asyncio task. The task waits at three kinds of suspension point:
speaking a prompt, capturing an attempt and pausing for an acknowledgement.

The runner is cancellable as a unit. Every completion after an await is
checked against the runner's generation so that a capture which settles
after the exercise was replaced is discarded, never scored.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Protocol

from .capture import CaptureSession
from .matching import MatchResult, match_phoneme, match_word
from .progression import Effect, Event, ExerciseState, RetryPolicy, Stage, start_exercise, transition
from .settings import settings


logger = logging.getLogger(__name__)


class Speaker(Protocol):
	"""Text-to-speech collaborator."""

	async def speak(self, text: str) -> None: ...


def score_attempt(target: str, transcripts: List[str], *, on_word: bool, lenient: bool) -> MatchResult:
	"""Route an attempt to the word or phoneme matcher."""
	if on_word:
		return match_word(target, transcripts, lenient)
	return match_phoneme(target, transcripts, lenient)


class ExerciseRunner:
	"""
	Runs one word: each phoneme in order, then the blended word.

	Attributes:
		state: Latest ExerciseState
		history: MatchResults scored so far, in order
	"""

	def __init__(
		self,
		word: str,
		phonemes: List[str],
		capture: CaptureSession,
		*,
		speaker: Optional[Speaker] = None,
		policy: Optional[RetryPolicy] = None,
		on_transition: Optional[Callable[[ExerciseState], None]] = None,
		correct_pause_ms: Optional[int] = None,
		skip_pause_ms: Optional[int] = None,
		blend_pause_ms: Optional[int] = None,
	) -> None:
		self.word = word
		self.phonemes = list(phonemes)
		self.capture = capture
		self.speaker = speaker
		self.policy = policy or RetryPolicy.from_settings()
		self.on_transition = on_transition
		self.correct_pause_ms = settings.correct_pause_ms if correct_pause_ms is None else correct_pause_ms
		self.skip_pause_ms = settings.skip_pause_ms if skip_pause_ms is None else skip_pause_ms
		self.blend_pause_ms = settings.blend_pause_ms if blend_pause_ms is None else blend_pause_ms
		self.state: Optional[ExerciseState] = None
		self.history: List[MatchResult] = []
		self._generation = 0
		self._task: Optional[asyncio.Task] = None

	def _is_current(self, generation: int) -> bool:
		return generation == self._generation and not self.capture.closed

	def _set_state(self, state: ExerciseState) -> None:
		self.state = state
		if self.on_transition is not None:
			self.on_transition(state)

	async def _pause(self, ms: int) -> None:
		if ms > 0:
			await asyncio.sleep(ms / 1000)

	async def _perform(self, effect: Effect) -> Optional[Event]:
		if effect.kind == "speak":
			if effect.on_word:
				# Let the sounds settle before the blended word is heard
				await self._pause(self.blend_pause_ms)
			if self.speaker is not None:
				await self.speaker.speak(effect.target)
			return Event(kind="prompted")

		if effect.kind == "capture":
			listen_ms = settings.word_listen_ms if effect.on_word else settings.phoneme_listen_ms
			heard = await self.capture.capture(listen_ms / 1000)
			result = score_attempt(effect.target, heard.transcripts, on_word=effect.on_word, lenient=effect.lenient)
			logger.debug(
				"%s %r heard=%s lenient=%s -> %s/%s",
				"word" if effect.on_word else "phoneme",
				effect.target,
				heard.transcripts,
				effect.lenient,
				result.matched,
				result.confidence,
			)
			return Event(kind="scored", result=result)

		if effect.kind == "acknowledge":
			await self._pause(self.correct_pause_ms if effect.outcome == Stage.CORRECT else self.skip_pause_ms)
			return Event(kind="acknowledged")

		return None

	async def run(self) -> ExerciseState:
		generation = self._generation
		state, effects = start_exercise(self.word, self.phonemes)
		self._set_state(state)
		while effects:
			event = None
			for effect in effects:
				event = await self._perform(effect)
				if not self._is_current(generation):
					logger.debug("exercise %r replaced, dropping %s result", self.word, effect.kind)
					return self.state
			if event is None:
				break
			if event.result is not None:
				self.history.append(event.result)
			state, effects = transition(self.state, event, self.policy)
			self._set_state(state)
		return self.state

	def start(self) -> asyncio.Task:
		"""Schedule run() on the running loop and remember the task."""
		self._task = asyncio.ensure_future(self.run())
		return self._task

	def cancel(self) -> None:
		"""Stop the exercise. Idempotent."""
		self._generation += 1
		self.capture.cancel()
		if self._task is not None and not self._task.done():
			self._task.cancel()

	@property
	def finished(self) -> bool:
		return self.state is not None and self.state.stage == Stage.DONE
