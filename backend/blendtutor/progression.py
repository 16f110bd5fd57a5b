"""
Exercise Progression
====================

Per-word finite state machine that sequences a blending exercise:

	play -> listen -> correct            -> (next phoneme | whole word | done)
	               -> retry -> listen ...
	               -> skip               -> (next phoneme | whole word | done)

Each phoneme is prompted and listened for in order, then the whole word gets
the same treatment. The attempt counter belongs to the state, resets whenever
the target changes, and decides both leniency and when to skip. Skipping
means the learner can never get stuck on an exercise.

transition() is pure: it returns a new state plus the effects the caller
should carry out (speak, capture, acknowledge, complete). It never performs
them itself.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .matching import MatchResult
from .settings import settings


class Stage(str, Enum):
	PLAY = "play"
	LISTEN = "listen"
	CORRECT = "correct"
	RETRY = "retry"
	SKIP = "skip"
	DONE = "done"


class RetryPolicy(BaseModel):
	"""
	Attempt thresholds, zero-indexed.

	With the defaults the first failure retries strictly, the retry is scored
	leniently, and a second failure skips.
	"""
	model_config = ConfigDict(frozen=True)

	lenient_after: int = Field(default=1, ge=0)
	skip_after: int = Field(default=2, ge=1)

	@classmethod
	def from_settings(cls) -> "RetryPolicy":
		return cls(
			lenient_after=settings.lenient_after_attempts,
			skip_after=settings.skip_after_attempts,
		)

	def is_lenient(self, attempt: int) -> bool:
		return attempt >= self.lenient_after

	def should_skip(self, attempt: int) -> bool:
		return attempt >= self.skip_after


class ExerciseState(BaseModel):
	"""
	Snapshot of one blending exercise.

	Attributes:
		word: Target written word
		phonemes: Ordered phonemes of the word
		index: Active phoneme index; len(phonemes) means the whole-word phase
		attempt: Failed attempts on the active target
		stage: Current stage
	"""
	model_config = ConfigDict(frozen=True)

	word: str
	phonemes: List[str] = Field(default_factory=list)
	index: int = 0
	attempt: int = 0
	stage: Stage = Stage.PLAY

	@property
	def on_word(self) -> bool:
		return self.index >= len(self.phonemes)

	@property
	def target(self) -> str:
		if self.on_word:
			return self.word
		return self.phonemes[self.index]

	@property
	def finished(self) -> bool:
		return self.stage == Stage.DONE


class Event(BaseModel):
	"""Something that happened to the exercise. scored events carry the match."""
	kind: Literal["prompted", "scored", "acknowledged"]
	result: Optional[MatchResult] = None


class Effect(BaseModel):
	"""Work the orchestrator must perform after a transition."""
	kind: Literal["speak", "capture", "acknowledge", "complete"]
	target: str = ""
	on_word: bool = False
	lenient: bool = False
	outcome: Optional[Stage] = None


def _speak(state: ExerciseState) -> Effect:
	return Effect(kind="speak", target=state.target, on_word=state.on_word)


def _capture(state: ExerciseState, policy: RetryPolicy) -> Effect:
	return Effect(
		kind="capture",
		target=state.target,
		on_word=state.on_word,
		lenient=policy.is_lenient(state.attempt),
	)


def start_exercise(word: str, phonemes: List[str]) -> Tuple[ExerciseState, List[Effect]]:
	"""Open an exercise on its first phoneme, or on the word if it has none."""
	state = ExerciseState(word=word, phonemes=list(phonemes))
	return state, [_speak(state)]


def _advance(state: ExerciseState) -> Tuple[ExerciseState, List[Effect]]:
	if state.on_word:
		done = state.model_copy(update={"stage": Stage.DONE, "attempt": 0})
		return done, [Effect(kind="complete", target=state.word, on_word=True)]
	nxt = state.model_copy(update={"index": state.index + 1, "attempt": 0, "stage": Stage.PLAY})
	return nxt, [_speak(nxt)]


def transition(
	state: ExerciseState,
	event: Event,
	policy: Optional[RetryPolicy] = None,
) -> Tuple[ExerciseState, List[Effect]]:
	"""Apply one event.

	Events that do not fit the current stage are ignored: the same state comes
	back with no effects.

	Args:
		state: Current exercise state
		event: prompted, scored (with its MatchResult) or acknowledged
		policy: Retry thresholds, defaults to the configured policy

	Returns:
		(new_state, effects)
	"""
	policy = policy or RetryPolicy.from_settings()

	if state.stage == Stage.PLAY and event.kind == "prompted":
		listening = state.model_copy(update={"stage": Stage.LISTEN})
		return listening, [_capture(listening, policy)]

	if state.stage == Stage.LISTEN and event.kind == "scored" and event.result is not None:
		if event.result.matched:
			correct = state.model_copy(update={"stage": Stage.CORRECT})
			return correct, [Effect(kind="acknowledge", target=state.target, on_word=state.on_word, outcome=Stage.CORRECT)]
		attempt = state.attempt + 1
		stage = Stage.SKIP if policy.should_skip(attempt) else Stage.RETRY
		failed = state.model_copy(update={"stage": stage, "attempt": attempt})
		return failed, [Effect(kind="acknowledge", target=state.target, on_word=state.on_word, outcome=stage)]

	if event.kind == "acknowledged":
		if state.stage == Stage.RETRY:
			listening = state.model_copy(update={"stage": Stage.LISTEN})
			return listening, [_capture(listening, policy)]
		if state.stage in (Stage.CORRECT, Stage.SKIP):
			return _advance(state)

	return state, []
