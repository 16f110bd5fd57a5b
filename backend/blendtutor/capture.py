from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from .matching import normalize_transcript
from .settings import settings


logger = logging.getLogger(__name__)


class CaptureResult(BaseModel):
	"""Transcript alternatives from one listening attempt, best first."""
	model_config = ConfigDict(frozen=True)

	transcripts: List[str] = Field(default_factory=list)
	confidence: float = Field(default=0.0, ge=0.0, le=1.0)

	@classmethod
	def empty(cls) -> "CaptureResult":
		return cls()

	@classmethod
	def from_alternatives(cls, alternatives: List[str], confidence: float) -> "CaptureResult":
		# Same normalization the matchers apply; alternatives left blank are dropped
		transcripts = [n for n in (normalize_transcript(t) for t in alternatives) if n]
		return cls(transcripts=transcripts, confidence=max(0.0, min(1.0, float(confidence or 0.0))))


class Recognizer(Protocol):
	"""Anything that can listen once and report what it heard."""

	async def recognize(self, timeout: float) -> CaptureResult: ...


class CaptureSession:
	"""
	Capture state for one lesson screen.

	Holds the microphone permission flag and the in-flight capture, so nothing
	about listening lives in module globals. Only one capture is outstanding
	at a time: starting a new one cancels the previous one.

	Every failure mode (timeout, cancellation, permission denied, backend
	error) resolves to an empty CaptureResult instead of raising.
	"""

	def __init__(self, recognizer: Recognizer, *, grace_seconds: Optional[float] = None) -> None:
		self.recognizer = recognizer
		self.grace_seconds = settings.capture_grace_ms / 1000 if grace_seconds is None else grace_seconds
		self.permission_granted: Optional[bool] = None
		self._active: Optional[asyncio.Task] = None
		self._closed = False

	@property
	def is_listening(self) -> bool:
		return self._active is not None and not self._active.done()

	@property
	def closed(self) -> bool:
		return self._closed

	async def capture(self, timeout: float) -> CaptureResult:
		"""Listen once, bounded by timeout plus the grace period."""
		if self._closed or self.permission_granted is False:
			return CaptureResult.empty()

		self.cancel()
		task = asyncio.ensure_future(self.recognizer.recognize(timeout))
		self._active = task
		try:
			result = await asyncio.wait_for(asyncio.shield(task), timeout + self.grace_seconds)
		except asyncio.TimeoutError:
			logger.warning("capture timed out after %.1fs", timeout + self.grace_seconds)
			task.cancel()
			return CaptureResult.empty()
		except asyncio.CancelledError:
			# cancel() aborted the recognizer; the caller itself was not cancelled
			if task.cancelled() and not _current_task_cancelling():
				return CaptureResult.empty()
			task.cancel()
			raise
		except PermissionError as e:
			logger.warning("microphone permission denied: %s", e)
			self.permission_granted = False
			return CaptureResult.empty()
		except Exception as e:
			logger.warning("capture failed: %s", e)
			return CaptureResult.empty()
		finally:
			if self._active is task:
				self._active = None

		self.permission_granted = True
		return result

	def cancel(self) -> None:
		"""Abort any in-progress capture. Safe to call at any time."""
		task = self._active
		self._active = None
		if task is not None and not task.done():
			task.cancel()

	def close(self) -> None:
		self.cancel()
		self._closed = True


def _current_task_cancelling() -> bool:
	task = asyncio.current_task()
	if task is None:
		return False
	return task.cancelling() > 0
