from __future__ import annotations
import asyncio
import math
from typing import Any, Dict, List, Optional, Protocol

import httpx
from google.cloud import speech_v1p1beta1 as speech
from google.api_core.exceptions import GoogleAPIError

from .capture import CaptureResult
from .settings import settings


class TranscriptionError(RuntimeError):
	pass


class AudioTranscriber(Protocol):
	async def transcribe(self, audio: bytes, *, filename: str = "audio.webm", content_type: str = "audio/webm") -> CaptureResult: ...

	async def aclose(self) -> None: ...


class WhisperTranscriber:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		client: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.api_key = api_key or settings.openai_api_key
		if not self.api_key:
			raise ValueError("OPENAI_API_KEY is not configured")
		self.base_url = base_url or settings.whisper_base_url
		self.model = model or settings.whisper_model
		self.language = settings.whisper_language
		self.temperature = settings.whisper_temperature
		self._owns_client = client is None
		self._client = client or httpx.AsyncClient(timeout=30)

	async def transcribe(self, audio: bytes, *, filename: str = "audio.webm", content_type: str = "audio/webm") -> CaptureResult:
		if not audio:
			return CaptureResult.empty()
		headers = {"Authorization": f"Bearer {self.api_key}"}
		data: Dict[str, Any] = {
			"model": self.model,
			"language": self.language,
			"temperature": str(self.temperature),
			"response_format": "verbose_json",
		}
		files = {"file": (filename, audio, content_type)}
		try:
			r = await self._client.post(self.base_url, headers=headers, data=data, files=files)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			raise TranscriptionError(f"Whisper API error {http_err.response.status_code}: {http_err.response.text}") from http_err
		except httpx.RequestError as net_err:
			raise TranscriptionError(f"Whisper request failed: {net_err}") from net_err
		try:
			payload = r.json()
		except ValueError as err:
			raise TranscriptionError(f"Unexpected Whisper response: {r.text}") from err
		text = str(payload.get("text") or "")
		return CaptureResult.from_alternatives([text], _segment_confidence(payload.get("segments")) if text.strip() else 0.0)

	async def aclose(self) -> None:
		if self._owns_client:
			await self._client.aclose()


def _segment_confidence(segments: Any) -> float:
	"""Mean segment log-probability mapped back to [0, 1]. 1.0 when Whisper gives none."""
	if not isinstance(segments, list):
		return 1.0
	logprobs: List[float] = []
	for seg in segments:
		try:
			logprobs.append(float(seg["avg_logprob"]))
		except (KeyError, TypeError, ValueError):
			continue
	if not logprobs:
		return 1.0
	return max(0.0, min(1.0, math.exp(sum(logprobs) / len(logprobs))))


class GoogleSpeechTranscriber:
	"""Cloud Speech-to-Text backend. Returns every alternative, not just the top one."""

	def __init__(self, client: Optional[Any] = None, *, language_code: Optional[str] = None, max_alternatives: Optional[int] = None) -> None:
		self._client = client
		self.language_code = language_code or settings.speech_language_code
		self.max_alternatives = max_alternatives or settings.speech_max_alternatives

	def _get_client(self) -> Any:
		if self._client is None:
			self._client = speech.SpeechClient()
		return self._client

	def _recognize(self, audio: bytes) -> CaptureResult:
		config = speech.RecognitionConfig(
			language_code=self.language_code,
			max_alternatives=self.max_alternatives,
			model="default",
			profanity_filter=False,
			enable_automatic_punctuation=False,
		)
		try:
			response = self._get_client().recognize(config=config, audio=speech.RecognitionAudio(content=audio))
		except GoogleAPIError as e:
			raise TranscriptionError(f"Speech-to-Text API error: {e}") from e
		alternatives: List[str] = []
		best = 0.0
		for result in response.results:
			for alt in result.alternatives:
				alternatives.append(alt.transcript)
				if alt.confidence > best:
					best = alt.confidence
		return CaptureResult.from_alternatives(alternatives, best)

	async def transcribe(self, audio: bytes, *, filename: str = "audio.webm", content_type: str = "audio/webm") -> CaptureResult:
		if not audio:
			return CaptureResult.empty()
		# The client library call blocks, keep it off the event loop
		return await asyncio.to_thread(self._recognize, audio)

	async def aclose(self) -> None:
		return None


def get_transcriber(provider: Optional[str] = None) -> AudioTranscriber:
	provider = (provider or settings.speech_provider or "").lower()
	if provider == "whisper":
		return WhisperTranscriber()
	if provider == "google":
		return GoogleSpeechTranscriber()
	raise ValueError(f"Unknown SPEECH_PROVIDER: {provider!r}")


class ClipRecognizer:
	"""Adapts one already-recorded clip to the Recognizer protocol."""

	def __init__(self, transcriber: AudioTranscriber, audio: bytes, *, filename: str = "audio.webm", content_type: str = "audio/webm") -> None:
		self.transcriber = transcriber
		self.audio = audio
		self.filename = filename
		self.content_type = content_type

	async def recognize(self, timeout: float) -> CaptureResult:
		return await self.transcriber.transcribe(self.audio, filename=self.filename, content_type=self.content_type)
