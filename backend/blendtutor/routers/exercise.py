"""
Blending Exercise Router
========================

Server-side progression for clients that capture audio themselves (or
upload it) and only need scoring plus the next stage.

Flow per target (each phoneme, then the whole word):
1. Client plays the prompt, then POST /exercise/prompted
2. Client listens, then POST /exercise/attempt (transcripts) or
   POST /exercise/attempt/audio (clip, transcribed here)
3. Client shows correct/retry/skip, then POST /exercise/acknowledge

Attempts may declare the target and attempt number they were captured for.
When the session has moved on, the attempt is stale and rejected with 409
instead of being scored.

API Endpoints:
- POST /exercise/start
- GET /exercise/state
- POST /exercise/prompted
- POST /exercise/attempt
- POST /exercise/attempt/audio
- POST /exercise/acknowledge
"""

from __future__ import annotations

import logging
import uuid
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field

from ..capture import CaptureSession
from ..curriculum import PhonemeWord, uncovered_phonemes
from ..exercise import score_attempt
from ..matching import MatchResult
from ..progression import Effect, Event, ExerciseState, RetryPolicy, Stage, start_exercise, transition
from ..settings import settings
from ..transcription import AudioTranscriber, ClipRecognizer
from .transcribe import transcriber_dependency

router = APIRouter(prefix="/exercise", tags=["exercise"])

logger = logging.getLogger(__name__)


# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class StartRequest(BaseModel):
	word: str
	phonemes: List[str] = Field(default_factory=list)


class SessionRequest(BaseModel):
	session_id: str


class AttemptRequest(BaseModel):
	"""
	One listening attempt.

	target and attempt are what the client believed was active when it
	started listening; leave them out to skip the staleness check.
	"""
	session_id: str
	transcripts: List[str] = Field(default_factory=list)
	confidence: float = Field(default=0.0, ge=0.0, le=1.0)
	target: Optional[str] = None
	attempt: Optional[int] = None


class ExerciseResponse(BaseModel):
	session_id: str
	word: str
	phonemes: List[str]
	index: int
	target: str
	on_word: bool
	attempt: int
	stage: Stage
	lenient: bool
	finished: bool
	effects: List[Effect] = Field(default_factory=list)
	result: Optional[MatchResult] = None
	uncovered_phonemes: List[str] = Field(default_factory=list)


# ============================================================================
# SESSION MANAGEMENT
# ============================================================================

class ExerciseSession:
	"""
	Server-held exercise.

	Attributes:
		session_id: Unique identifier for the session
		state: Current ExerciseState
		policy: Retry thresholds fixed at session start
		history: MatchResults scored so far
	"""
	def __init__(self, state: ExerciseState, policy: RetryPolicy) -> None:
		self.session_id: str = uuid.uuid4().hex
		self.state: ExerciseState = state
		self.policy: RetryPolicy = policy
		self.history: List[MatchResult] = []


# In-memory only; progress persistence belongs to the client
_sessions: Dict[str, ExerciseSession] = {}


def _store(session: ExerciseSession) -> None:
	_sessions[session.session_id] = session
	# Evict oldest sessions beyond the cap (dicts keep insertion order)
	while len(_sessions) > max(1, settings.max_sessions):
		oldest = next(iter(_sessions))
		del _sessions[oldest]


def _get(session_id: str) -> ExerciseSession:
	session = _sessions.get(session_id)
	if not session:
		raise HTTPException(status_code=404, detail="Session not found or expired")
	return session


def _respond(
	session: ExerciseSession,
	effects: List[Effect],
	result: Optional[MatchResult] = None,
	uncovered: Optional[List[str]] = None,
) -> ExerciseResponse:
	state = session.state
	response = ExerciseResponse(
		session_id=session.session_id,
		word=state.word,
		phonemes=state.phonemes,
		index=state.index,
		target=state.target,
		on_word=state.on_word,
		attempt=state.attempt,
		stage=state.stage,
		lenient=session.policy.is_lenient(state.attempt),
		finished=state.finished,
		effects=effects,
		result=result,
		uncovered_phonemes=uncovered or [],
	)
	if state.finished:
		_sessions.pop(session.session_id, None)
	return response


def _apply(session: ExerciseSession, event: Event) -> List[Effect]:
	before = session.state
	state, effects = transition(before, event, session.policy)
	if not effects:
		raise HTTPException(status_code=409, detail=f"'{event.kind}' does not apply in stage '{before.stage.value}'")
	session.state = state
	return effects


def _check_listening(session: ExerciseSession, target: Optional[str], attempt: Optional[int]) -> None:
	state = session.state
	if state.stage != Stage.LISTEN:
		raise HTTPException(status_code=409, detail=f"Not listening (stage '{state.stage.value}')")
	if target is not None and target.lower().strip() != state.target.lower().strip():
		raise HTTPException(status_code=409, detail="Stale attempt: target has changed")
	if attempt is not None and attempt != state.attempt:
		raise HTTPException(status_code=409, detail="Stale attempt: attempt number has changed")


def _score(session: ExerciseSession, transcripts: List[str], confidence: float) -> ExerciseResponse:
	state = session.state
	result = score_attempt(
		state.target,
		transcripts,
		on_word=state.on_word,
		lenient=session.policy.is_lenient(state.attempt),
	)
	logger.debug(
		"session %s %r heard=%s (asr %.2f) -> %s/%s",
		session.session_id, state.target, transcripts, confidence, result.matched, result.confidence,
	)
	session.history.append(result)
	effects = _apply(session, Event(kind="scored", result=result))
	return _respond(session, effects, result=result)


# ============================================================================
# API ENDPOINTS
# ============================================================================

@router.post("/start", response_model=ExerciseResponse)
async def start(req: StartRequest):
	word = (req.word or "").strip().lower()
	if not word:
		raise HTTPException(status_code=400, detail="word is required")
	phonemes = [p.strip().lower() for p in req.phonemes if p and p.strip()]
	uncovered = uncovered_phonemes([PhonemeWord(word=word, phonemes=phonemes)])
	if uncovered:
		logger.warning("word %r has phonemes only lenient mode can accept: %s", word, uncovered)
	state, effects = start_exercise(word, phonemes)
	session = ExerciseSession(state, RetryPolicy.from_settings())
	_store(session)
	return _respond(session, effects, uncovered=uncovered)


@router.get("/state", response_model=ExerciseResponse)
async def get_state(session_id: str):
	return _respond(_get(session_id), [])


@router.post("/prompted", response_model=ExerciseResponse)
async def prompted(req: SessionRequest):
	session = _get(req.session_id)
	effects = _apply(session, Event(kind="prompted"))
	return _respond(session, effects)


@router.post("/attempt", response_model=ExerciseResponse)
async def attempt(req: AttemptRequest):
	session = _get(req.session_id)
	_check_listening(session, req.target, req.attempt)
	return _score(session, req.transcripts, req.confidence)


@router.post("/attempt/audio", response_model=ExerciseResponse)
async def attempt_audio(
	session_id: str = Form(...),
	target: Optional[str] = Form(default=None),
	attempt: Optional[int] = Form(default=None),
	audio: UploadFile = File(...),
	transcriber: AudioTranscriber = Depends(transcriber_dependency),
):
	session = _get(session_id)
	_check_listening(session, target, attempt)
	expected = session.state

	data = await audio.read()
	if not data:
		raise HTTPException(status_code=400, detail="No audio provided")
	capture = CaptureSession(
		ClipRecognizer(
			transcriber,
			data,
			filename=audio.filename or "audio.webm",
			content_type=audio.content_type or "audio/webm",
		),
		grace_seconds=settings.capture_grace_ms / 1000,
	)
	try:
		heard = await capture.capture(settings.transcribe_timeout_ms / 1000)
	finally:
		capture.close()

	# The session may have moved on while the clip was being transcribed
	if _sessions.get(session_id) is not session or session.state is not expected:
		raise HTTPException(status_code=409, detail="Stale attempt: exercise moved on during transcription")
	return _score(session, heard.transcripts, heard.confidence)


@router.post("/acknowledge", response_model=ExerciseResponse)
async def acknowledge(req: SessionRequest):
	session = _get(req.session_id)
	effects = _apply(session, Event(kind="acknowledged"))
	return _respond(session, effects)
