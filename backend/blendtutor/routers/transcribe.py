import logging
from typing import AsyncIterator, List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from ..transcription import AudioTranscriber, TranscriptionError, get_transcriber

router = APIRouter(prefix="/transcribe", tags=["transcribe"])

logger = logging.getLogger(__name__)


class TranscribeResponse(BaseModel):
	transcripts: List[str]
	confidence: float


async def transcriber_dependency() -> AsyncIterator[AudioTranscriber]:
	try:
		transcriber = get_transcriber()
	except ValueError as e:
		raise HTTPException(status_code=500, detail=str(e))
	try:
		yield transcriber
	finally:
		await transcriber.aclose()


@router.post("", response_model=TranscribeResponse)
async def transcribe(
	audio: UploadFile = File(...),
	transcriber: AudioTranscriber = Depends(transcriber_dependency),
):
	data = await audio.read()
	if not data:
		raise HTTPException(status_code=400, detail="No audio provided")
	try:
		result = await transcriber.transcribe(
			data,
			filename=audio.filename or "audio.webm",
			content_type=audio.content_type or "audio/webm",
		)
	except TranscriptionError as e:
		logger.error("transcription failed: %s", e)
		raise HTTPException(status_code=502, detail=str(e))
	return TranscribeResponse(transcripts=result.transcripts, confidence=result.confidence)
