import logging

from fastapi import FastAPI

from .settings import settings
from .routers import health
from .routers import match
from .routers import exercise
from .routers import transcribe

logging.basicConfig(
	level=getattr(logging, str(settings.log_level).upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Blending Tutor API")
app.include_router(health.router)
app.include_router(match.router)
app.include_router(exercise.router)
app.include_router(transcribe.router)

@app.get("/info")
def root():
	return {
		"status": "ok",
		"speech_provider": settings.speech_provider,
		"whisper_configured": bool(settings.openai_api_key),
	}
