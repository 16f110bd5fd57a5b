from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from blendtutor.capture import CaptureResult
from blendtutor.main import app
from blendtutor.routers import exercise as exercise_router
from blendtutor.routers.transcribe import transcriber_dependency


class FakeTranscriber:
	def __init__(self, result: Optional[CaptureResult] = None, error: Optional[Exception] = None) -> None:
		self.result = result or CaptureResult.empty()
		self.error = error
		self.calls: List[bytes] = []
		self.closed = False

	async def transcribe(self, audio: bytes, *, filename: str = "audio.webm", content_type: str = "audio/webm") -> CaptureResult:
		self.calls.append(audio)
		if self.error is not None:
			raise self.error
		return self.result

	async def aclose(self) -> None:
		self.closed = True


@pytest.fixture(autouse=True)
def clear_sessions():
	exercise_router._sessions.clear()
	yield
	exercise_router._sessions.clear()
	app.dependency_overrides.clear()


@pytest.fixture
def client():
	return TestClient(app)


@pytest.fixture
def use_transcriber():
	def _install(result: Optional[CaptureResult] = None, error: Optional[Exception] = None) -> FakeTranscriber:
		transcriber = FakeTranscriber(result, error)
		app.dependency_overrides[transcriber_dependency] = lambda: transcriber
		return transcriber
	return _install
