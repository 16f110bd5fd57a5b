import asyncio

from blendtutor.capture import CaptureResult, CaptureSession


class StaticRecognizer:
	def __init__(self, result=None, error=None, delay=0.0):
		self.result = result or CaptureResult(transcripts=["see"], confidence=0.9)
		self.error = error
		self.delay = delay
		self.calls = 0

	async def recognize(self, timeout):
		self.calls += 1
		if self.delay:
			await asyncio.sleep(self.delay)
		if self.error is not None:
			raise self.error
		return self.result


def test_successful_capture_grants_permission():
	async def go():
		session = CaptureSession(StaticRecognizer(), grace_seconds=0)
		result = await session.capture(1.0)
		return session, result

	session, result = asyncio.run(go())
	assert result.transcripts == ["see"]
	assert result.confidence == 0.9
	assert session.permission_granted is True
	assert not session.is_listening


def test_timeout_returns_empty():
	async def go():
		session = CaptureSession(StaticRecognizer(delay=5), grace_seconds=0)
		return await session.capture(0.01)

	result = asyncio.run(go())
	assert result == CaptureResult.empty()


def test_recognizer_error_returns_empty():
	async def go():
		session = CaptureSession(StaticRecognizer(error=RuntimeError("network down")), grace_seconds=0)
		return session, await session.capture(1.0)

	session, result = asyncio.run(go())
	assert result.transcripts == []
	assert result.confidence == 0.0
	assert session.permission_granted is None


def test_permission_denied_sticks():
	recognizer = StaticRecognizer(error=PermissionError("denied"))

	async def go():
		session = CaptureSession(recognizer, grace_seconds=0)
		first = await session.capture(1.0)
		second = await session.capture(1.0)
		return session, first, second

	session, first, second = asyncio.run(go())
	assert first.transcripts == []
	assert second.transcripts == []
	assert session.permission_granted is False
	# the second capture never reaches the recognizer
	assert recognizer.calls == 1


def test_cancel_is_idempotent():
	session = CaptureSession(StaticRecognizer(), grace_seconds=0)
	session.cancel()
	session.cancel()
	assert not session.is_listening


def test_cancel_mid_capture_returns_empty():
	async def go():
		session = CaptureSession(StaticRecognizer(delay=5), grace_seconds=0)
		pending = asyncio.ensure_future(session.capture(10.0))
		await asyncio.sleep(0.01)
		assert session.is_listening
		session.cancel()
		session.cancel()
		return session, await pending

	session, result = asyncio.run(go())
	assert result.transcripts == []
	assert not session.is_listening


def test_new_capture_replaces_previous():
	slow = StaticRecognizer(delay=5)

	async def go():
		session = CaptureSession(slow, grace_seconds=0)
		first = asyncio.ensure_future(session.capture(10.0))
		await asyncio.sleep(0.01)
		session.recognizer = StaticRecognizer()
		second = await session.capture(1.0)
		return await first, second

	first, second = asyncio.run(go())
	assert first.transcripts == []
	assert second.transcripts == ["see"]


def test_closed_session_returns_empty():
	recognizer = StaticRecognizer()

	async def go():
		session = CaptureSession(recognizer, grace_seconds=0)
		session.close()
		return session, await session.capture(1.0)

	session, result = asyncio.run(go())
	assert session.closed
	assert result.transcripts == []
	assert recognizer.calls == 0


def test_from_alternatives_normalizes():
	result = CaptureResult.from_alternatives(["  Cat ", "", "   ", "CAP"], 1.7)
	assert result.transcripts == ["cat", "cap"]
	assert result.confidence == 1.0
	assert CaptureResult.from_alternatives([], -3).confidence == 0.0


def test_from_alternatives_strips_punctuation():
	result = CaptureResult.from_alternatives([" Cat. ", "?!", "Bee's, 2"], 0.5)
	assert result.transcripts == ["cat", "bee's"]
