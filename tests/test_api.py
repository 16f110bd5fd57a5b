from blendtutor.capture import CaptureResult
from blendtutor.settings import settings
from blendtutor.transcription import TranscriptionError


SAYS = {"c": ["see"], "a": ["ah"], "t": ["tea"], "cat": ["cat"]}


def start(client, word="cat", phonemes=("c", "a", "t")):
	r = client.post("/exercise/start", json={"word": word, "phonemes": list(phonemes)})
	assert r.status_code == 200, r.text
	return r.json()


def test_health_and_info(client):
	assert client.get("/health").json() == {"status": "ok"}
	info = client.get("/info").json()
	assert info["status"] == "ok"
	assert "speech_provider" in info


# ----------------------------------------------------------------------------
# /match
# ----------------------------------------------------------------------------

def test_match_phoneme_endpoint(client):
	r = client.post("/match/phoneme", json={"phoneme": "c", "transcripts": ["I see"]})
	assert r.status_code == 200
	assert r.json() == {"matched": True, "confidence": "high", "best_transcript": "i see"}


def test_match_word_endpoint_lenient(client):
	r = client.post("/match/word", json={"word": "cat", "transcripts": ["dog"], "lenient": True})
	assert r.json() == {"matched": True, "confidence": "low", "best_transcript": "dog"}


def test_match_word_endpoint_defaults(client):
	r = client.post("/match/word", json={"word": "cat"})
	assert r.json()["matched"] is False


# ----------------------------------------------------------------------------
# /exercise
# ----------------------------------------------------------------------------

def test_start_returns_first_prompt(client):
	body = start(client)
	assert body["stage"] == "play"
	assert body["target"] == "c"
	assert body["attempt"] == 0
	assert body["lenient"] is False
	assert body["finished"] is False
	assert body["effects"] == [{"kind": "speak", "target": "c", "on_word": False, "lenient": False, "outcome": None}]


def test_start_normalizes_input(client):
	body = start(client, word=" Cat ", phonemes=["C", " ", "A", "T"])
	assert body["word"] == "cat"
	assert body["phonemes"] == ["c", "a", "t"]


def test_start_requires_word(client):
	r = client.post("/exercise/start", json={"word": "   ", "phonemes": ["c"]})
	assert r.status_code == 400


def test_start_reports_uncovered_phonemes(client):
	body = start(client, word="night", phonemes=["n", "igh", "t"])
	assert body["uncovered_phonemes"] == ["igh"]


def test_correct_attempt_then_acknowledge(client):
	sid = start(client)["session_id"]
	assert client.post("/exercise/prompted", json={"session_id": sid}).json()["stage"] == "listen"

	r = client.post("/exercise/attempt", json={"session_id": sid, "transcripts": ["see"], "target": "c", "attempt": 0})
	assert r.status_code == 200
	body = r.json()
	assert body["stage"] == "correct"
	assert body["result"]["matched"] is True
	assert body["effects"][0]["outcome"] == "correct"

	body = client.post("/exercise/acknowledge", json={"session_id": sid}).json()
	assert body["stage"] == "play"
	assert body["target"] == "a"
	assert body["index"] == 1


def test_retry_is_lenient_then_skip(client):
	sid = start(client)["session_id"]
	client.post("/exercise/prompted", json={"session_id": sid})

	body = client.post("/exercise/attempt", json={"session_id": sid, "transcripts": ["zzz"]}).json()
	assert body["stage"] == "retry"
	assert body["attempt"] == 1
	assert body["lenient"] is True

	body = client.post("/exercise/acknowledge", json={"session_id": sid}).json()
	assert body["stage"] == "listen"
	assert body["effects"][0]["lenient"] is True

	body = client.post("/exercise/attempt", json={"session_id": sid, "transcripts": []}).json()
	assert body["stage"] == "skip"

	body = client.post("/exercise/acknowledge", json={"session_id": sid}).json()
	assert body["target"] == "a"
	assert body["attempt"] == 0


def test_stale_target_is_rejected(client):
	sid = start(client)["session_id"]
	client.post("/exercise/prompted", json={"session_id": sid})
	r = client.post("/exercise/attempt", json={"session_id": sid, "transcripts": ["ah"], "target": "a"})
	assert r.status_code == 409
	assert client.get("/exercise/state", params={"session_id": sid}).json()["stage"] == "listen"


def test_stale_attempt_number_is_rejected(client):
	sid = start(client)["session_id"]
	client.post("/exercise/prompted", json={"session_id": sid})
	client.post("/exercise/attempt", json={"session_id": sid, "transcripts": ["zzz"]})
	client.post("/exercise/acknowledge", json={"session_id": sid})
	r = client.post("/exercise/attempt", json={"session_id": sid, "transcripts": ["see"], "target": "c", "attempt": 0})
	assert r.status_code == 409


def test_attempt_before_prompt_is_rejected(client):
	sid = start(client)["session_id"]
	r = client.post("/exercise/attempt", json={"session_id": sid, "transcripts": ["see"]})
	assert r.status_code == 409


def test_double_prompt_is_rejected(client):
	sid = start(client)["session_id"]
	assert client.post("/exercise/prompted", json={"session_id": sid}).status_code == 200
	assert client.post("/exercise/prompted", json={"session_id": sid}).status_code == 409


def test_full_exercise_finishes_and_forgets_session(client):
	sid = start(client)["session_id"]
	for target in ["c", "a", "t", "cat"]:
		body = client.post("/exercise/prompted", json={"session_id": sid}).json()
		assert body["target"] == target
		body = client.post("/exercise/attempt", json={"session_id": sid, "transcripts": SAYS[target], "target": target}).json()
		assert body["stage"] == "correct", body
		body = client.post("/exercise/acknowledge", json={"session_id": sid}).json()

	assert body["finished"] is True
	assert body["stage"] == "done"
	assert body["effects"][0]["kind"] == "complete"
	assert client.get("/exercise/state", params={"session_id": sid}).status_code == 404


def test_unknown_session(client):
	assert client.get("/exercise/state", params={"session_id": "nope"}).status_code == 404
	assert client.post("/exercise/prompted", json={"session_id": "nope"}).status_code == 404


def test_oldest_sessions_are_evicted(client, monkeypatch):
	monkeypatch.setattr(settings, "max_sessions", 2)
	first = start(client)["session_id"]
	start(client)
	start(client)
	assert client.get("/exercise/state", params={"session_id": first}).status_code == 404


def test_audio_attempt_is_transcribed_and_scored(client, use_transcriber):
	fake = use_transcriber(CaptureResult(transcripts=["see"], confidence=0.8))
	sid = start(client)["session_id"]
	client.post("/exercise/prompted", json={"session_id": sid})

	r = client.post(
		"/exercise/attempt/audio",
		data={"session_id": sid, "target": "c", "attempt": "0"},
		files={"audio": ("clip.webm", b"\x1a\x45\xdf\xa3", "audio/webm")},
	)
	assert r.status_code == 200, r.text
	assert r.json()["stage"] == "correct"
	assert fake.calls == [b"\x1a\x45\xdf\xa3"]


def test_audio_attempt_failure_counts_as_silence(client, use_transcriber):
	use_transcriber(error=TranscriptionError("boom"))
	sid = start(client)["session_id"]
	client.post("/exercise/prompted", json={"session_id": sid})

	r = client.post(
		"/exercise/attempt/audio",
		data={"session_id": sid},
		files={"audio": ("clip.webm", b"data", "audio/webm")},
	)
	assert r.status_code == 200
	body = r.json()
	assert body["stage"] == "retry"
	assert body["result"]["best_transcript"] == ""


def test_audio_attempt_checks_staleness_first(client, use_transcriber):
	fake = use_transcriber(CaptureResult(transcripts=["ah"], confidence=0.8))
	sid = start(client)["session_id"]
	client.post("/exercise/prompted", json={"session_id": sid})

	r = client.post(
		"/exercise/attempt/audio",
		data={"session_id": sid, "target": "a"},
		files={"audio": ("clip.webm", b"data", "audio/webm")},
	)
	assert r.status_code == 409
	assert fake.calls == []


# ----------------------------------------------------------------------------
# /transcribe
# ----------------------------------------------------------------------------

def test_transcribe_returns_alternatives(client, use_transcriber):
	use_transcriber(CaptureResult(transcripts=["see", "sea"], confidence=0.6))
	r = client.post("/transcribe", files={"audio": ("clip.webm", b"data", "audio/webm")})
	assert r.status_code == 200
	assert r.json() == {"transcripts": ["see", "sea"], "confidence": 0.6}


def test_transcribe_rejects_empty_audio(client, use_transcriber):
	use_transcriber()
	r = client.post("/transcribe", files={"audio": ("clip.webm", b"", "audio/webm")})
	assert r.status_code == 400
	assert r.json()["detail"] == "No audio provided"


def test_transcribe_upstream_error_is_502(client, use_transcriber):
	use_transcriber(error=TranscriptionError("Whisper API error 500"))
	r = client.post("/transcribe", files={"audio": ("clip.webm", b"data", "audio/webm")})
	assert r.status_code == 502


def test_transcribe_without_configuration_is_500(client, monkeypatch):
	monkeypatch.setattr(settings, "speech_provider", "whisper")
	monkeypatch.setattr(settings, "openai_api_key", None)
	r = client.post("/transcribe", files={"audio": ("clip.webm", b"data", "audio/webm")})
	assert r.status_code == 500
	assert "OPENAI_API_KEY" in r.json()["detail"]


def test_audio_attempt_rejects_empty_upload(client, use_transcriber):
	fake = use_transcriber(CaptureResult.empty())
	sid = start(client)["session_id"]
	client.post("/exercise/prompted", json={"session_id": sid})

	r = client.post(
		"/exercise/attempt/audio",
		data={"session_id": sid, "target": "c", "attempt": "0"},
		files={"audio": ("clip.webm", b"", "audio/webm")},
	)
	assert r.status_code == 400
	assert r.json()["detail"] == "No audio provided"
	assert fake.calls == []

	state = client.get("/exercise/state", params={"session_id": sid}).json()
	assert state["stage"] == "listen"
	assert state["attempt"] == 0
