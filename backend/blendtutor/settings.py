from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Transcription backend: "whisper" (OpenAI audio API) or "google" (Cloud Speech-to-Text)
	speech_provider: str = Field(default="whisper", validation_alias="SPEECH_PROVIDER")

	# Whisper configuration
	openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
	whisper_model: str = Field(default="whisper-1", validation_alias="WHISPER_MODEL")
	whisper_base_url: str = Field(default="https://api.openai.com/v1/audio/transcriptions", validation_alias="WHISPER_BASE_URL")
	whisper_language: str = Field(default="en", validation_alias="WHISPER_LANGUAGE")
	# Lower temperature = more deterministic
	whisper_temperature: float = Field(default=0.0, validation_alias="WHISPER_TEMPERATURE")

	# Google Speech-to-Text configuration
	speech_language_code: str = Field(default="en-US", validation_alias="SPEECH_LANGUAGE_CODE")
	speech_max_alternatives: int = Field(default=10, validation_alias="SPEECH_MAX_ALTERNATIVES")

	# Listening windows. Isolated sounds are short, words get a little longer.
	phoneme_listen_ms: int = Field(default=2000, validation_alias="PHONEME_LISTEN_MS")
	word_listen_ms: int = Field(default=3000, validation_alias="WORD_LISTEN_MS")
	capture_grace_ms: int = Field(default=1000, validation_alias="CAPTURE_GRACE_MS")
	# Upper bound for transcribing an uploaded clip server-side
	transcribe_timeout_ms: int = Field(default=10000, validation_alias="TRANSCRIBE_TIMEOUT_MS")

	# Retry policy (zero-indexed attempt counts)
	lenient_after_attempts: int = Field(default=1, validation_alias="LENIENT_AFTER_ATTEMPTS")
	skip_after_attempts: int = Field(default=2, validation_alias="SKIP_AFTER_ATTEMPTS")

	# Acknowledgement pauses between stages
	correct_pause_ms: int = Field(default=800, validation_alias="CORRECT_PAUSE_MS")
	skip_pause_ms: int = Field(default=600, validation_alias="SKIP_PAUSE_MS")
	blend_pause_ms: int = Field(default=600, validation_alias="BLEND_PAUSE_MS")

	# Server-side exercise sessions kept in memory
	max_sessions: int = Field(default=1000, validation_alias="MAX_SESSIONS")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
