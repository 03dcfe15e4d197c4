from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Groq
    groq_api_key: str = "gsk_placeholder"
    generation_model: str = "qwen/qwen3-32b"
    reasoning_format: str = "parsed"
    fast_model: str = "llama-3.1-8b-instant"
    summary_model: str = "openai/gpt-oss-20b"
    vision_model: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    generation_timeout_seconds: float = 120.0

    # Whisper
    whisper_model: str = "small"
    whisper_device: str = "cpu"
    whisper_compute_type: str = "int8"
    whisper_language: str = "nl"

    # Storage
    database_path: str = "facilitator.db"
    storage_root: str = "storage"
    public_base_url: str = ""

    # Logging
    log_dir: str = "logs"
    log_level: str = "INFO"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
