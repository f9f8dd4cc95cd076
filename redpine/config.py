"""Application configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings with env var overrides."""

    # Audio
    sample_rate: int | None = 44100  # None keeps the file's native rate

    # Analysis
    analysis_timeout_seconds: float | None = 60.0
    max_workers: int = 4
    cache_dir: str | None = None  # LMDB result cache, disabled when unset

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    max_upload_mb: int = 50
    max_bulk_files: int = 50

    log_level: str = "INFO"

    model_config = {"env_prefix": "REDPINE_"}


settings = Settings()
