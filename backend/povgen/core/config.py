from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "POV Historical Video API"
    app_version: str = "2.0.0"
    env: str = "dev"
    api_prefix: str = "/api"
    log_level: str = "INFO"

    status_store_backend: str = "memory"
    database_dsn: str = "sqlite:///./povgen.db"
    redis_dsn: str = "redis://localhost:6379/0"
    task_queue_enabled: bool = False

    # Demo convenience: answer status reads for unknown ids with a completed stub.
    stub_unknown_status: bool = False

    generation_provider: str = "mock"
    provider_base_url: str = "https://api.blackbox.ai/v1"
    provider_api_key: str = ""
    provider_image_model: str = "flux-1.1-pro"
    provider_video_model: str = "veo-3"
    provider_timeout_seconds: int = 300
    provider_max_retries: int = 2

    # Simulated latency of the mock stages, in seconds.
    mock_enhance_delay: float = 2.0
    mock_image_delay: float = 8.0
    mock_video_delay: float = 15.0
    mock_subtitle_delay: float = 3.0
    stage_timeout_seconds: float = 600.0

    max_prompt_length: int = 200
    allowed_durations: tuple[int, ...] = (10, 20, 30)
    gallery_page_size: int = 50

    placeholder_thumbnail_url: str = "https://placehold.co/1080x1920?text=POV+Historical+Thumbnail"
    placeholder_image_url: str = "https://storage.googleapis.com/pov-historical/image/preview-frame.png"
    placeholder_video_base_url: str = "https://storage.googleapis.com/pov-historical/videos"
    download_expiry_hours: int = 24

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()
