from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "google/gemini-2.0-flash-001"
    openrouter_model: str = ""
    llm_timeout_seconds: float = 45.0

    # Search provider
    search_provider: str = "google"  # google | serper | brave | tavily
    search_fallback_to_tavily: bool = False
    google_api_key: str = ""
    google_cse_id: str = ""
    serper_api_key: str = ""
    brave_api_key: str = ""
    tavily_api_key: str = ""
    search_timeout_seconds: float = 15.0
    search_results_per_tier: int = 10
    search_max_attempts: int = 2

    # Outbound search rate limiting (process-wide)
    rate_limit_window_seconds: float = 60.0
    rate_limit_max_requests: int = 5
    rate_limit_min_interval_ms: int = 3000

    # Source targets per depth
    quick_min_sources: int = 10
    deep_min_sources: int = 15
    academic_lookup_enabled: bool = True
    academic_lookup_max: int = 3

    # Generation
    generation_max_attempts: int = 3
    retry_backoff_seconds: float = 1.0
    retry_backoff_max_seconds: float = 8.0
    quick_min_words: int = 500
    quick_target_words: int = 1000
    deep_min_words: int = 2000

    # Report revision
    edit_timeout_seconds: float = 15.0
    edit_max_attempts: int = 3

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
