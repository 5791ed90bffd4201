from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter (structured generation)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "openai/gpt-4.1"
    openrouter_model: str = ""
    strategy_model: str = ""  # optional override for query planning + extraction
    report_model: str = ""  # optional override for report + recommendations
    llm_max_tokens: int = 4096
    llm_max_retries: int = 2

    # Tavily
    tavily_api_key: str = ""

    # Orchestration
    search_max_parallel_requests: int = 2
    research_timeout_seconds: float = 600.0

    # App
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"
    log_to_file: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
