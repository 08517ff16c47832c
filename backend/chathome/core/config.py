from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "ChatHome"
    debug: bool = False

    # Paths
    data_dir: Path = Path(__file__).resolve().parent.parent.parent / "data"
    db_path: Path = Path(__file__).resolve().parent.parent.parent / "chathome.db"

    # Auth
    secret_key: str = "change-me"
    token_ttl_seconds: int = 7 * 24 * 60 * 60

    # LLM
    llm_provider: str = "gemini"  # gemini
    gemini_api_key: str = ""
    fast_model: str = "gemini-2.0-flash"
    thinking_model: str = "gemini-2.5-flash"
    fast_temperature: float = 0.7
    thinking_temperature: float = 1.0
    thinking_budget: int = 8192
    llm_timeout_seconds: float = 60.0
    aux_timeout_seconds: float = 10.0

    # Web search
    search_provider: str = "duckduckgo"  # duckduckgo | scrapingdog
    scrapingdog_api_key: str = ""
    search_timeout_seconds: float = 10.0
    search_results: int = 5

    # Chat pipeline
    max_upload_bytes: int = 10 * 1024 * 1024
    max_attachments: int = 10
    max_message_chars: int = 10000
    history_window: int = 50
    title_max_length: int = 60

    # Server
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_file": str(Path(__file__).resolve().parent.parent.parent / ".env"),
        "env_prefix": "CHATHOME_",
    }


settings = Settings()
