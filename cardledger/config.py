from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "cardledger"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./cards.db"

    # Empty or localhost means this process owns the store directly.
    # Anything else is the base URL of the sync server, e.g. http://100.64.1.5:5000
    sync_server_url: str = ""
    request_timeout: float = 30.0

    price_staleness_threshold_days: int = 30

    # Age after which learned/enriched checklists are worth re-enriching.
    # None disables age-based staleness entirely.
    enrichment_max_age_days: int | None = None
    enable_checklist_learning: bool = True

    # Overrides the bundled seed checklist directory
    seed_data_dir: Path | None = None


settings = Settings()
