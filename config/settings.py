from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./timeline_harvester.db"

    # Server
    DASHBOARD_PORT: int = 8001
    LOG_LEVEL: str = "INFO"

    # Timeline
    TIMELINE_URL: str = "https://x.com/home"
    TIMELINE_ORIGIN: str = "https://x.com"
    TIMELINE_ROOT_SELECTOR: str = "main"

    # Harvest behaviour
    HARVEST_MAX_RECORDS: int = 100
    HARVEST_TICK_SECONDS: float = 0.1
    HARVEST_RECHECK_DELAY_SECONDS: float = 0.5
    HARVEST_MAX_IDLE_TICKS: int = 600  # 0 = advance until the target is met
    HARVEST_INTERVAL_MINUTES: int = 0  # 0 = manual runs only
    HARVEST_OUTPUT_DIR: str = "./exports"

    # Browser
    BROWSER_HEADLESS: bool = True
    BROWSER_STORAGE_STATE: str = ""
    BROWSER_NAV_TIMEOUT_MS: int = 60000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
