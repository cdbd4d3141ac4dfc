from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class EngineSettings(BaseSettings):
    """
    Runtime configuration for the automation engine.
    Reads from environment variables or .env file.
    """
    APP_NAME: str = "Media Links Automation"
    VERSION: str = "1.4.0"
    LOG_LEVEL: str = "INFO"

    # Settings store (JSON file holding the extension-style settings keys)
    STORAGE_PATH: str = "./tmp/settings.json"

    # Stopwatch
    TICK_INTERVAL_SECONDS: float = 1.0
    FOCUS_DELAY_SECONDS: float = 0.15

    # Bookmarklets
    MAX_DECODE_PASSES: int = 3
    CODE_PREVIEW_CHARS: int = 200
    DEFAULT_ALERT_MESSAGE: str = "Action completed"

    # Domain triggers
    URL_CHANGE_DELAY_SECONDS: float = 0.1

    # Browser Settings
    HEADLESS: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

@lru_cache()
def get_settings():
    return EngineSettings()
