from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    LOG_LEVEL: str = "WARNING"
    LOG_FORMAT: str = "console"

    # None keeps reads blocking forever; a stalled server then stalls the run
    READ_TIMEOUT: float | None = None
    QUIT_MESSAGE: str = "QUIT"
    SYNC_TOKEN_PREFIX: str = "sync"

    REPORT_DIR: str = ""
    REPORT_FILE_PREFIX: str = "irc-test-framework."

    model_config = SettingsConfigDict(env_prefix="IRCFW_", env_file=".env", case_sensitive=True, extra="ignore")

    @property
    def report_dir_path(self) -> Path | None:
        if not self.REPORT_DIR:
            return None
        return Path(self.REPORT_DIR).expanduser().resolve()

    @property
    def log_format_normalized(self) -> str:
        value = str(self.LOG_FORMAT or "console").strip().lower()
        return value if value in {"console", "json"} else "console"


settings = Settings()
