from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    line_channel_secret: str = ""
    line_channel_access_token: str = ""
    line_api_base: str = "https://api.line.me"
    telegram_bot_token: str = ""
    db_path: str = "ledger.json"
    report_url: str = "http://localhost:8000/report"
    cron_secret: str = ""
    # Subtracted from income before estimating unknown expense; 0 disables it.
    unknown_expense_baseline: int = 0
    currency_label: str = "NT$"
    log_level: str = "INFO"

    def missing_line_config(self) -> list[str]:
        """Names of the LINE settings the webhook cannot run without."""
        required = {
            "LINE_CHANNEL_SECRET": self.line_channel_secret,
            "LINE_CHANNEL_ACCESS_TOKEN": self.line_channel_access_token,
        }
        return [name for name, value in required.items() if not value]


@lru_cache
def get_settings() -> Settings:
    return Settings()
