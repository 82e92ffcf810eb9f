from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

ALLOWED_RATE_PROVIDERS = {"static", "external-http"}


class Settings(BaseSettings):
    """Application settings loaded from environment with defaults.

    Environment variable mapping follows pydantic's rules (e.g., APP_NAME, DEBUG,
    DATA_DIR, DB_FILENAME, RATES_CACHE_TTL_SECONDS, EMAIL_API_KEY).
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Basic app metadata
    app_name: str = "RBP FINIVIS Forex Services"
    debug: bool = True
    version: str = "0.1.0"

    # Data & persistence
    data_dir: Path = Path("data")
    db_filename: str = "finivis.sqlite3"
    db_path: Optional[Path] = None  # derived if not provided

    # Exchange rates / caching
    rates_cache_ttl_seconds: int = 3600
    exchange_api_base_url: AnyHttpUrl = "https://api.exchangerate-api.com/v4/latest/INR"
    http_timeout_seconds: float = 5.0
    exchange_rate_provider: str = "static"
    enable_rate_override: bool = True

    # Notification email (transactional provider REST API)
    email_provider_url: AnyHttpUrl = "https://api.resend.com/emails"
    email_api_key: Optional[str] = None
    email_from: str = "RBP FINIVIS <onboarding@resend.dev>"
    email_rate_limit: int = 10
    email_rate_window_seconds: int = 3600
    dashboard_url: str = "https://rbpfinivis.com/dashboard"

    # Accounts treated as admins regardless of user_roles rows
    admin_emails: List[str] = []

    def init_post_load(self) -> None:
        """Finalize derived fields and ensure directories exist."""
        if self.db_path is None:
            self.db_path = self.data_dir / self.db_filename
        else:
            self.db_path = Path(self.db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        if self.exchange_rate_provider not in ALLOWED_RATE_PROVIDERS:
            raise ValueError(
                f"Unsupported exchange_rate_provider '{self.exchange_rate_provider}'. Allowed: {ALLOWED_RATE_PROVIDERS}"
            )
        self.admin_emails = [e.strip().lower() for e in self.admin_emails if e.strip()]


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    settings.init_post_load()
    return settings
