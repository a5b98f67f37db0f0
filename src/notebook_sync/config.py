"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


NOTEBOOK_SIGN_IN_URL = (
    "https://www.amazon.com/ap/signin"
    "?openid.pape.max_auth_age=0"
    "&openid.return_to=https%3A%2F%2Fread.amazon.com%2Fnotebook"
    "&openid.identity=http%3A%2F%2Fspecs.openid.net%2Fauth%2F2.0%2Fidentifier_select"
    "&openid.assoc_handle=amzn_readk_us"
    "&openid.mode=checkid_setup"
    "&openid.claimed_id=http%3A%2F%2Fspecs.openid.net%2Fauth%2F2.0%2Fidentifier_select"
    "&openid.ns=http%3A%2F%2Fspecs.openid.net%2Fauth%2F2.0"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    api_prefix: str = ""
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"

    # Browser settings
    browser_headless: bool = True
    locale: str = "en-US"
    timezone_id: str = "America/New_York"

    # Target pages
    entry_url: str = "https://www.amazon.com"
    sign_in_url: str = NOTEBOOK_SIGN_IN_URL
    library_url: str = "https://read.amazon.com/notebook"
    post_login_url_pattern: str = "**/notebook**"

    # Timeouts (milliseconds)
    selector_timeout_ms: int = 2000
    password_timeout_ms: int = 10000
    login_timeout_ms: int = 30000
    library_timeout_ms: int = 15000
    detail_click_timeout_ms: int = 10000

    # Dwell periods (milliseconds)
    entry_dwell_ms: int = 2000
    sign_in_dwell_ms: int = 3000
    typing_delay_ms: int = 100
    post_type_dwell_ms: int = 1000
    continue_dwell_ms: int = 3000
    library_settle_ms: int = 3000
    detail_dwell_ms: int = 2000
    return_dwell_ms: int = 1000

    # Diagnostics
    diagnostic_snippet_chars: int = 1000


# Global settings instance
settings = Settings()
