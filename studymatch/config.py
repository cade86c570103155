"""Configuration management"""

from datetime import timedelta
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Supabase (service role: the cycle writes across users)
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Opener generation providers (all optional)
    gemini_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Cycle trigger
    cycle_auth_token: str = ""            # empty = any bearer token accepted

    # Matching
    cooldown_hours: float = 24.0
    min_match_score: int = 40
    engagement_ranking: bool = False
    cycle_lock_minutes: int = 0           # 0 disables the advisory lock

    # Opener / notifications
    opener_timeout_seconds: float = 8.0
    expo_push_url: str = "https://exp.host/--/api/v2/push/send"
    notification_timeout_seconds: float = 5.0

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000,http://localhost:8081"

    # Logging
    log_level: str = "INFO"

    @property
    def cooldown(self) -> timedelta:
        return timedelta(hours=self.cooldown_hours)

    @property
    def has_opener_credentials(self) -> bool:
        """True when at least one opener-generation provider is configured"""
        return bool(self.gemini_api_key or self.openai_api_key or self.anthropic_api_key)

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]


# Global settings instance
settings = Settings()
