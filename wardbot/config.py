import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()


def _split_keywords(raw: str) -> list[str]:
    return [k.strip().lower() for k in raw.split(",") if k.strip()]


@dataclass
class Settings:
    """Application configuration from environment variables."""

    # Telegram
    bot_token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    # Moderator review channel for flagged messages
    review_chat_id: int | None = (
        int(os.getenv("TELEGRAM_ADMIN_CHAT_ID"))
        if os.getenv("TELEGRAM_ADMIN_CHAT_ID")
        else None
    )

    # Keyword filter
    keywords: list[str] = field(
        default_factory=lambda: _split_keywords(
            os.getenv("MODERATION_KEYWORDS", "spam,advertisement,scam,violation")
        )
    )

    # Slow mode / mutes
    default_slow_mode_seconds: int = int(os.getenv("DEFAULT_SLOWMODE_SECONDS", "0"))
    max_slow_mode_seconds: int = 3600
    keyword_mute_minutes: int = int(os.getenv("KEYWORD_MUTE_MINUTES", "60"))
    default_mute_minutes: int = int(os.getenv("DEFAULT_MUTE_MINUTES", "60"))
    max_mute_minutes: int = int(os.getenv("MAX_MUTE_MINUTES", "10080"))  # one week

    # Join verification
    verification_timeout_minutes: int = int(
        os.getenv("VERIFICATION_TIMEOUT_MINUTES", "5")
    )
    verification_sweep_seconds: int = int(
        os.getenv("VERIFICATION_SWEEP_SECONDS", "5")
    )
    verification_decoys: int = int(os.getenv("VERIFICATION_DECOYS", "2"))

    # Chat administrators cache TTL (seconds)
    admin_cache_ttl: int = int(os.getenv("ADMIN_CACHE_TTL", "60"))

    # Replay ban/unban history from the audit log on startup
    restore_bans_on_startup: bool = (
        os.getenv("RESTORE_BANS_ON_STARTUP", "true").lower() == "true"
    )

    # Database
    database_url: str = os.getenv(
        "DATABASE_URL", "sqlite+aiosqlite:///./data/wardbot.db"
    )

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_dir: str = os.getenv("LOG_DIR", "logs")


settings = Settings()
