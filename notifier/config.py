from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Supabase settings
    SUPABASE_DB_URL: str

    # Upstream studio management API (Arbox)
    ARBOX_API_URL: str | None = None
    ARBOX_API_KEY: str | None = None
    UPSTREAM_TIMEOUT_SECONDS: float = 30.0

    # Email channel (Resend)
    RESEND_API_KEY: str | None = None
    RESEND_API_URL: str = "https://api.resend.com"
    NOTIFICATION_FROM_EMAIL: str = "onboarding@resend.dev"

    # WhatsApp channel: "twilio" or "green_api"
    WHATSAPP_PROVIDER: str = "twilio"
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_WHATSAPP_FROM: str | None = None
    TWILIO_API_URL: str = "https://api.twilio.com/2010-04-01"
    TWILIO_USE_CONTENT_TEMPLATES: bool = False
    TWILIO_CONTENT_SIDS: dict[str, str] = {}
    GREEN_API_INSTANCE_ID: str | None = None
    GREEN_API_TOKEN: str | None = None
    GREEN_API_URL: str = "https://api.green-api.com"
    CHANNEL_SEND_TIMEOUT_SECONDS: float = 20.0

    # Fallback admin contact when no recipients are registered
    ADMIN_NOTIFICATION_EMAIL: str | None = None
    ADMIN_NOTIFICATION_PHONE: str | None = None

    # Ops summary alert (Telegram)
    OPS_TELEGRAM_BOT_TOKEN: str | None = None
    OPS_TELEGRAM_CHAT_ID: str | None = None
    OPS_SUMMARY_ON_QUIET_RUNS: bool = True

    # =================================================================
    # DETECTOR SETTINGS
    # =================================================================
    BUSINESS_TIMEZONE: str = "Asia/Jerusalem"
    DAILY_DIGEST_RUN_HOUR: int = 10
    DAILY_DIGEST_RUN_MINUTE_WINDOW: int = 10
    WAITLIST_LOOKAHEAD_DAYS: int = 3
    MEMBERSHIP_EXPIRY_WINDOW_DAYS: int = 7
    NEW_MEMBERSHIP_LOOKBACK_DAYS: int = 7
    TRIAL_LOOKAHEAD_DAYS: int = 7
    TRIAL_REMINDER_WINDOW_HOURS: int = 10
    DETECTOR_TIMEOUT_SECONDS: float = 120.0
    NOTIFICATION_DETECTORS: list[str] | None = None

    # =================================================================
    # JOB SETTINGS
    # =================================================================
    JOB_RUN_STALE_MINUTES: int = 30
    STATE_CLEANUP_EVENT_TYPES: list[str] = [
        "waitlist_capacity",
        "birthday_notifications",
        "membership_expiry_notifications",
    ]
    STATE_CLEANUP_OLDER_THAN_DAYS: int = 7

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 5
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update({"min_size": 1, "max_size": 3, "timeout": 15.0})

        return config

    def get_detector_config(self) -> dict:
        """Group the detector tuning knobs so detectors can be built in one place."""
        return {
            "timezone": self.BUSINESS_TIMEZONE,
            "run_hour": self.DAILY_DIGEST_RUN_HOUR,
            "run_minute_window": self.DAILY_DIGEST_RUN_MINUTE_WINDOW,
            "waitlist_lookahead_days": self.WAITLIST_LOOKAHEAD_DAYS,
            "expiry_window_days": self.MEMBERSHIP_EXPIRY_WINDOW_DAYS,
            "lookback_days": self.NEW_MEMBERSHIP_LOOKBACK_DAYS,
            "trial_lookahead_days": self.TRIAL_LOOKAHEAD_DAYS,
            "reminder_window_hours": self.TRIAL_REMINDER_WINDOW_HOURS,
        }

    def fallback_recipient(self) -> dict | None:
        """Operator contact used when no admin recipients are registered."""
        if not self.ADMIN_NOTIFICATION_EMAIL and not self.ADMIN_NOTIFICATION_PHONE:
            return None
        return {
            "name": "Admin",
            "email": self.ADMIN_NOTIFICATION_EMAIL,
            "phone": self.ADMIN_NOTIFICATION_PHONE,
        }


settings = Settings()
