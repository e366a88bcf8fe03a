from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = Field(..., env="DATABASE_URL")
    jwt_secret_key: str = Field("CHANGE_ME_SECRET", env="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", env="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(30, env="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_days: int = Field(30, env="REFRESH_TOKEN_EXPIRE_DAYS")

    celery_broker_url: str = Field(
        "redis://localhost:6379/0",
        env="CELERY_BROKER_URL",
    )
    celery_task_always_eager: bool = Field(False, env="CELERY_TASK_ALWAYS_EAGER")

    app_public_url: str = Field("http://localhost:3000", env="APP_PUBLIC_URL")
    api_public_url: str = Field("http://localhost:8000", env="API_PUBLIC_URL")
    default_currency: str = Field("USD", env="DEFAULT_CURRENCY")

    # Stripe (card path)
    stripe_secret_key: str = Field("", env="STRIPE_SECRET_KEY")
    stripe_webhook_secret: str = Field("", env="STRIPE_WEBHOOK_SECRET")
    stripe_success_path: str = Field("/checkout/success", env="STRIPE_SUCCESS_PATH")
    stripe_cancel_path: str = Field("/checkout/cancel", env="STRIPE_CANCEL_PATH")

    # PayGate.to (crypto path)
    paygate_checkout_url: str = Field(
        "https://checkout.paygate.to/process-payment.php",
        env="PAYGATE_CHECKOUT_URL",
    )
    paygate_wallet_api_url: str = Field(
        "https://api.paygate.to/control/wallet.php",
        env="PAYGATE_WALLET_API_URL",
    )
    paygate_callback_secret: str = Field("", env="PAYGATE_CALLBACK_SECRET")
    paygate_timeout_seconds: int = Field(20, env="PAYGATE_TIMEOUT_SECONDS")

    cron_secret: str = Field("", env="CRON_SECRET")

    smtp_host: str = Field("smtp.gmail.com", env="SMTP_HOST")
    smtp_port: int = Field(587, env="SMTP_PORT")
    smtp_username: str = Field("", env="SMTP_USERNAME")
    smtp_password: str = Field("", env="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(True, env="SMTP_USE_TLS")
    smtp_from_email: str = Field("noreply@vistra.tv", env="SMTP_FROM_EMAIL")

    whatsapp_api_token: str = Field("", env="WHATSAPP_API_TOKEN")
    whatsapp_phone_id: str = Field("", env="WHATSAPP_PHONE_ID")
    whatsapp_api_base_url: str = Field(
        "https://graph.facebook.com/v18.0",
        env="WHATSAPP_API_BASE_URL",
    )
    whatsapp_language: str = Field("fr", env="WHATSAPP_LANGUAGE")
    whatsapp_timeout_seconds: int = Field(15, env="WHATSAPP_TIMEOUT_SECONDS")

    alert_email: str = Field("", env="ALERT_EMAIL")
    error_alert_threshold: int = Field(10, env="ERROR_ALERT_THRESHOLD")
    error_alert_window_minutes: int = Field(60, env="ERROR_ALERT_WINDOW_MINUTES")

    abandoned_threshold_minutes: int = Field(30, env="ABANDONED_THRESHOLD_MINUTES")
    abandoned_max_reminders: int = Field(3, env="ABANDONED_MAX_REMINDERS")
    abandoned_reminder_interval_hours: int = Field(
        24, env="ABANDONED_REMINDER_INTERVAL_HOURS"
    )

    batch_send_size: int = Field(50, env="BATCH_SEND_SIZE")
    batch_send_delay_seconds: float = Field(1.0, env="BATCH_SEND_DELAY_SECONDS")

    status_poll_interval_seconds: int = Field(3, env="STATUS_POLL_INTERVAL_SECONDS")
    status_poll_max_attempts: int = Field(15, env="STATUS_POLL_MAX_ATTEMPTS")

    rate_limit_window_seconds: int = Field(60, env="RATE_LIMIT_WINDOW_SECONDS")
    checkout_rate_limit: int = Field(10, env="CHECKOUT_RATE_LIMIT")
    promo_validate_rate_limit: int = Field(20, env="PROMO_VALIDATE_RATE_LIMIT")

    log_retention_days: int = Field(90, env="LOG_RETENTION_DAYS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()


__all__ = ["settings", "Settings"]
