from pydantic_settings import BaseSettings
import dotenv
import os

# Defaults below read os.environ, so .env has to be loaded first
dotenv.load_dotenv()


class Settings(BaseSettings):
    # Environment
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///database/leadbot.db")

    # API
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "3000"))
    cors_origins: str = os.getenv("CORS_ORIGINS", "*")

    # Daily outreach
    daily_lead_limit: int = int(os.getenv("DAILY_LEAD_LIMIT", "10"))
    daily_job_time: str = os.getenv("DAILY_JOB_TIME", "09:00")
    scheduler_timezone: str = os.getenv("SCHEDULER_TIMEZONE", "UTC")
    quota_reset_time: str = "00:00"  # always UTC
    scheduler_poll_seconds: float = 30.0

    # Pacing between leads (milliseconds)
    pacing_min_ms: int = 3000
    pacing_jitter_ms: int = 5000

    # When true, messages are written to storage instead of being sent
    dry_run: bool = os.getenv("DRY_RUN", "true").lower() == "true"
    storage_path: str = os.getenv("STORAGE_PATH", "./storage/messages")

    # Generative AI (Gemini)
    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    gemini_model: str = os.getenv("GEMINI_MODEL_NAME", "gemini-1.5-flash-latest")
    gemini_base_url: str = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
    gemini_timeout_seconds: float = 30.0

    # WhatsApp Cloud API
    whatsapp_api_url: str = os.getenv("WHATSAPP_API_URL", "https://graph.facebook.com/v19.0")
    whatsapp_phone_number_id: str = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
    whatsapp_access_token: str = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
    whatsapp_verify_token: str = os.getenv("WHATSAPP_VERIFY_TOKEN", "")

    # Email - SMTP
    smtp_host: str = os.getenv("EMAIL_SMTP_HOST", "localhost")
    smtp_port: int = int(os.getenv("EMAIL_SMTP_PORT", "1025"))
    smtp_user: str = os.getenv("EMAIL_SMTP_USER", "")
    smtp_password: str = os.getenv("EMAIL_SMTP_PASS", "")
    smtp_from: str = os.getenv("EMAIL_SENDER_ADDRESS", "outreach@leadbot.local")
    smtp_enabled: bool = os.getenv("SMTP_ENABLED", "false").lower() == "true"
    smtp_use_tls: bool = os.getenv("SMTP_USE_TLS", "false").lower() == "true"
    email_subject: str = "Unlock New Business Opportunities"

    # Scraper stub
    random_seed: int = 15

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "./storage/logs/leadbot.log")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


settings = Settings()
