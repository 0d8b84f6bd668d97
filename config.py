import os
from dataclasses import dataclass, field
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _as_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Database settings
    database_file: str = os.getenv("QUOTE_DB_FILE", "quotes.sqlite")

    # Mail digest settings
    smtp_host: str = os.getenv("SMTP_HOST", "smtp.gmail.com")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_username: Optional[str] = os.getenv("SMTP_USERNAME")
    smtp_password: Optional[str] = os.getenv("SMTP_PASSWORD")
    smtp_from_email: str = os.getenv("SMTP_FROM_EMAIL", "noreply@quotes.local")
    mail_receivers: List[str] = field(default_factory=lambda: _as_list(os.getenv("MAIL_RECEIVERS", "")))
    mail_interval_hours: float = float(os.getenv("MAIL_INTERVAL_HOURS", "24"))
    mail_quote_count: int = int(os.getenv("MAIL_QUOTE_COUNT", "5"))
    enable_mail_digest: bool = _as_bool(os.getenv("ENABLE_MAIL_DIGEST", "False"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Quote Library API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    debug: bool = _as_bool(os.getenv("DEBUG", "False"))


settings = Settings()
