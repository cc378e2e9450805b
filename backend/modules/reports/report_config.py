"""Environment-driven configuration for the report engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Try backend/.env first, then fall back to the default search
_env_path = os.path.join(_BACKEND_DIR, ".env")
if os.path.exists(_env_path):
    load_dotenv(_env_path)
else:
    load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value in (None, ""):
        return default
    return int(value)


@dataclass
class SmtpConfig:
    host: str = ""
    port: int = 587
    user: str = ""
    password: str = ""
    use_tls: bool = True
    from_email: str = "reports@example.com"
    from_name: str = "Hospital Reports"

    @property
    def enabled(self) -> bool:
        return bool(self.host)


@dataclass
class ReportEngineConfig:
    database_url: str = ""
    output_directory: str = ""
    retention_days: int = 7
    schedule_poll_minutes: int = 15
    cleanup_hour: int = 2
    timezone: str = "UTC"
    smtp: SmtpConfig = field(default_factory=SmtpConfig)

    @classmethod
    def from_env(cls, output_directory: Optional[str] = None) -> "ReportEngineConfig":
        default_db = os.path.join(_BACKEND_DIR, "database_instance", "hms_reports.db")
        default_output = os.path.join(_BACKEND_DIR, "generated_reports")
        return cls(
            database_url=os.environ.get("REPORT_DB_URL", f"sqlite:///{default_db}"),
            output_directory=os.path.abspath(
                output_directory or os.environ.get("REPORT_OUTPUT_DIR", default_output)
            ),
            retention_days=_env_int("REPORT_RETENTION_DAYS", 7),
            schedule_poll_minutes=_env_int("REPORT_SCHEDULE_POLL_MINUTES", 15),
            cleanup_hour=_env_int("REPORT_CLEANUP_HOUR", 2),
            timezone=os.environ.get("REPORT_TIMEZONE", "UTC"),
            smtp=SmtpConfig(
                host=os.environ.get("SMTP_HOST", ""),
                port=_env_int("SMTP_PORT", 587),
                user=os.environ.get("SMTP_USER", ""),
                password=os.environ.get("SMTP_PASSWORD", ""),
                use_tls=os.environ.get("SMTP_USE_TLS", "true").lower() == "true",
                from_email=os.environ.get("SMTP_FROM_EMAIL", "reports@example.com"),
                from_name=os.environ.get("SMTP_FROM_NAME", "Hospital Reports"),
            ),
        )
