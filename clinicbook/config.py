import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Local SQLite file by default; set a PostgreSQL URL in production so doctor
# rows can be locked with SELECT ... FOR UPDATE
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinicbook.db")

# Redis / ARQ Configuration
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")
REDIS_SSL = os.getenv("REDIS_SSL", "false").lower() == "true"

# Notifications - when disabled, events are logged and dropped
NOTIFICATIONS_ENABLED = os.getenv("NOTIFICATIONS_ENABLED", "true").lower() == "true"

# Reminder job: appointments starting within this many minutes get a reminder
REMINDER_LEAD_MINUTES = int(os.getenv("REMINDER_LEAD_MINUTES", "30"))
REMINDER_INTERVAL_MINUTES = int(os.getenv("REMINDER_INTERVAL_MINUTES", "5"))

# Stored appointment times are wall-clock times in this IANA zone
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "UTC")

# CORS
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")

# ARQ worker concurrency
ARQ_MAX_JOBS = int(os.getenv("ARQ_MAX_JOBS", "10"))
