import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Firebase Configuration
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
# Optional service account JSON; application default credentials are used when unset
FIREBASE_CREDENTIALS_PATH = os.getenv("FIREBASE_CREDENTIALS_PATH")

# Redis / arq Configuration
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")
REDIS_SSL = os.getenv("REDIS_SSL", "false").lower() == "true"

ARQ_MAX_JOBS = int(os.getenv("ARQ_MAX_JOBS", "20"))
ARQ_JOB_TIMEOUT = int(os.getenv("ARQ_JOB_TIMEOUT", "300"))
ARQ_KEEP_RESULT = int(os.getenv("ARQ_KEEP_RESULT", "3600"))

# Locale defaults - tenants can override both on their brand document
TIMEZONE = os.getenv("TIMEZONE", "Europe/Zagreb")
DEFAULT_LOCALE = os.getenv("DEFAULT_LOCALE", "hr")

# Customer metrics
# Some deployments run with 21 days, the default cycle is 30
DEFAULT_AVERAGE_VISIT_INTERVAL_DAYS = int(os.getenv("DEFAULT_AVERAGE_VISIT_INTERVAL_DAYS", "30"))

# Appointment reminders ("2 hours before")
REMINDER_LEAD_MINUTES = int(os.getenv("REMINDER_LEAD_MINUTES", "120"))
REMINDER_WINDOW_MIN_MINUTES = int(os.getenv("REMINDER_WINDOW_MIN_MINUTES", "90"))
REMINDER_WINDOW_MAX_MINUTES = int(os.getenv("REMINDER_WINDOW_MAX_MINUTES", "150"))
REMINDER_MAX_TRIES = int(os.getenv("REMINDER_MAX_TRIES", "3"))
REMINDER_JOB_TIMEOUT = int(os.getenv("REMINDER_JOB_TIMEOUT", "60"))

# Base delay for retried jobs, doubled on every attempt
RETRY_BACKOFF_SECONDS = int(os.getenv("RETRY_BACKOFF_SECONDS", "30"))

# Daily "come back" reminders
VISIT_REMINDER_PAGE_SIZE = int(os.getenv("VISIT_REMINDER_PAGE_SIZE", "500"))
VISIT_REMINDER_HOUR = int(os.getenv("VISIT_REMINDER_HOUR", "10"))
VISIT_REMINDER_MINUTE = int(os.getenv("VISIT_REMINDER_MINUTE", "0"))
VISIT_REMINDER_MAX_TRIES = int(os.getenv("VISIT_REMINDER_MAX_TRIES", "5"))
# Customers without a push token are still marked as reminded for this cycle
VISIT_REMINDER_FLAG_SKIPPED = os.getenv("VISIT_REMINDER_FLAG_SKIPPED", "true").lower() == "true"

# Lifecycle event jobs
LIFECYCLE_EVENT_MAX_TRIES = int(os.getenv("LIFECYCLE_EVENT_MAX_TRIES", "5"))

# Provider limits
FIRESTORE_BATCH_LIMIT = 500
FCM_SEND_EACH_LIMIT = 500
FIRESTORE_TRANSACTION_ATTEMPTS = int(os.getenv("FIRESTORE_TRANSACTION_ATTEMPTS", "5"))

# Shared secret for the appointment lifecycle webhook
APPOINTMENT_WEBHOOK_SECRET = os.getenv("APPOINTMENT_WEBHOOK_SECRET", "")
