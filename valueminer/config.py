import os
from dotenv import load_dotenv

load_dotenv()

# ---------------- Database ----------------
MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "value_miner")

# ---------------- Auth ----------------
JWT_SECRET = os.getenv("JWT_SECRET", "your-super-secret-jwt-key-change-this")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
CRON_SECRET = os.getenv("CRON_SECRET")

# ---------------- Providers ----------------
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
MODEL_NAME = os.getenv("MODEL_NAME", "gemini-2.0-flash")
SEARCHAPI_KEY = os.getenv("SEARCHAPI_KEY")

# ---------------- Email ----------------
SMTP_EMAIL = os.getenv("SMTP_EMAIL")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "465"))
REPORT_FROM_EMAIL = os.getenv("REPORT_FROM_EMAIL") or SMTP_EMAIL

# ---------------- iOS Shortcut / sharing ----------------
SHORTCUT_TEMPLATE_URL = os.getenv("SHORTCUT_TEMPLATE_URL") or os.getenv("NEXT_PUBLIC_SHORTCUT_URL", "")
SHORTCUT_TOKEN_PLACEHOLDER = os.getenv("SHORTCUT_TOKEN_PLACEHOLDER", "PASTE YOUR TOKEN HERE")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "https://valueminer.org")

# ---------------- Server ----------------
API_PORT = int(os.getenv("API_PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
