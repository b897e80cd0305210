import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes")


# ----------------------------
# Config & Constants
# ----------------------------
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./data.db")
PRODUCTION = (
    os.environ.get("APP_ENV", os.environ.get("NODE_ENV", "")) == "production"
)

# screenshots stay admin-only: this directory is never mounted
UPLOAD_DIR = os.path.abspath(os.environ.get("UPLOAD_DIR", "./uploads"))
MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", 5 * 1024 * 1024))
ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}
REQUIRE_SCREENSHOT = _flag("REQUIRE_SCREENSHOT")

SESSION_SECRET = os.environ.get("SESSION_SECRET", "dev-secret-change-me")
SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS", 24 * 3600))

ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "supasecret")
# werkzeug hash ("scrypt:...$salt$hex"); derived from ADMIN_PASSWORD if unset
ADMIN_PASSWORD_HASH = os.environ.get("ADMIN_PASSWORD_HASH", "")
ADMIN_HASH_METHOD = os.environ.get("ADMIN_HASH_METHOD", "scrypt")

SMTP_HOST = os.environ.get("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.environ.get("SMTP_PORT", 587))
SMTP_USER = os.environ.get("SMTP_USER", "")
SMTP_PASS = os.environ.get("SMTP_PASS", "")
SMTP_FROM_NAME = os.environ.get("SMTP_FROM_NAME", "Trip STORE Support")
NOTIFY_EMAIL = os.environ.get("NOTIFY_EMAIL", SMTP_USER)

TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN", "")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID", "")

CASHIER_WEBHOOK_SECRET = os.environ.get("CASHIER_WEBHOOK_SECRET", "")

ALLOWED_ORIGINS = [
    o.strip() for o in os.environ.get(
        "ALLOWED_ORIGINS",
        "https://trip-store-esport.vercel.app,"
        "http://localhost:3000,"
        "http://127.0.0.1:3000",
    ).split(",") if o.strip()
]

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", 3000))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
