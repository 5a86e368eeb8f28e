import logging
import os
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# --- Database ---
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "petnest")

# --- Identity ---
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ROOM_TOKEN_EXPIRE_SECONDS = int(os.getenv("ROOM_TOKEN_EXPIRE_SECONDS", 300))

# --- Chat ---
CHAT_PAGE_SIZE = int(os.getenv("CHAT_PAGE_SIZE", 30))
CHAT_MAX_PAGE_SIZE = int(os.getenv("CHAT_MAX_PAGE_SIZE", 100))
CHAT_MESSAGE_MAX_LENGTH = int(os.getenv("CHAT_MESSAGE_MAX_LENGTH", 2000))
CHAT_RATE_LIMIT_MESSAGES = int(os.getenv("CHAT_RATE_LIMIT_MESSAGES", 10))  # 0 disables
CHAT_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("CHAT_RATE_LIMIT_WINDOW_SECONDS", 10))
CHAT_REQUIRE_ROOM_TOKEN = _env_bool("CHAT_REQUIRE_ROOM_TOKEN", True)
CHAT_BROADCAST_ON_SEND = _env_bool("CHAT_BROADCAST_ON_SEND", True)

# --- Relay / scheduler ---
RELAY_STATS_INTERVAL_MINUTES = int(os.getenv("RELAY_STATS_INTERVAL_MINUTES", 15))
RELAY_SEND_TIMEOUT_SECONDS = float(os.getenv("RELAY_SEND_TIMEOUT_SECONDS", 5))

# --- Cloudinary (media message references) ---
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")

# --- HTTP ---
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
    ).split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

REQUIRED_ENV_VARS = ["MONGO_URI", "JWT_SECRET_KEY"]


def configure_logging():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def validate_settings() -> list[str]:
    """Log and return the required environment variables that are not set."""
    missing = [name for name in REQUIRED_ENV_VARS if not os.getenv(name)]
    if missing:
        logger.error("Missing required environment variables: %s", ", ".join(missing))
    return missing
