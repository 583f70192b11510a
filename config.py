import os
import logging
from logging.handlers import RotatingFileHandler
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

# ---------------------------
# Database
# ---------------------------
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{os.path.join(BASE_DIR, 'time_capsule.db')}")

# ---------------------------
# Auth
# ---------------------------
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES") or 60 * 24 * 7)
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS") or 12)

# ---------------------------
# Notifications
# ---------------------------
DEV_MODE = os.getenv("DEV_MODE", "true").lower() == "true"
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")

# ---------------------------
# Misc
# ---------------------------
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/")
PLACEHOLDER_FILE_URL = os.getenv("PLACEHOLDER_FILE_URL", "/uploads/placeholder")
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE")


def configure_logging():
    """Attach a stream handler, plus a rotating file handler when LOG_FILE is set."""
    root = logging.getLogger()
    if getattr(root, "_time_capsule_configured", False):
        return
    formatter = logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s")

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if LOG_FILE:
        log_dir = os.path.dirname(LOG_FILE)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(LOG_FILE, maxBytes=1_000_000, backupCount=3)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.setLevel(LOG_LEVEL)
    root._time_capsule_configured = True
