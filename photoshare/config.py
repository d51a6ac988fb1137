import os

# --- Path Configuration ---
# __file__ is /photoshare/config.py, so we go up one level to the project root.
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

MEDIA_DIR = os.environ.get("PHOTOSHARE_MEDIA_DIR", os.path.join(PROJECT_ROOT, "media"))
DATABASE_URL = os.environ.get(
    "PHOTOSHARE_DATABASE_URL", f"sqlite:///{os.path.join(PROJECT_ROOT, 'database.db')}"
)
SECRET_KEY = os.environ.get("PHOTOSHARE_SECRET_KEY", "change-me-in-production")

# Seconds a single store operation may block before it is aborted.
DB_TIMEOUT = float(os.environ.get("PHOTOSHARE_DB_TIMEOUT", "10"))
LOG_SQL = os.environ.get("PHOTOSHARE_LOG_SQL", "").lower() in ("1", "true", "yes")
LOG_LEVEL = os.environ.get("PHOTOSHARE_LOG_LEVEL", "INFO").upper()

# --- Constants ---
PAGE_SIZE = 12
MAX_SEARCH_TOKENS = 6
MAX_TITLE_LENGTH = 200
MAX_NAME_LENGTH = 60
MIN_PASSWORD_LENGTH = 8
RECOVERY_CODE_LENGTH = 30
RECOVERY_CODE_CHARACTERS = "abcdefghijklmnopqrstuvwxyz0123456789"
ALLOWED_CONTENT_TYPES = {"image/png", "image/jpeg"}
THUMBNAIL_SIZE = (300, 300)
