import os

# --- Session / auth ---
SESSION_SECRET = os.environ.get("SESSION_SECRET", "dev-secret-please-change")
SESSION_MAX_AGE = int(os.environ.get("SESSION_MAX_AGE", "3600"))  # seconds
SESSION_HTTPS_ONLY = bool(int(os.environ.get("SESSION_HTTPS_ONLY", "0")))
SESSION_SAME_SITE = os.environ.get("SESSION_SAME_SITE", "lax")

LOGIN_WINDOW = int(os.environ.get("LOGIN_WINDOW", "300"))  # seconds
LOGIN_MAX_ATTEMPTS = int(os.environ.get("LOGIN_MAX_ATTEMPTS", "5"))

# --- Storage ---
DATA_DIR = os.environ.get("MASPATAS_DATA_DIR", "data")
STATE_FILE = os.path.join(DATA_DIR, "state.json")
EXPORT_DIR = os.path.join(DATA_DIR, "exports")
UPLOAD_DIR = os.environ.get("MASPATAS_UPLOAD_DIR", os.path.join("static", "uploads"))

# --- Pet listings ---
PET_EXPIRATION_DAYS = int(os.environ.get("PET_EXPIRATION_DAYS", "60"))
PAGE_SIZE = int(os.environ.get("PAGE_SIZE", "12"))
DASHBOARD_LIMIT = int(os.environ.get("DASHBOARD_LIMIT", "8"))

# --- AI (Gemini) ---
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
EMBEDDING_MODEL = os.environ.get("EMBEDDING_MODEL", "text-embedding-004")
GENERATION_MODEL = os.environ.get("GENERATION_MODEL", "gemini-2.5-flash")
MATCH_THRESHOLD = float(os.environ.get("MATCH_THRESHOLD", "0.70"))
MATCH_COUNT = int(os.environ.get("MATCH_COUNT", "5"))
FUZZY_MATCH_MIN_SCORE = int(os.environ.get("FUZZY_MATCH_MIN_SCORE", "60"))

# --- Geocoding (Nominatim) ---
NOMINATIM_URL = os.environ.get("NOMINATIM_URL", "https://nominatim.openstreetmap.org")
NOMINATIM_COUNTRY = os.environ.get("NOMINATIM_COUNTRY", "pe")
GEOCODER_USER_AGENT = os.environ.get("GEOCODER_USER_AGENT", "maspatas/1.0 (contacto@maspatas.pe)")
GEOCODER_TIMEOUT = float(os.environ.get("GEOCODER_TIMEOUT", "10"))

# --- Background jobs ---
ENABLE_SCHEDULER_ENV = "ENABLE_SCHEDULER"
SCHEDULER_POLL_SECONDS = int(os.environ.get("SCHEDULER_POLL_SECONDS", "60"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
