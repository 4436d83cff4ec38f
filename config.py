import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.environ.get("SIFT_DATA_DIR", os.path.join(BASE_DIR, "data"))

# --- Database Paths ---
DB_PATH = os.environ.get("SIFT_DB_PATH", os.path.join(DATA_DIR, "sift.db"))

LOG_PATH = os.environ.get("SIFT_LOG_PATH", os.path.join(DATA_DIR, "sift.log"))

# --- Crawler Identity ---
USER_AGENT = os.environ.get("SIFT_USER_AGENT", "Mozilla/5.0 (compatible; Sift/0.1)")

# --- Scheduling ---
CRAWL_DELAY_MS = int(os.environ.get("SIFT_CRAWL_DELAY_MS", 1000))
DOMAIN_COOLDOWN_MS = int(os.environ.get("SIFT_DOMAIN_COOLDOWN_MS", CRAWL_DELAY_MS))
MAX_ATTEMPTS = int(os.environ.get("SIFT_MAX_ATTEMPTS", 3))
BACKOFF_BASE = float(os.environ.get("SIFT_BACKOFF_BASE", 30))
REVISIT_AFTER = float(os.environ.get("SIFT_REVISIT_AFTER", 86400))

# --- Governance & Limits ---
FETCH_TIMEOUT = (3, 10)
FETCH_DEADLINE = float(os.environ.get("SIFT_FETCH_DEADLINE", 20))
MAX_BYTES = 6_000_000
MAX_TEXT_CHARS = 1_000_000

# --- Web ---
PER_PAGE = 20
MAX_QUERY_TERMS = 7
MAX_QUERY_LENGTH = 150
RATE_LIMIT_WINDOW = 60
RATE_LIMIT_MAX = 30
