"""Settings module: environment variables and constants."""

import os
from pathlib import Path

from dotenv import load_dotenv

# .env lives in the project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# --- Site configuration ---
SITES_FILE = Path(
    os.environ.get("GUNPLA_SITES_FILE", Path(__file__).resolve().parent / "sites.json")
)
STRICT_SITES = os.environ.get("GUNPLA_STRICT_SITES", "").lower() in ("1", "true", "yes")

# --- Storage ---
DATA_DIR = Path(os.environ.get("GUNPLA_DATA_DIR", _PROJECT_ROOT / "data"))
DB_PATH = Path(os.environ.get("GUNPLA_DB_PATH", DATA_DIR / "gunpla.db"))
DEFAULT_RECENT_LIMIT = 10

# --- User-Agent / headers ---
DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/91.0.4472.124 Safari/537.36"
)
REFERER = "https://www.google.com/"

# --- Request settings (milliseconds) ---
DEFAULT_DELAY_MS = 2000
FAST_DELAY_MS = 500
DEFAULT_TIMEOUT_MS = 10000
LONG_TIMEOUT_MS = 30000
MAX_REDIRECTS = 5

# --- Extraction sentinels ---
PRICE_NOT_AVAILABLE = "Price not available"
MISSING_LINK = "#"

# --- Logging ---
LOG_DIR = Path(os.environ.get("GUNPLA_LOG_DIR", Path(__file__).resolve().parent.parent / "logs"))
