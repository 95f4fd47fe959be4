# salon_research/config.py
from dotenv import load_dotenv
import os

load_dotenv()

# API Keys
PERPLEXITY_API_KEY = os.getenv("PERPLEXITY_API_KEY")
GOOGLE_PLACES_API_KEY = os.getenv("GOOGLE_PLACES_API_KEY", "")
USE_GOOGLE_PLACES = bool(GOOGLE_PLACES_API_KEY)

# URLs
PERPLEXITY_API_URL = os.getenv("PERPLEXITY_API_URL", "https://api.perplexity.ai")
PLACES_FIND_URL = "https://maps.googleapis.com/maps/api/place/findplacefromtext/json"
PLACES_DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
PLACES_PHOTO_URL = "https://maps.googleapis.com/maps/api/place/photo"
THUMBNAIL_SERVICE_URL = os.getenv("THUMBNAIL_SERVICE_URL", "")

# Upstream completion parameters
DEFAULT_MODEL = os.getenv("PERPLEXITY_MODEL", "sonar")
SUPPORTED_MODELS = ("sonar", "sonar-pro", "sonar-deep-research")
TEMPERATURE = 0.0
MAX_TOKENS = 4096
REQUEST_TIMEOUT = 60.0

# Request governor
RATE_LIMIT_MAX_REQUESTS = 50
RATE_LIMIT_WINDOW_SECONDS = 60.0
BURST_LIMIT_PER_SECOND = 5
MAX_ATTEMPTS = 5

# Enrichment
PLACE_MATCH_THRESHOLD = 60
PLACES_TIMEOUT = 30.0
THUMBNAIL_TIMEOUT = 10.0
THUMBNAIL_WIDTH = int(os.getenv("THUMBNAIL_WIDTH", "400"))
THUMBNAIL_HEIGHT = int(os.getenv("THUMBNAIL_HEIGHT", "300"))
MAX_THUMBNAILS_PER_SALON = 3

# Cache
CACHE_DIR = os.getenv("CACHE_DIR", ".cache")
CACHE_RETENTION_SECONDS = 7 * 24 * 60 * 60

# Runtime parameters
REQUEST_DELAY = 1.0
TESTING_MODE = os.getenv("TESTING_MODE", "false").lower() in ("true", "1", "yes", "on")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# File names
INPUT_CSV = "suburbs.csv"
OUTPUT_CSV = "salon_research_results.csv"

# Service categories recognized by the system
VALID_SERVICE_CATEGORIES = (
    "Teeth",
    "Cosmetics",
    "Waxing",
    "Brows",
    "Hair",
    "Tan",
    "Skin",
    "Laser",
    "Spa",
    "Lashes",
    "Nails",
    "Makeup",
)
