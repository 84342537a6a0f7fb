import os

from dotenv import load_dotenv

from utils.cache import CacheConfig

# Load environment variables from .env file, if it exists
load_dotenv()

# CORS
DEV_DOMAIN = os.getenv("DEV_DOMAIN", "http://localhost:3000")
PRODUCTION_DOMAIN = os.getenv("PRODUCTION_DOMAIN", "https://schools-in.app")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Firebase
FIREBASE_STORAGE_BUCKET = os.getenv(
    "FIREBASE_STORAGE_BUCKET", "schools-in.appspot.com"
)

# Sessions left open longer than this are closed by the cleanup job
SESSION_TIMEOUT_HOURS = float(os.getenv("SESSION_TIMEOUT_HOURS", "12"))
CLEANUP_MAX_BATCH_SIZE = int(os.getenv("CLEANUP_MAX_BATCH_SIZE", "500"))

# Day boundaries for daily statistics
REPORT_TIMEZONE = os.getenv("REPORT_TIMEZONE", "US/Central")

# Cache
CACHE_MAX_AGE_SECONDS = float(os.getenv("CACHE_MAX_AGE_SECONDS", "1800"))
CACHE_NAMESPACE = os.getenv("CACHE_NAMESPACE", "schools-in")

ADMIN_ROLES = ["admin"]
PROVIDER_ROLE = "provider"
VALID_ROLES = ["provider", "admin"]


def school_cache_config() -> CacheConfig:
    # School records change rarely; keep them twice as long as profiles
    return CacheConfig(
        max_age_seconds=CACHE_MAX_AGE_SECONDS * 2,
        namespace=f"{CACHE_NAMESPACE}:schools",
    )


def user_cache_config() -> CacheConfig:
    return CacheConfig(
        max_age_seconds=CACHE_MAX_AGE_SECONDS,
        namespace=f"{CACHE_NAMESPACE}:users",
    )
