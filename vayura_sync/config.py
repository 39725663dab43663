from pydantic import BaseModel
from dotenv import load_dotenv
import os

load_dotenv()  # loads .env if present

class Settings(BaseModel):
    api_base_url: str = os.getenv("VAYURA_API_BASE_URL", "http://localhost:3000")
    cache_path: str = os.getenv("VAYURA_CACHE_PATH", ".cache/vayura-offline-cache.db")

    # district reports: small, long-lived
    detail_capacity: int = int(os.getenv("VAYURA_DETAIL_CAPACITY", "10"))
    detail_validity_seconds: float = float(os.getenv("VAYURA_DETAIL_VALIDITY_SECONDS", str(24 * 60 * 60)))

    # search results: larger, volatile
    search_capacity: int = int(os.getenv("VAYURA_SEARCH_CAPACITY", "100"))
    search_validity_seconds: float = float(os.getenv("VAYURA_SEARCH_VALIDITY_SECONDS", str(60 * 60)))

    fetch_timeout_seconds: float = float(os.getenv("VAYURA_FETCH_TIMEOUT_SECONDS", "8"))
    probe_interval_seconds: float = float(os.getenv("VAYURA_PROBE_INTERVAL_SECONDS", "15"))
    log_level: str = os.getenv("VAYURA_LOG_LEVEL", "INFO")

settings = Settings()
