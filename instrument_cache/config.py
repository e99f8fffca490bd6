# instrument_cache/config.py
import os
from dotenv import load_dotenv
load_dotenv()  # loads .env in dev; in production we use plain env vars

# Instruments catalog source (gzip-compressed JSON array)
INSTRUMENTS_URL = os.getenv(
    "INSTRUMENTS_URL",
    "https://assets.upstox.com/market-quote/instruments/exchange/complete.json.gz",
)
FETCH_TIMEOUT_SEC = float(os.getenv("FETCH_TIMEOUT_SEC", "60"))
FETCH_CHUNK_SIZE = int(os.getenv("FETCH_CHUNK_SIZE", "65536"))

# Daily refresh schedule (process-local time unless REFRESH_TIMEZONE is set)
REFRESH_HOUR = int(os.getenv("REFRESH_HOUR", "7"))
REFRESH_MINUTE = int(os.getenv("REFRESH_MINUTE", "0"))
REFRESH_TIMEZONE = os.getenv("REFRESH_TIMEZONE") or None

# Immediate retries on network failure (1 = no retry; next daily run is the retry)
REFRESH_MAX_ATTEMPTS = int(os.getenv("REFRESH_MAX_ATTEMPTS", "1"))
REFRESH_RETRY_DELAY_SEC = float(os.getenv("REFRESH_RETRY_DELAY_SEC", "5"))

# Await the first refresh before serving requests
STARTUP_REFRESH_BLOCKING = os.getenv("STARTUP_REFRESH_BLOCKING", "true").lower() == "true"

# CORS
ALLOW_ORIGINS = os.getenv("ALLOW_ORIGINS", "*")
