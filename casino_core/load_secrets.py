import os
from dotenv import load_dotenv

load_dotenv()

user = os.getenv("DB_USER")
password = os.getenv("DB_PASSWORD")
host = os.getenv("DB_HOST", "localhost")
port = os.getenv("DB_PORT", "5432")
db_name = os.getenv("DB_NAME", "casino")

# postgres | sqlite | memory
ledger_backend = os.getenv("LEDGER_BACKEND", "postgres")
sqlite_path = os.getenv("SQLITE_PATH")

redis_host = os.getenv("REDIS_HOST", "redis")
redis_port = int(os.getenv("REDIS_PORT", "6379"))

geo_service_url = os.getenv("GEO_SERVICE_URL", "https://ipapi.co")
geo_timeout_seconds = float(os.getenv("GEO_TIMEOUT_SECONDS", "5"))

guest_reset_hours = int(os.getenv("GUEST_RESET_HOURS", "24"))
demo_rng_enabled = os.getenv("DEMO_RNG_ENABLED", "false").lower() in ("1", "true", "yes")
hit_soft_17 = os.getenv("HIT_SOFT_17", "false").lower() in ("1", "true", "yes")

# comma-separated proxy addresses whose X-Forwarded-For header is honoured
trusted_proxies = [ip.strip() for ip in os.getenv("TRUSTED_PROXIES", "").split(",") if ip.strip()]
