"""Constants for the PetChain offline sync client."""

DOMAIN = "petchain"

# Persistent store keys. These are part of the on-disk format; do not rename.
STORAGE_PREFIX = f"@{DOMAIN}"
KEY_PENDING_QUEUE = f"{STORAGE_PREFIX}/pending_queue"
KEY_FAILED_QUEUE = f"{STORAGE_PREFIX}/failed_queue"
KEY_SYNC_STATUS = f"{STORAGE_PREFIX}/sync_status"
KEY_ACCESS_TOKEN = f"{STORAGE_PREFIX}/access_token"
KEY_REFRESH_TOKEN = f"{STORAGE_PREFIX}/refresh_token"

MAX_RETRIES = 3

CONF_BASE_URL = "base_url"
CONF_STORE_PATH = "store_path"
CONF_TIMEOUT = "timeout"
CONF_SYNC_INTERVAL = "sync_interval"

ENV_BASE_URL = "PETCHAIN_API_BASE_URL"

DEFAULT_BASE_URL = "http://localhost:3000/api"
DEFAULT_STORE_PATH = ".petchain-sync.db"
DEFAULT_TIMEOUT = 30.0
DEFAULT_SYNC_INTERVAL = 60
MIN_SYNC_INTERVAL = 15

REFRESH_PATH = "/auth/refresh"
LOGIN_PATH = "/auth/login"

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}
