import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=False)


def _env(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else v.strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(_env(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(_env(name, str(default)))
    except ValueError:
        return default


# ---------- backend ----------
BASE_URL = _env("DUTY_BASE_URL", "http://localhost:54321")
API_KEY = _env("DUTY_API_KEY", "")
IDENTITY = _env("DUTY_IDENTITY", "")
PASSWORD = _env("DUTY_PASSWORD", "")
REQUEST_TIMEOUT = _env_float("DUTY_REQUEST_TIMEOUT", 10.0)

TABLE_PROFILES = "profiles"
TABLE_TASKS = "tasks"
TABLE_RECURRING = "recurring_tasks"
TABLE_NOTIFICATIONS = "notifications"

# ---------- push relay ----------
PUSH_URL = _env("DUTY_PUSH_URL", "https://exp.host/--/api/v2/push/send")
# device token handed out by the push relay; empty disables registration
PUSH_TOKEN = _env("DUTY_PUSH_TOKEN", "")

# ---------- day boundaries ----------
# fixed offset of the zone the whole app lives in (hours east of UTC)
TZ_OFFSET_HOURS = _env_int("DUTY_TZ_OFFSET_HOURS", 3)
COMPLETE_DELAY_MS = _env_int("DUTY_COMPLETE_DELAY_MS", 1000)

# ---------- device ----------
STORAGE_PATH = Path(_env("DUTY_STORAGE_PATH", "~/.duty/storage.json")).expanduser()
LOG_DIR = Path(_env("DUTY_LOG_DIR", ".local/duty")).expanduser()
LOG_LEVEL = _env("DUTY_LOG_LEVEL", "INFO").upper()
