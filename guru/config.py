"""
Guru — Simple Configuration
All config lives in ~/.guru/config.json
"""
import functools
import json
import logging
from datetime import datetime
from pathlib import Path

import pytz

logger = logging.getLogger("guru.config")

CONFIG_DIR = Path.home() / ".guru"
CONFIG_FILE = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"

# Defaults
DEFAULT_CONFIG = {
    "name": "",
    "timezone": "UTC",
    # Chart + advisory services (Netlify functions)
    "api_base": "http://localhost:8888",
    "api_timeout": 30,
    # Delivery
    "telegram_token": "",
    "telegram_user_id": "",
    # Whose nudges this process runs
    "subject_id": "",
    # Cadences (seconds)
    "poll_interval": 3600,
    "evaluate_interval": 300,
    # Dasha monitor
    "lookahead_days": 35,
    "scanner_policy": "first_listed",  # or "earliest"
}


def ensure_dirs():
    """Create all required directories."""
    for d in [CONFIG_DIR, LOGS_DIR]:
        d.mkdir(parents=True, exist_ok=True)


def load_config() -> dict:
    """Load config from ~/.guru/config.json."""
    ensure_dirs()
    if CONFIG_FILE.exists():
        with open(CONFIG_FILE) as f:
            stored = json.load(f)
            # Merge with defaults (adds any new keys)
            config = {**DEFAULT_CONFIG, **stored}
            return config
    return DEFAULT_CONFIG.copy()


def save_config(config: dict):
    """Save config to ~/.guru/config.json."""
    ensure_dirs()
    with open(CONFIG_FILE, "w") as f:
        json.dump(config, f, indent=2)


def get_timezone(config: dict):
    """Resolve the configured timezone, falling back to UTC."""
    tz_name = config.get("timezone", "UTC") or "UTC"
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown timezone %r — using UTC", tz_name)
        return pytz.utc


def local_now(config: dict) -> datetime:
    """Current wall-clock time in the subject's timezone."""
    return datetime.now(get_timezone(config))


def make_clock(config: dict):
    """Zero-arg clock for the session: local_now bound to this config."""
    return functools.partial(local_now, config)
