"""
Service Settings
================

Process-level settings for the sniper service, read from the environment.
A .env file in the project root is loaded first if present.
"""

import os
from pathlib import Path

# Load .env file from project root
from dotenv import load_dotenv

_project_root = Path(__file__).parent.parent
_env_path = _project_root / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


# =============================================================================
# TRADING SETTINGS
# =============================================================================

# SOL committed per opened position
STAKE_SOL = float(os.environ.get("SNIPER_STAKE_SOL", "0.1"))

# Share of each stake held back for moon mode
MOON_FRACTION = float(os.environ.get("SNIPER_MOON_FRACTION", "0.2"))

# Upper bound on concurrently monitored positions
MAX_OPEN_POSITIONS = int(os.environ.get("SNIPER_MAX_OPEN_POSITIONS", "5"))

# =============================================================================
# MONITOR TIMING
# =============================================================================

POLL_INTERVAL_SECONDS = float(os.environ.get("SNIPER_POLL_INTERVAL_SEC", "0.5"))
FEED_TIMEOUT_SECONDS = float(os.environ.get("SNIPER_FEED_TIMEOUT_SEC", "0.4"))
MAX_FEED_FAILURES = int(os.environ.get("SNIPER_MAX_FEED_FAILURES", "4"))

# "fail_closed" force-sells on feed exhaustion, "fail_open" stops monitoring and alerts
FEED_EXHAUSTION_POLICY = os.environ.get("SNIPER_FEED_EXHAUSTION_POLICY", "fail_closed")

# Discovery poll frequency
SCAN_INTERVAL_SECONDS = float(os.environ.get("SNIPER_SCAN_INTERVAL_SEC", "0.2"))

# =============================================================================
# API ENDPOINTS
# =============================================================================

PUMP_FUN_COINS_URL = os.environ.get(
    "PUMP_FUN_COINS_URL",
    "https://frontend-api.pump.fun/coins?limit=50&offset=0&sort=created_timestamp&order=DESC",
)
DEXSCREENER_TOKENS_URL = os.environ.get(
    "DEXSCREENER_TOKENS_URL",
    "https://api.dexscreener.com/latest/dex/tokens",
)

# =============================================================================
# TELEGRAM SETTINGS
# =============================================================================

TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN", "")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID", "")

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FILE = os.environ.get("LOG_FILE", str(_project_root / "logs" / "sniper.log"))
