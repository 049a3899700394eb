"""
config.py — Loads settings.yaml and environment variables.
Provides typed access to all configuration.
"""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Project root directory
PROJECT_ROOT = Path(__file__).parent

# Load settings.yaml
SETTINGS_PATH = PROJECT_ROOT / "settings.yaml"
with open(SETTINGS_PATH, "r") as f:
    _settings = yaml.safe_load(f)


# --- REST backend ---
API_BASE_URL = os.getenv("API_BASE_URL", _settings["api"]["base_url"]).rstrip("/")
HTTP_TIMEOUT = float(_settings["api"]["timeout_seconds"])
CHAT_PAGE_LIMIT = int(_settings["api"]["chat_page_limit"])

# --- Ledger ---
RPC_URL = os.getenv("RPC_URL", _settings["ledger"]["rpc_url"])
WALLET_RPC_URL = os.getenv("WALLET_RPC_URL", "")
WALLET_ADDRESS = os.getenv("WALLET_ADDRESS", "")
JOB_FACTORY_ADDRESS = os.getenv("JOB_FACTORY_ADDRESS", _settings["ledger"]["job_factory_address"])
DISPUTE_DAO_ADDRESS = os.getenv("DISPUTE_DAO_ADDRESS", _settings["ledger"]["dispute_dao_address"])

# --- Disputes & jobs ---
VOTING_WINDOW_DAYS = int(_settings["disputes"]["voting_window_days"])
PAYOUT_INTERVAL_DAYS = int(_settings["jobs"]["payout_interval_days"])

# --- Display labels ---
UNKNOWN_LABEL = _settings["labels"]["unknown"]
UNKNOWN_WORKER_LABEL = _settings["labels"]["unknown_worker"]

# --- Session storage ---
TOKEN_DB_PATH = PROJECT_ROOT / _settings["session"]["token_db"]

# --- Logging ---
LOG_DIR = PROJECT_ROOT / "logs"
LOG_FILE = LOG_DIR / "job_market_sync.log"


def validate_config():
    """Check that critical configuration is present."""
    warnings = []

    if not JOB_FACTORY_ADDRESS:
        warnings.append("JOB_FACTORY_ADDRESS is not set — job listings will be empty")
    if not DISPUTE_DAO_ADDRESS:
        warnings.append("DISPUTE_DAO_ADDRESS is not set — falling back to the factory's DAO address")
    if not WALLET_RPC_URL:
        warnings.append("WALLET_RPC_URL is not set — running read-only, identity stages stay empty")
    if not API_BASE_URL.startswith(("http://", "https://")):
        warnings.append(f"API_BASE_URL looks invalid: {API_BASE_URL!r}")

    return warnings
