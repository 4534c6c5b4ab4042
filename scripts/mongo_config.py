"""Shared MongoDB config for MessMass maintenance scripts.

Reads settings from the environment, after loading .env.local and .env from
the repository root (real environment variables always win).

Environment variables:
  MONGODB_URI        — full connection string (required for database scripts)
  MONGODB_DB         — database name (default: messmass)
  APP_BASE_URL       — running admin app, for API cross-checks (default: http://localhost:3001)
  BITLY_ACCESS_TOKEN — Bitly v4 API token (only sync_bitly_links.py needs it)
  GOOGLE_SHEETS_SERVICE_ACCOUNT_EMAIL, GOOGLE_SHEETS_PRIVATE_KEY
                     — service account for diagnose_google_sheets.py
  API_FOOTBALL_KEY   — API-Football key (diagnose_sports_apis.py)
  SPORTSDB_API_KEY   — TheSportsDB key (default: the free key "3")
  DRY_RUN            — "1" previews changes without writing
"""

import os
import sys

from dotenv import load_dotenv
from pymongo import MongoClient

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
REPO_ROOT = os.path.join(SCRIPT_DIR, "..")
BACKUP_DIR = os.path.join(SCRIPT_DIR, "backups")

# .env.local first so it takes precedence over .env; neither overrides the shell
load_dotenv(os.path.join(REPO_ROOT, ".env.local"))
load_dotenv(os.path.join(REPO_ROOT, ".env"))

MONGODB_URI = os.environ.get("MONGODB_URI", "")
MONGODB_DB = os.environ.get("MONGODB_DB", "messmass")
APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:3001").rstrip("/")
BITLY_ACCESS_TOKEN = os.environ.get("BITLY_ACCESS_TOKEN", "")
GOOGLE_SHEETS_SERVICE_ACCOUNT_EMAIL = os.environ.get("GOOGLE_SHEETS_SERVICE_ACCOUNT_EMAIL", "")
GOOGLE_SHEETS_PRIVATE_KEY = os.environ.get("GOOGLE_SHEETS_PRIVATE_KEY", "")
API_FOOTBALL_KEY = os.environ.get("API_FOOTBALL_KEY", "")
SPORTSDB_API_KEY = os.environ.get("SPORTSDB_API_KEY") or "3"


def dry_run(default="0"):
    return os.environ.get("DRY_RUN", default) == "1"


def connect(uri=None, db_name=None):
    """Open a client, ping the server and return (client, db).

    Exits with status 1 when no connection string is configured.
    """
    uri = uri or MONGODB_URI
    db_name = db_name or MONGODB_DB
    if not uri:
        print("[FATAL] MONGODB_URI is not set (export it or add it to .env.local)")
        sys.exit(1)

    client = MongoClient(uri, serverSelectionTimeoutMS=10000)
    db = client[db_name]
    db.command("ping")
    print(f"Connected to MongoDB: {db_name}")
    return client, db
