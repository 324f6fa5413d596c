"""Centralized configuration for the storefront API."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Determine project root (parent of 'web' directory)
_THIS_DIR = Path(__file__).parent
_PROJECT_ROOT = _THIS_DIR.parent

load_dotenv(dotenv_path=_PROJECT_ROOT / ".env")

# Flask app settings (allow env overrides; default debug off for safety)
# Hosting platforms set PORT dynamically; fall back to FLASK_PORT or 5000 for local.
FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
FLASK_PORT = int(os.getenv("FLASK_PORT", os.getenv("PORT", "5000")))
FLASK_DEBUG = os.getenv("FLASK_DEBUG", "False").lower() == "true"

# Listing limits
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

# Admin uploads
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "10"))
ALLOWED_UPLOAD_EXTENSIONS = {".xlsx", ".csv"}

# Response for unexpected errors
FALLBACK_MESSAGE = "Something went wrong. Please reload the page or go back home."
FALLBACK_ACTIONS = ["reload", "home"]
