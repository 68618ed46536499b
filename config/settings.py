"""
Application settings
All knobs come from the environment (.env is loaded for local development).
"""
import os

from dotenv import load_dotenv

load_dotenv()

# Supabase connection
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

PLOTS_TABLE = os.getenv("PLOTS_TABLE", "plots")
BLOCKS_TABLE = os.getenv("BLOCKS_TABLE", "blocks")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "logs")

# Paging
DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", "50"))
MAX_PAGE_LIMIT = 500
CANVAS_FETCH_LIMIT = int(os.getenv("CANVAS_FETCH_LIMIT", "500"))

# CORS
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Bulk numbering
MAX_BULK_PLOTS = int(os.getenv("MAX_BULK_PLOTS", "1000"))

# Canvas sessions idle longer than this (seconds) are dropped; 0 keeps them forever
CANVAS_SESSION_TTL = int(os.getenv("CANVAS_SESSION_TTL", "3600"))
