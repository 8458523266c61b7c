"""
OData Shop - Centralized Configuration
=======================================
All environment variables and constants are loaded here.
No other module should call os.getenv() directly.
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


# ==========================================
# 🗄️ Database
# ==========================================
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME")

if os.getenv("DATABASE_URL"):
    DATABASE_URL = os.getenv("DATABASE_URL")
elif all([DB_USER, DB_PASSWORD, DB_HOST, DB_NAME]):
    DATABASE_URL = f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
else:
    # Local development falls back to a file database next to the app
    DATABASE_URL = "sqlite:///./odata_shop.db"

DB_ECHO = _flag("DB_ECHO")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "40"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "1800"))  # Refresh connections every 30 minutes


# ==========================================
# 🔧 App
# ==========================================
APP_TITLE = "OData Shop"
APP_VERSION = "1.0.0"
DEBUG = _flag("DEBUG")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SEED_ON_STARTUP = _flag("SEED_ON_STARTUP", "true")


# ==========================================
# 🔎 OData Query Limits
# ==========================================
ODATA_MAX_TOP = int(os.getenv("ODATA_MAX_TOP", "1000"))
ODATA_DEFAULT_TOP = int(os.getenv("ODATA_DEFAULT_TOP") or "0")  # 0 = no implicit page size
ODATA_MAX_EXPANSION_DEPTH = int(os.getenv("ODATA_MAX_EXPANSION_DEPTH", "3"))
ODATA_MAX_ORDERBY_FIELDS = int(os.getenv("ODATA_MAX_ORDERBY_FIELDS", "10"))


# ==========================================
# 📦 Orders
# ==========================================
RECENT_ORDERS_MAX_DAYS = int(os.getenv("RECENT_ORDERS_MAX_DAYS", "365"))
