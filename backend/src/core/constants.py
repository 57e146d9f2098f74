"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_REASON_LENGTH = 1000  # Free-text symptoms / reason for visit

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
# Production URLs should be added via FRONTEND_URL environment variable
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # React dev server (Vite)
    "http://localhost:3000",      # Next.js dev server
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Week order used for listing slot rules (Bangladesh work week starts on Saturday)
WEEK_ORDER = [
    "SATURDAY",
    "SUNDAY",
    "MONDAY",
    "TUESDAY",
    "WEDNESDAY",
    "THURSDAY",
    "FRIDAY",
]

# Queue wait estimate shown to patients
ESTIMATED_MINUTES_PER_PATIENT = 15
