"""
Configuration
-------------
Environment-driven settings for the matching service, loaded from .env
via python-dotenv.

    STORE_BACKEND              memory | firestore (default: memory)
    PROJECT_ID                 GCP project, required for the firestore backend
    REPORTS_COLLECTION         Firestore collection for reports
    MATCHES_COLLECTION         Firestore collection for matches
    MATCH_RADIUS_KM            candidate search radius (default: 50)
    AUTO_MATCH_MIN_CONFIDENCE  auto-create threshold (default: 0.8)
    STRICT_STATUS_TRANSITIONS  enforce the match status graph (default: false)
    AUTO_MATCH_ON_REGISTER     auto-match new reports on registration (default: true)
    LOG_FILE                   API log file (default: activity.log)
    API_PORT                   default API port (default: 8000)
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


STORE_BACKEND = os.getenv("STORE_BACKEND", "memory").strip().lower()
PROJECT_ID = os.getenv("PROJECT_ID")

REPORTS_COLLECTION = os.getenv("REPORTS_COLLECTION", "lost_found_reports")
MATCHES_COLLECTION = os.getenv("MATCHES_COLLECTION", "device_matches")

MATCH_RADIUS_KM = float(os.getenv("MATCH_RADIUS_KM", 50))
AUTO_MATCH_MIN_CONFIDENCE = float(os.getenv("AUTO_MATCH_MIN_CONFIDENCE", 0.8))
STRICT_STATUS_TRANSITIONS = _env_flag("STRICT_STATUS_TRANSITIONS", False)
AUTO_MATCH_ON_REGISTER = _env_flag("AUTO_MATCH_ON_REGISTER", True)

LOG_FILE = os.getenv("LOG_FILE", "activity.log")
API_PORT = int(os.getenv("API_PORT", 8000))
