"""
config.py
Environment configuration (.env is loaded if present).
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

# SQLite file used by db.py
DATABASE_PATH = os.getenv("DATABASE_PATH", "studio.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Language of the fixed-rate descriptor in reports: 'ko' -> 고정, 'en' -> fixed
RATE_LABEL_LANG = os.getenv("RATE_LABEL_LANG", "ko").lower()

FIXED_RATE_LABELS = {
    "ko": "고정",
    "en": "fixed",
}


def fixed_rate_label(lang: str | None = None) -> str:
    return FIXED_RATE_LABELS.get(lang or RATE_LABEL_LANG, FIXED_RATE_LABELS["ko"])


def setup_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=getattr(logging, level or LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
