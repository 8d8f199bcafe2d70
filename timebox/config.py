"""
Timebox — Centralized configuration.

Loads all settings from .env and validates the document store selection.
Every other module reads its tunables (cache TTL, write quiet period,
remote store credentials) from the singleton defined here.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from timebox/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Remote document store: "memory" | "firestore"
    DOCUMENT_STORE: str = "memory"

    # Cache Layer
    CACHE_TTL_SECONDS: float = 300.0

    # Write Coalescer quiet period
    WRITE_DEBOUNCE_SECONDS: float = 1.0

    # Firestore (only needed when DOCUMENT_STORE=firestore)
    FIRESTORE_PROJECT_ID: str = ""
    FIRESTORE_DATABASE: str = "(default)"
    FIRESTORE_ID_TOKEN: str = ""
    FIRESTORE_POLL_INTERVAL_SECONDS: float = 5.0

    @field_validator("DOCUMENT_STORE", mode="before")
    @classmethod
    def normalize_store(cls, v: str) -> str:
        return (v or "memory").strip().lower()

    @field_validator(
        "CACHE_TTL_SECONDS",
        "WRITE_DEBOUNCE_SECONDS",
        "FIRESTORE_POLL_INTERVAL_SECONDS",
        mode="before",
    )
    @classmethod
    def parse_seconds(cls, v: str | float) -> float:
        seconds = float(v)
        if seconds < 0:
            raise ValueError("durations must be non-negative")
        return seconds


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    store = os.getenv("DOCUMENT_STORE", "memory")
    project_id = os.getenv("FIRESTORE_PROJECT_ID", "")

    if store.strip().lower() == "firestore" and not project_id:
        print(
            "ERROR: FIRESTORE_PROJECT_ID is required when DOCUMENT_STORE=firestore",
            file=sys.stderr,
        )
        sys.exit(1)

    return Settings(
        DOCUMENT_STORE=store,
        CACHE_TTL_SECONDS=os.getenv("CACHE_TTL_SECONDS", "300"),
        WRITE_DEBOUNCE_SECONDS=os.getenv("WRITE_DEBOUNCE_SECONDS", "1.0"),
        FIRESTORE_PROJECT_ID=project_id,
        FIRESTORE_DATABASE=os.getenv("FIRESTORE_DATABASE", "(default)"),
        FIRESTORE_ID_TOKEN=os.getenv("FIRESTORE_ID_TOKEN", ""),
        FIRESTORE_POLL_INTERVAL_SECONDS=os.getenv("FIRESTORE_POLL_INTERVAL_SECONDS", "5.0"),
    )


# Singleton, imported by all other modules as:
#   from timebox.config import settings
settings = _load_settings()
