# config.py
import os

from dotenv import load_dotenv

# ---- Load .env early ----
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from e


class Config:
    # "firestore" in production, "memory" for local development without Firebase
    SCORING_STORE = os.getenv("SCORING_STORE", "firestore")

    # Firestore transaction attempts before a read-modify-write reports a conflict
    MAX_TXN_ATTEMPTS = _env_int("MAX_TXN_ATTEMPTS", 5)

    # Cards per day before the daily goal counts as met (per-user override in progress doc)
    DEFAULT_DAILY_GOAL = _env_int("DEFAULT_DAILY_GOAL", 10)

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

