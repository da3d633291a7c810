# services/firebase.py
import os, json
import logging
import firebase_admin
from firebase_admin import credentials, firestore
from pathlib import Path

logger = logging.getLogger(__name__)

_db = None
_REPO_ROOT = Path(__file__).resolve().parents[1]


def _resolve_cred():
    json_blob = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
    if json_blob:
        return credentials.Certificate(json.loads(json_blob))

    p = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    if p:
        p = p.strip().strip('"').strip("'")
        p = os.path.expanduser(os.path.expandvars(p))
        if os.path.exists(p):
            return credentials.Certificate(p)
        # Try repo-relative
        fallback = _REPO_ROOT / "firebase" / "credentials" / Path(p).name
        if fallback.exists():
            return credentials.Certificate(str(fallback))

    # Try first .json under firebase/credentials
    cred_dir = _REPO_ROOT / "firebase" / "credentials"
    if cred_dir.exists():
        matches = list(cred_dir.glob("*.json"))
        if matches:
            return credentials.Certificate(str(matches[0]))

    # On Cloud Run, default credentials (attached service account) will work
    return None


def init_firebase_admin():
    """Initialize the default Firebase app once per process (token verification + Firestore)."""
    if firebase_admin._apps:
        return firebase_admin.get_app()
    cred = _resolve_cred()
    if cred is not None:
        logger.info("Initializing Firebase with service account credentials")
        app = firebase_admin.initialize_app(cred)
    else:
        logger.info("Initializing Firebase with default credentials")
        app = firebase_admin.initialize_app()
    logger.info("Firebase initialized successfully")
    return app


def get_db():
    global _db
    if _db is not None:
        return _db
    init_firebase_admin()
    _db = firestore.client()
    return _db
