"""
Firebase Config Module

Initialises the firebase_admin default app and hands out a shared Firestore
client for the reconciliation scripts and the HTTP API.

Credential lookup order:
    1. FIREBASE_CREDENTIALS environment variable
    2. GOOGLE_APPLICATION_CREDENTIALS environment variable
    3. serviceAccountKey.json at the project root

When FIRESTORE_EMULATOR_HOST is set and no key file is found, the client
is built with anonymous credentials and talks to the local emulator;
FIREBASE_PROJECT_ID names the emulated project (default demo-driver-balance).

Functions:
    get_db: Get the shared Firestore client (or None if unavailable).
"""

import logging
import os
from pathlib import Path
from typing import Optional

import firebase_admin
from dotenv import load_dotenv
from firebase_admin import credentials, firestore
from google.auth.credentials import AnonymousCredentials
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import firestore as gcloud_firestore

load_dotenv()

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CREDENTIALS_PATH = PROJECT_ROOT / "serviceAccountKey.json"
DEFAULT_EMULATOR_PROJECT = "demo-driver-balance"

_db = None


def _credentials_path() -> Optional[Path]:
    """
    Resolve the service account JSON path.

    Returns:
        Path | None: Path to an existing credentials file, or None.
    """
    for candidate in (
        os.getenv("FIREBASE_CREDENTIALS"),
        os.getenv("GOOGLE_APPLICATION_CREDENTIALS"),
        str(DEFAULT_CREDENTIALS_PATH),
    ):
        if candidate and Path(candidate).is_file():
            return Path(candidate)
    return None


def _project_id() -> Optional[str]:
    return os.getenv("FIREBASE_PROJECT_ID") or os.getenv("GCLOUD_PROJECT")


def _emulator_client():
    """
    Firestore client for the local emulator.

    The emulator ignores credentials, so no service account or ADC is
    needed; project IDs starting with "demo-" never reach production.
    """
    return gcloud_firestore.Client(
        project=_project_id() or DEFAULT_EMULATOR_PROJECT,
        credentials=AnonymousCredentials()
    )


def _init_app() -> firebase_admin.App:
    """Initialise the default firebase_admin app, reusing it if it exists."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    cred_path = _credentials_path()
    if cred_path is not None:
        return firebase_admin.initialize_app(credentials.Certificate(str(cred_path)))

    project_id = _project_id()
    options = {"projectId": project_id} if project_id else None

    return firebase_admin.initialize_app(credentials.ApplicationDefault(), options)


def get_db():
    """
    Get the shared Firestore client.

    Returns:
        firestore.Client | None: The client, or None if Firebase could not
        be initialised (missing credentials, bad key file, ...).
    """
    global _db
    if _db is not None:
        return _db

    try:
        if os.getenv("FIRESTORE_EMULATOR_HOST") and _credentials_path() is None:
            _db = _emulator_client()
        else:
            _db = firestore.client(_init_app())
    except (ValueError, OSError, DefaultCredentialsError) as e:
        logger.error("Could not initialise Firestore: %s", e)
        return None

    return _db
