"""
Firebase Admin bootstrap for code running outside Cloud Functions (scripts,
workers, the reader in a local process).

Inside Cloud Functions `functions/main.py` initializes the default app itself;
this module adds a guard so a developer machine never talks to production
Firestore by accident.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Optional

import firebase_admin
import google.auth
from firebase_admin import credentials, firestore
from google.auth import exceptions as gauth_exc

from optify.common import config


logger = logging.getLogger(__name__)

_MANAGED_RUNTIME_VARS = ("K_SERVICE", "FUNCTION_TARGET")
_init_lock = threading.Lock()


def _env_set(name: str) -> bool:
    return bool((os.getenv(name) or "").strip())


def is_local_execution() -> bool:
    """
    True unless running on a managed Google runtime (Cloud Run, Cloud Functions
    gen1/gen2, App Engine). ENV=local forces True.
    """
    if (os.getenv("ENV") or "").strip().lower() == "local":
        return True
    if any(_env_set(name) for name in _MANAGED_RUNTIME_VARS):
        return False
    return not any(k.startswith("GAE_") for k in os.environ)


def require_firestore_emulator_or_allow_prod(*, caller: str) -> None:
    """
    Exit with status 2 when a local process would reach production Firestore.

    Allowed locally only with FIRESTORE_EMULATOR_HOST set, or with the explicit
    override ALLOW_PROD_FIRESTORE=1.
    """
    if not is_local_execution() or _env_set("FIRESTORE_EMULATOR_HOST"):
        return
    if (os.getenv("ALLOW_PROD_FIRESTORE") or "").strip() == "1":
        logger.warning("firestore.prod_override caller=%s", caller)
        return

    logger.error(
        "Refusing to use production Firestore from local execution (caller=%s). "
        "Set FIRESTORE_EMULATOR_HOST (e.g. 127.0.0.1:8080) or ALLOW_PROD_FIRESTORE=1.",
        caller,
    )
    raise SystemExit(2)


def _resolve_project_id(explicit: Optional[str]) -> str:
    project_id = explicit or config.firebase_project_id()
    if project_id:
        return project_id
    try:
        _, project_id = google.auth.default()
    except gauth_exc.DefaultCredentialsError:
        project_id = None
    if not project_id:
        raise RuntimeError("Firebase project id not found: set FIREBASE_PROJECT_ID or configure ADC with a project.")
    return project_id


def init_firebase_admin(*, project_id: Optional[str] = None) -> None:
    """Initialize the default Firebase app once, with Application Default Credentials."""
    require_firestore_emulator_or_allow_prod(caller="optify.persistence.firebase_client")
    with _init_lock:
        if firebase_admin._apps:
            return
        try:
            cred = credentials.ApplicationDefault()
        except gauth_exc.DefaultCredentialsError as e:
            raise RuntimeError(
                "Application Default Credentials unavailable; run `gcloud auth application-default login`."
            ) from e
        resolved = _resolve_project_id(project_id)
        firebase_admin.initialize_app(cred, {"projectId": resolved})
        logger.info("firebase_admin initialized project=%s", resolved)


def get_firestore_client(*, project_id: Optional[str] = None):
    init_firebase_admin(project_id=project_id)
    return firestore.client()
