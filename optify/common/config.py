"""
Environment-backed configuration.

All values are read at call time (never at import time) so tests can
monkeypatch the environment freely.
"""

from __future__ import annotations

import os
from typing import Optional


DEFAULT_TIMEZONE = "America/Sao_Paulo"
DEFAULT_FUNCTIONS_REGION = "us-central1"
DEFAULT_HTTP_TIMEOUT_S = 60.0


def _env_any(*names: str, default: str = "unknown") -> str:
    for name in names:
        v = os.getenv(name)
        if v is None:
            continue
        s = str(v).strip()
        if s:
            return s
    return default


def _parse_float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError:
        return float(default)


def service_name() -> str:
    return _env_any("SERVICE_NAME", "K_SERVICE", "FUNCTION_TARGET", default="optify")


def env_name() -> str:
    return _env_any("ENVIRONMENT", "ENV", "APP_ENV", default="unknown")


def service_version() -> str:
    return _env_any("APP_VERSION", "VERSION", "K_REVISION", default="unknown")


def log_level() -> str:
    return _env_any("LOG_LEVEL", default="INFO").upper()


def business_timezone() -> str:
    """IANA timezone used to bucket 'today', 'this week', etc."""
    return _env_any("OPTIFY_TIMEZONE", default=DEFAULT_TIMEZONE)


def firebase_project_id(*, required: bool = False) -> Optional[str]:
    pid = _env_any(
        "FIREBASE_PROJECT_ID",
        # Back-compat with the GCP-provided names.
        "GOOGLE_CLOUD_PROJECT",
        "GCLOUD_PROJECT",
        default="",
    )
    if pid:
        return pid
    if required:
        raise RuntimeError("Missing required env var: FIREBASE_PROJECT_ID (or GOOGLE_CLOUD_PROJECT)")
    return None


def functions_region() -> str:
    return _env_any("OPTIFY_FUNCTIONS_REGION", default=DEFAULT_FUNCTIONS_REGION)


def functions_base_url() -> str:
    """
    Base URL for HTTPS callable functions.

    OPTIFY_FUNCTIONS_BASE_URL wins (emulator: http://127.0.0.1:5001/<project>/<region>).
    Otherwise the default Cloud Functions host is derived from region + project.
    """
    explicit = _env_any("OPTIFY_FUNCTIONS_BASE_URL", default="")
    if explicit:
        return explicit.rstrip("/")
    project_id = firebase_project_id(required=True)
    return f"https://{functions_region()}-{project_id}.cloudfunctions.net"


def http_timeout_s() -> float:
    return _parse_float_env("OPTIFY_HTTP_TIMEOUT_S", DEFAULT_HTTP_TIMEOUT_S)
