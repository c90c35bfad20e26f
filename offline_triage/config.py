"""
Configuration Module
====================
Runtime settings for the offline triage engine. Values come from the
process environment, with a local ``.env`` file loaded first so a device
build can ship its own defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()
logger = logging.getLogger(__name__)

BACKEND_RULES = "rules"
BACKEND_NATIVE = "native"
BACKEND_WEB = "web"

DEFAULT_KB_LOAD_TIMEOUT = 5.0
DEFAULT_EMERGENCY_NUMBER = "108"
DEFAULT_SERVER_PORT = 8002


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using default %s.", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using default %s.", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    """Immutable engine configuration.

    Attributes:
        knowledge_path: JSON knowledge file. None means the embedded
            baseline catalog is used directly.
        kb_load_timeout: Seconds to wait for the knowledge source before
            falling back to the baseline.
        inference_backend: One of "rules", "native" or "web".
        model_path: On-device model file for the native backend.
        model_endpoint: Base URL of the hosted model for the web backend.
        emergency_number: Phone number quoted in emergency actions.
        server_port: Port used by triage_server.py.
    """

    knowledge_path: Optional[str] = None
    kb_load_timeout: float = DEFAULT_KB_LOAD_TIMEOUT
    inference_backend: str = BACKEND_RULES
    model_path: Optional[str] = None
    model_endpoint: Optional[str] = None
    emergency_number: str = DEFAULT_EMERGENCY_NUMBER
    server_port: int = DEFAULT_SERVER_PORT

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current environment."""
        backend = os.getenv("TRIAGE_INFERENCE_BACKEND", BACKEND_RULES).strip().lower()
        if backend not in (BACKEND_RULES, BACKEND_NATIVE, BACKEND_WEB):
            logger.warning(
                "Unknown TRIAGE_INFERENCE_BACKEND=%r, using rule-only mode.", backend
            )
            backend = BACKEND_RULES

        emergency_number = os.getenv("TRIAGE_EMERGENCY_NUMBER", "").strip()
        return cls(
            knowledge_path=os.getenv("TRIAGE_KNOWLEDGE_PATH") or None,
            kb_load_timeout=_env_float("TRIAGE_KB_LOAD_TIMEOUT", DEFAULT_KB_LOAD_TIMEOUT),
            inference_backend=backend,
            model_path=os.getenv("TRIAGE_MODEL_PATH") or None,
            model_endpoint=os.getenv("TRIAGE_MODEL_ENDPOINT") or None,
            emergency_number=emergency_number or DEFAULT_EMERGENCY_NUMBER,
            server_port=_env_int("TRIAGE_SERVER_PORT", DEFAULT_SERVER_PORT),
        )
