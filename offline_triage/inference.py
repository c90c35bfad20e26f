"""
Inference Backend Module
========================
Optional model runtimes the engine can report as available. The backend is
chosen once, when the engine is built, and injected; triage decisions stay
rule-based whichever backend is active.

Variants:
  - RuleOnlyBackend: no model, the default for offline devices.
  - NativeBackend: an on-device ONNX model opened with onnxruntime.
  - WebBackend: a hosted model reachable over HTTP.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import httpx

from offline_triage.config import BACKEND_NATIVE, BACKEND_WEB, Settings

logger = logging.getLogger(__name__)

WEB_PROBE_TIMEOUT = 3.0


class ModelUnavailableError(Exception):
    """Raised when a backend cannot provide its model."""


class InferenceBackend:
    """Base class for model runtimes.

    Attributes:
        name: Short identifier reported through engine status.
    """

    name = "base"

    def __init__(self) -> None:
        self._has_model = False

    @property
    def has_model(self) -> bool:
        return self._has_model


class RuleOnlyBackend(InferenceBackend):
    """Pure rule-based mode. Never has a model."""

    name = "rules"


class NativeBackend(InferenceBackend):
    """On-device model loaded through onnxruntime.

    Attributes:
        model_path: Path to the .onnx file.
        session: onnxruntime.InferenceSession, or None when unavailable.
    """

    name = "native"

    def __init__(self, model_path: Optional[str]) -> None:
        super().__init__()
        self.model_path = Path(model_path) if model_path else None
        self.session = None
        try:
            self._init_session()
        except ModelUnavailableError as exc:
            logger.warning("Native model unavailable, continuing rule-based: %s", exc)

    def _init_session(self) -> None:
        if self.model_path is None:
            raise ModelUnavailableError("TRIAGE_MODEL_PATH is not set")
        if not self.model_path.exists():
            raise ModelUnavailableError(f"model file not found: {self.model_path}")

        try:
            import onnxruntime as ort

            self.session = ort.InferenceSession(
                str(self.model_path), providers=["CPUExecutionProvider"]
            )
        except Exception as exc:
            raise ModelUnavailableError(f"failed to open ONNX model: {exc}") from exc

        self._has_model = True
        logger.info("Native model loaded from %s.", self.model_path)


class WebBackend(InferenceBackend):
    """Hosted model endpoint, probed once at construction.

    Attributes:
        endpoint: Base URL of the model service.
    """

    name = "web"

    def __init__(self, endpoint: Optional[str], timeout: float = WEB_PROBE_TIMEOUT) -> None:
        super().__init__()
        self.endpoint = endpoint.rstrip("/") if endpoint else None
        self.timeout = timeout
        try:
            self._probe()
        except ModelUnavailableError as exc:
            logger.warning("Web model unavailable, continuing rule-based: %s", exc)

    def _probe(self) -> None:
        if not self.endpoint:
            raise ModelUnavailableError("TRIAGE_MODEL_ENDPOINT is not set")

        try:
            response = httpx.get(f"{self.endpoint}/health", timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ModelUnavailableError(f"model endpoint unreachable: {exc}") from exc

        self._has_model = True
        logger.info("Web model endpoint reachable at %s.", self.endpoint)


def select_backend(settings: Settings) -> InferenceBackend:
    """Pick the inference backend named in settings."""
    if settings.inference_backend == BACKEND_NATIVE:
        return NativeBackend(settings.model_path)
    if settings.inference_backend == BACKEND_WEB:
        return WebBackend(settings.model_endpoint)
    return RuleOnlyBackend()
