"""Discovery of generation-capable Gemini models and the selection policy.

Model names drift over time, so nothing here pins a single model: we ask the
API what exists and pick from that list by a fixed preference order.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import requests

from meetlogger.services.errors import DiscoveryUnavailable, NoCredential, TransportError
from meetlogger.services.llm.gemini_provider import DEFAULT_BASE_URL, upstream_error_message

GENERATE_METHOD = "generateContent"


@dataclass(frozen=True)
class ModelDescriptor:
    name: str
    api_variant: str
    supports_generation: bool = True

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "apiVariant": self.api_variant,
            "supportsGeneration": self.supports_generation,
        }


def _bare_name(name: str) -> str:
    return name[len("models/"):] if name.startswith("models/") else name


def pick(
    models: Sequence[ModelDescriptor],
    preferred_models: Sequence[str] = (),
    fast_marker: str = "flash",
) -> ModelDescriptor:
    """Choose a model deterministically.

    1. the first entry of ``preferred_models`` that exactly matches a model
       (with or without the ``models/`` prefix);
    2. the first model whose name contains ``fast_marker``;
    3. the first model.
    """
    if not models:
        raise DiscoveryUnavailable("No generation-capable models to choose from")
    by_name = {}
    for model in models:
        by_name.setdefault(model.name, model)
        by_name.setdefault(_bare_name(model.name), model)
    for preferred in preferred_models:
        match = by_name.get(preferred) or by_name.get(_bare_name(preferred))
        if match is not None:
            return match
    marker = (fast_marker or "").lower()
    if marker:
        for model in models:
            if marker in model.name.lower():
                return model
    return models[0]


class ModelDiscovery:
    def __init__(
        self,
        *,
        api_variants: Sequence[str] = ("v1", "v1beta"),
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        retries: int = 2,
        session: Any = None,
    ) -> None:
        self._api_variants = tuple(api_variants)
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._retries = max(1, retries)
        self._http = session or requests
        self._logger = logging.getLogger("meetlogger.discovery")

    def discover(self, credential: Optional[str]) -> list[ModelDescriptor]:
        """List models that support ``generateContent``, first variant that has any wins."""
        if not credential:
            raise NoCredential()
        failures: list[str] = []
        for variant in self._api_variants:
            try:
                payload = self._fetch(variant, credential)
            except (TransportError, DiscoveryUnavailable) as exc:
                self._logger.warning("ListModels failed: variant=%s error=%s", variant, exc)
                failures.append(f"{variant}: {exc}")
                continue
            models = self._parse(payload, variant)
            self._logger.info("ListModels: variant=%s generation_models=%d", variant, len(models))
            if models:
                return models
            failures.append(f"{variant}: no generation-capable models")
        raise DiscoveryUnavailable(
            "Could not find an available model (" + "; ".join(failures) + ")"
        )

    def _fetch(self, variant: str, credential: str) -> dict:
        url = f"{self._base_url}/{variant}/models"
        last_error: Optional[Exception] = None
        for attempt in range(1, self._retries + 1):
            try:
                response = self._http.get(
                    url, params={"key": credential}, timeout=self._timeout
                )
            except requests.RequestException as exc:
                last_error = exc
                self._logger.info(
                    "ListModels transport error: variant=%s attempt=%d/%d error=%s",
                    variant,
                    attempt,
                    self._retries,
                    exc.__class__.__name__,
                )
                continue
            try:
                data = response.json()
            except ValueError:
                data = None
            message = upstream_error_message(data)
            if response.status_code != 200 or message:
                raise DiscoveryUnavailable(message or f"HTTP {response.status_code}")
            if not isinstance(data, dict):
                raise DiscoveryUnavailable("response was not a JSON object")
            return data
        raise TransportError(f"network error after {self._retries} attempts: {last_error}")

    @staticmethod
    def _parse(payload: dict, variant: str) -> list[ModelDescriptor]:
        models = payload.get("models")
        if not isinstance(models, list):
            return []
        result: list[ModelDescriptor] = []
        for entry in models:
            if not isinstance(entry, dict) or not entry.get("name"):
                continue
            methods = entry.get("supportedGenerationMethods") or []
            if GENERATE_METHOD not in methods:
                continue
            result.append(ModelDescriptor(name=str(entry["name"]), api_variant=variant))
        return result
