"""Embedding providers.

Two backends share the ``embed(text) -> list[float]`` shape: a deterministic
hashed bag-of-words model that needs no network, and the Gemini
``embedContent`` HTTP API.
"""

from __future__ import annotations

import hashlib
import logging
import math
import re
from array import array
from typing import Protocol, Sequence

import requests

from context_atlas.core.config import Settings
from context_atlas.core.errors import UpstreamError

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")
GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:embedContent"


class EmbeddingModel(Protocol):
    model_name: str

    def embed(self, text: str) -> list[float]: ...


class HashedEmbeddingModel:
    """Lightweight hashed embedding model with deterministic output."""

    def __init__(self, model_name: str = "hashed", dim: int = 768) -> None:
        self.model_name = model_name
        self._dim = dim

    @property
    def dim(self) -> int:
        return self._dim

    def embed(self, text: str) -> list[float]:
        vector = [0.0] * self._dim
        for token in _tokenize(text):
            vector[_hash_token(token, self._dim)] += 1.0
        _normalize(vector)
        return vector


class GeminiEmbeddingModel:
    """Remote embedding model reached over HTTPS with ``requests``."""

    def __init__(
        self,
        model_name: str,
        api_key: str | None,
        timeout: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.model_name = model_name
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    def embed(self, text: str) -> list[float]:
        if not self.api_key:
            raise UpstreamError("No API key configured for embedding provider 'gemini'. Set GEMINI_API_KEY.")
        url = GEMINI_ENDPOINT.format(model=self.model_name)
        body = {
            "model": f"models/{self.model_name}",
            "content": {"parts": [{"text": text}]},
        }
        try:
            resp = self._session.post(
                url,
                params={"key": self.api_key},
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"Embedding request failed: {exc}") from exc
        if not resp.ok:
            raise UpstreamError(f"Embedding request failed: HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            values = resp.json()["embedding"]["values"]
        except (ValueError, KeyError, TypeError) as exc:
            raise UpstreamError("Embedding response did not contain a vector") from exc
        return [float(value) for value in values]


_INSTANCES: dict[tuple[str, str], EmbeddingModel] = {}


def get_embedding_model(settings: Settings) -> EmbeddingModel:
    """Return a cached provider instance for the configured backend."""
    key = (settings.embedding_provider, settings.embedding_model)
    if key not in _INSTANCES:
        if settings.embedding_provider == "gemini":
            _INSTANCES[key] = GeminiEmbeddingModel(
                model_name=settings.embedding_model,
                api_key=settings.resolved_api_key(),
                timeout=settings.embedding_timeout,
            )
        else:
            _INSTANCES[key] = HashedEmbeddingModel(model_name="hashed", dim=settings.embedding_dim)
        logger.info("Embedding provider ready: %s/%s", *key)
    return _INSTANCES[key]


def reset_embedding_models() -> None:
    _INSTANCES.clear()


def vector_to_bytes(vector: Sequence[float]) -> bytes:
    return array("f", vector).tobytes()


def bytes_to_vector(blob: bytes) -> list[float]:
    floats = array("f")
    floats.frombytes(blob)
    return list(floats)


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "EmbeddingModel",
    "HashedEmbeddingModel",
    "GeminiEmbeddingModel",
    "get_embedding_model",
    "reset_embedding_models",
    "vector_to_bytes",
    "bytes_to_vector",
]
